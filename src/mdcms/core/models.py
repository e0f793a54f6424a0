"""Document and operation result models shared by the content store and handlers"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class DocStatus(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class Document(BaseModel):
    """A document as stored: body without frontmatter, parsed meta and the blob sha."""
    path:    str = Field(..., description="Path relative to the content root, e.g. tutorials/hello.mdx")
    content: str = Field(default="", description="Body text without the frontmatter block")
    meta:    dict[str, Any] = Field(default_factory=dict)
    sha:     str = Field(..., description="Opaque version token of the stored file")

    @property
    def uid(self) -> Optional[str]:
        return self.meta.get("uid")

    @property
    def status(self) -> Optional[str]:
        return self.meta.get("status")


class WriteResult(BaseModel):
    path:   str
    sha:    str
    commit: Optional[str] = None


class DeleteResult(BaseModel):
    path:    str
    deleted: bool = True
    commit:  Optional[str] = None


class MoveResult(BaseModel):
    """Outcome of a write-then-delete move.

    `partial` means the new file was written but the old one could not be
    removed; the document then exists at both paths until reconciled.
    """
    old_path:     str
    new_path:     str
    sha:          str
    commit:       Optional[str] = None
    partial:      bool = False
    delete_error: Optional[str] = None


class StatusChangeResult(BaseModel):
    status: DocStatus
    move:   MoveResult

    @property
    def path(self) -> str:
        return self.move.new_path

    @property
    def sha(self) -> str:
        return self.move.sha
