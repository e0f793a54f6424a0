"""Remote tree-store interface and an in-memory implementation with git blob versioning"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from mdcms.core.models import WriteResult
from mdcms.core.utils.hashing import git_blob_sha
from mdcms.errors import AppError


@dataclass(frozen=True)
class RemoteFile:
    path: str
    content: str
    sha: str


@dataclass(frozen=True)
class RemoteEntry:
    name: str
    path: str
    type: Literal["file", "dir"]
    sha: Optional[str] = None


Listing = list[RemoteEntry]


class TreeStore(ABC):
    """Path-addressed file storage with sha preconditions. Paths are repo-relative."""

    @abstractmethod
    async def get_content(self, path: str) -> Union[RemoteFile, Listing]:
        """Return the file at path or the directory listing. Raises NOT_FOUND."""
        raise NotImplementedError

    @abstractmethod
    async def put_content(self, path: str, content: str, message: str, sha: Optional[str] = None) -> WriteResult:
        """Create (sha=None) or update (sha=current) a file."""
        raise NotImplementedError

    @abstractmethod
    async def delete_content(self, path: str, sha: str, message: str) -> Optional[str]:
        """Delete the file if sha still matches. Returns the commit id when known."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


@dataclass
class InMemoryTreeStore(TreeStore):
    """Dict-backed tree store. Files are versioned by their git blob sha."""
    files: dict[str, str] = field(default_factory=dict)
    calls: Counter = field(default_factory=Counter)
    _commits: int = 0

    def _commit(self) -> str:
        self._commits += 1
        return f"{self._commits:040x}"

    async def get_content(self, path: str) -> Union[RemoteFile, Listing]:
        self.calls["get"] += 1
        path = path.strip("/")
        if path in self.files:
            content = self.files[path]
            return RemoteFile(path=path, content=content, sha=git_blob_sha(content))

        prefix = f"{path}/" if path else ""
        entries: dict[str, RemoteEntry] = {}
        for key in sorted(self.files):
            if not key.startswith(prefix):
                continue
            name, _, rest = key[len(prefix):].partition("/")
            child = f"{prefix}{name}"
            if rest:
                entries.setdefault(name, RemoteEntry(name=name, path=child, type="dir"))
            else:
                entries[name] = RemoteEntry(name=name, path=child, type="file", sha=git_blob_sha(self.files[key]))
        if not entries:
            raise AppError.not_found(f"Not found: {path}")
        return list(entries.values())

    async def put_content(self, path: str, content: str, message: str, sha: Optional[str] = None) -> WriteResult:
        self.calls["put"] += 1
        path = path.strip("/")
        current = self.files.get(path)
        if current is not None:
            if sha is None:
                raise AppError.conflict(f"{path} already exists and no sha was supplied")
            if sha != git_blob_sha(current):
                raise AppError.conflict(f"{path} does not match {sha}")
        elif sha is not None:
            raise AppError.not_found(f"Not found: {path}")
        self.files[path] = content
        return WriteResult(path=path, sha=git_blob_sha(content), commit=self._commit())

    async def delete_content(self, path: str, sha: str, message: str) -> Optional[str]:
        self.calls["delete"] += 1
        path = path.strip("/")
        current = self.files.get(path)
        if current is None:
            raise AppError.not_found(f"Not found: {path}")
        if sha != git_blob_sha(current):
            raise AppError.conflict(f"{path} does not match {sha}")
        del self.files[path]
        return self._commit()


def require_file(result: Union[RemoteFile, Listing], path: str) -> RemoteFile:
    """Narrow a get_content result to a file; directories count as missing documents."""
    if isinstance(result, RemoteFile):
        return result
    raise AppError.not_found(f"Not found: {path}")


def require_listing(result: Union[RemoteFile, Listing], path: str) -> Listing:
    if isinstance(result, list):
        return result
    raise AppError.invalid_request(f"{path} is a file, not a directory")
