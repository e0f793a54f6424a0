"""Content store: document CRUD, archive/unarchive/move and categories over a TreeStore

Documents live at <root>/<category>/<slug>.mdx with a frontmatter block; the
archive folder is <root>/archived. Every mutation is guarded by the blob sha
of the file it replaces, so a stale caller gets CONFLICT instead of
overwriting someone else's edit.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

from mdcms.core import frontmatter
from mdcms.core.models import DeleteResult, DocStatus, Document, MoveResult, StatusChangeResult, WriteResult
from mdcms.core.utils import paths
from mdcms.errors import AppError, ErrorCode
from mdcms.store.cache import DirectoryFileCache
from mdcms.store.tree import Listing, RemoteFile, TreeStore, require_file, require_listing

logger = logging.getLogger(__name__)

Transform = Callable[[str], str]


def normalize_meta(rel_path: str, meta: dict[str, Any]) -> dict[str, Any]:
    """Fill uid, status and originalCategory when the stored frontmatter omits them."""
    out = dict(meta)
    archived = paths.is_archived(rel_path)
    if not out.get("uid"):
        out["uid"] = paths.strip_ext(rel_path)
    if not out.get("status"):
        out["status"] = DocStatus.archived.value if archived else DocStatus.draft.value
    if not archived and not out.get("originalCategory"):
        out["originalCategory"] = paths.first_segment(rel_path)
    return out


def _patch_meta(rel_path: str, **changes: Any) -> Transform:
    """Build a transform that rewrites frontmatter fields and pins the normalized uid."""
    def transform(source: str) -> str:
        parsed = frontmatter.parse(source)
        meta = {**parsed.meta, "uid": normalize_meta(rel_path, parsed.meta)["uid"], **changes}
        return frontmatter.apply(parsed.body, meta)
    return transform


class ContentStore:
    """Optimistic-concurrency document store over a remote tree.

    All public paths are relative to the content root; a leading root prefix
    and a missing .mdx extension are tolerated.
    """

    def __init__(
        self,
        tree: TreeStore,
        root: str = "content",
        cache: Optional[DirectoryFileCache] = None,
        uid_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        ):
        self.tree = tree
        self.root = paths.normalize(root) if root else ""
        self.cache = cache if cache is not None else DirectoryFileCache()
        self._new_uid = uid_factory

    # --- path + cache helpers ---

    def _rel(self, path: str) -> str:
        return paths.relative_to_root(path, self.root)

    def _repo(self, rel: str) -> str:
        return paths.join(self.root, rel)

    async def _read_file(self, repo_path: str, fresh: bool = False) -> RemoteFile:
        if not fresh:
            cached = self.cache.get_file(repo_path)
            if cached is not None:
                return cached
        file = require_file(await self.tree.get_content(repo_path), repo_path)
        self.cache.set_file(repo_path, file)
        return file

    async def _list_dir(self, repo_path: str) -> Listing:
        cached = self.cache.get_dir(repo_path)
        if cached is not None:
            return cached
        listing = require_listing(await self.tree.get_content(repo_path), repo_path)
        self.cache.set_dir(repo_path, listing)
        return listing

    async def _exists(self, repo_path: str) -> bool:
        try:
            await self._read_file(repo_path, fresh=True)
        except AppError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return False
            raise
        return True

    def _invalidate(self, repo_path: str) -> None:
        self.cache.invalidate_path(repo_path)
        self.cache.invalidate_dir(self.root)

    # --- reads ---

    async def list_all_categories(self) -> list[str]:
        """Names of the top-level folders under the content root, in listing order."""
        try:
            listing = await self._list_dir(self.root)
        except AppError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return []
            raise
        return [entry.name for entry in listing if entry.type == "dir"]

    async def list_docs_by_category(self, category: str) -> list[Document]:
        category = paths.validate_category(category)
        try:
            listing = await self._list_dir(self._repo(category))
        except AppError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return []
            raise
        names = [entry.name for entry in listing if entry.type == "file" and paths.is_doc(entry.name)]
        return list(await asyncio.gather(*(self.get_doc(f"{category}/{name}") for name in names)))

    async def list_docs_with_content(self) -> list[Document]:
        """Every document in every category. Any failing category fails the whole call."""
        categories = await self.list_all_categories()
        groups = await asyncio.gather(*(self.list_docs_by_category(c) for c in categories))
        return [doc for group in groups for doc in group]

    async def get_doc(self, path: str) -> Document:
        rel = self._rel(path)
        file = await self._read_file(self._repo(rel))
        parsed = frontmatter.parse(file.content)
        return Document(path=rel, content=parsed.body, meta=normalize_meta(rel, parsed.meta), sha=file.sha)

    async def find_doc(self, path: str) -> Optional[Document]:
        """get_doc, but None instead of NOT_FOUND."""
        try:
            return await self.get_doc(path)
        except AppError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return None
            raise

    # --- writes ---

    async def upsert_doc(
        self,
        path: str,
        content: str,
        meta: Optional[dict[str, Any]] = None,
        sha: Optional[str] = None,
        message: Optional[str] = None,
        ) -> WriteResult:
        """Write a document. Without sha the path must not exist yet.

        meta replaces the stored frontmatter wholesale; only a missing uid is
        filled in (a fresh one for new documents, the stored one for updates).
        """
        rel = self._rel(path)
        meta = {k: v for k, v in (meta or {}).items() if v is not None}

        if sha is None:
            if await self._exists(self._repo(rel)):
                raise AppError.conflict("sha is required to update this article")
            meta.setdefault("uid", self._new_uid())
        elif not meta.get("uid"):
            current = await self.get_doc(rel)
            meta["uid"] = current.meta["uid"]

        body = frontmatter.apply(content, meta)
        result = await self.tree.put_content(self._repo(rel), body, message or f"Update {rel}", sha)
        self._invalidate(self._repo(rel))
        logger.info(f"{'updated' if sha else 'created'} {rel} -> {result.sha}")
        return WriteResult(path=rel, sha=result.sha, commit=result.commit)

    async def delete_doc(self, path: str, sha: Optional[str] = None, message: Optional[str] = None) -> DeleteResult:
        rel = self._rel(path)
        repo_path = self._repo(rel)
        if sha is None:
            sha = (await self._read_file(repo_path, fresh=True)).sha
        commit = await self.tree.delete_content(repo_path, sha, message or f"Delete {rel}")
        self._invalidate(repo_path)
        logger.info(f"deleted {rel}")
        return DeleteResult(path=rel, deleted=True, commit=commit)

    async def move_doc(
        self,
        old_path: str,
        new_path: str,
        message: Optional[str] = None,
        transform: Optional[Transform] = None,
        expected_sha: Optional[str] = None,
        ) -> MoveResult:
        """Write the document at new_path, then delete old_path.

        The two steps are not atomic. A failed delete after a successful
        write is reported as partial=True; both paths then hold the document.
        """
        old_rel, new_rel = self._rel(old_path), self._rel(new_path)
        if old_rel == new_rel:
            raise AppError.invalid_request("Source and destination are the same")
        old_repo, new_repo = self._repo(old_rel), self._repo(new_rel)
        message = message or f"Move {old_rel} to {new_rel}"

        file = await self._read_file(old_repo, fresh=True)
        if expected_sha and expected_sha != file.sha:
            raise AppError.conflict(f"Stale document {old_rel}: expected {expected_sha}, found {file.sha}")
        content = transform(file.content) if transform else file.content
        if await self._exists(new_repo):
            raise AppError.conflict(f"Destination already exists: {new_rel}")

        written = await self.tree.put_content(new_repo, content, message)
        self._invalidate(new_repo)
        try:
            await self.tree.delete_content(old_repo, file.sha, message)
        except AppError as e:
            logger.error(f"partial move {old_rel} -> {new_rel}: old file not removed ({e.message})")
            self._invalidate(old_repo)
            return MoveResult(
                old_path=old_rel, new_path=new_rel, sha=written.sha, commit=written.commit,
                partial=True, delete_error=e.message,
            )
        self._invalidate(old_repo)
        logger.info(f"moved {old_rel} -> {new_rel}")
        return MoveResult(old_path=old_rel, new_path=new_rel, sha=written.sha, commit=written.commit)

    async def archive_doc(
        self,
        path: str,
        expected_sha: Optional[str] = None,
        message: Optional[str] = None,
        ) -> StatusChangeResult:
        """Move a document to archived/<basename> with status archived."""
        rel = self._rel(path)
        if paths.is_archived(rel):
            raise AppError.invalid_request("Document is already archived")
        new_rel = f"{paths.ARCHIVED}/{paths.basename(rel)}"
        move = await self.move_doc(
            rel, new_rel,
            message=message or f"Archive {rel}",
            transform=_patch_meta(rel, status=DocStatus.archived.value, originalCategory=paths.first_segment(rel)),
            expected_sha=expected_sha,
        )
        return StatusChangeResult(status=DocStatus.archived, move=move)

    async def unarchive_doc(
        self,
        path: str,
        expected_sha: Optional[str] = None,
        message: Optional[str] = None,
        ) -> StatusChangeResult:
        """Move an archived document back to its original category with status draft."""
        rel = self._rel(path)
        if not paths.is_archived(rel):
            raise AppError.invalid_request("Document is not archived")
        doc = await self.get_doc(rel)
        category = str(doc.meta.get("originalCategory") or "").strip()
        if not category or "/" in category or category == paths.ARCHIVED:
            category = paths.DRAFTS_CATEGORY
        new_rel = f"{category}/{paths.basename(rel)}"
        move = await self.move_doc(
            rel, new_rel,
            message=message or f"Unarchive {rel}",
            transform=_patch_meta(rel, status=DocStatus.draft.value, originalCategory=category),
            expected_sha=expected_sha,
        )
        return StatusChangeResult(status=DocStatus.draft, move=move)

    async def change_doc_category(self, path: str, category: str, message: Optional[str] = None) -> MoveResult:
        category = paths.validate_category(category)
        rel = self._rel(path)
        if paths.is_archived(rel):
            raise AppError.invalid_request("Archived documents must be unarchived before changing category")
        return await self.move_doc(
            rel, f"{category}/{paths.basename(rel)}",
            message=message or f"Move {rel} to {category}",
            transform=_patch_meta(rel, originalCategory=category),
        )

    # --- categories ---

    async def create_category(self, name: str) -> bool:
        """Write the .keep marker. Returns False if it already existed."""
        name = paths.validate_category(name)
        if name == paths.ARCHIVED:
            raise AppError.invalid_request("Category name is reserved")
        marker = self._repo(f"{name}/{paths.KEEP_FILE}")
        if await self._exists(marker):
            return False
        await self.tree.put_content(marker, "", f"Create category {name}")
        self._invalidate(marker)
        return True

    async def delete_category(self, name: str) -> bool:
        """Remove the .keep marker. An absent marker is success (returns False)."""
        name = paths.validate_category(name)
        if name == paths.DEFAULT_CATEGORY:
            raise AppError.forbidden("Default category cannot be deleted")
        marker = self._repo(f"{name}/{paths.KEEP_FILE}")
        try:
            file = await self._read_file(marker, fresh=True)
        except AppError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return False
            raise
        await self.tree.delete_content(marker, file.sha, f"Delete category {name}")
        self._invalidate(marker)
        return True
