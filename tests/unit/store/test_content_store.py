"""Unit tests for store/content.py"""

import pytest

from mdcms.core import frontmatter
from mdcms.core.models import DocStatus
from mdcms.core.utils.hashing import git_blob_sha
from mdcms.errors import AppError, ErrorCode
from mdcms.store.content import ContentStore, normalize_meta
from mdcms.store.tree import InMemoryTreeStore


class FailingDeleteTree(InMemoryTreeStore):
    """Tree store whose deletes always fail with a server error."""

    async def delete_content(self, path, sha, message):
        self.calls["delete"] += 1
        raise AppError.from_status(500, "upstream unavailable")


@pytest.fixture(name="fixed_store")
def fixed_store_fixture(tree):
    """Content store with a deterministic uid factory."""
    return ContentStore(tree, root="content", uid_factory=lambda: "uid-1")


def test_normalize_meta_defaults():
    """Missing uid, status and originalCategory are derived from the path."""
    assert normalize_meta("tech/post.mdx", {}) == {
        "uid": "tech/post", "status": "draft", "originalCategory": "tech",
    }
    assert normalize_meta("archived/post.mdx", {}) == {"uid": "archived/post", "status": "archived"}
    assert normalize_meta("tech/post.mdx", {"uid": "u", "status": "published"})["status"] == "published"


async def test_upsert_then_get_round_trip(fixed_store, tree):
    """A created document reads back with its body, meta and the reported sha."""
    result = await fixed_store.upsert_doc("tech/hello", "Body\n", meta={"title": "Hello", "tags": ["a"]})
    assert result.path == "tech/hello.mdx"
    assert "content/tech/hello.mdx" in tree.files

    doc = await fixed_store.get_doc("tech/hello.mdx")
    assert doc.content == "Body\n"
    assert doc.meta["title"] == "Hello"
    assert doc.meta["tags"] == ["a"]
    assert doc.uid == "uid-1"
    assert doc.sha == result.sha


async def test_get_doc_accepts_root_prefixed_path(fixed_store):
    """Paths may carry the content root prefix."""
    await fixed_store.upsert_doc("tech/a.mdx", "x")
    doc = await fixed_store.get_doc("content/tech/a")
    assert doc.path == "tech/a.mdx"


async def test_upsert_existing_without_sha_conflicts(fixed_store, tree):
    """Writing over an existing document without its sha fails and leaves it untouched."""
    await fixed_store.upsert_doc("tech/a.mdx", "v1")
    before = tree.files["content/tech/a.mdx"]
    with pytest.raises(AppError) as exc:
        await fixed_store.upsert_doc("tech/a.mdx", "v2")
    assert exc.value.code == ErrorCode.CONFLICT
    assert exc.value.message == "sha is required to update this article"
    assert tree.files["content/tech/a.mdx"] == before


async def test_upsert_with_stale_sha_conflicts(fixed_store, tree):
    """Only the current sha may replace a document."""
    first = await fixed_store.upsert_doc("tech/a.mdx", "v1")
    second = await fixed_store.upsert_doc("tech/a.mdx", "v2", sha=first.sha)
    with pytest.raises(AppError) as exc:
        await fixed_store.upsert_doc("tech/a.mdx", "v3", sha=first.sha)
    assert exc.value.code == ErrorCode.CONFLICT
    assert git_blob_sha(tree.files["content/tech/a.mdx"]) == second.sha
    assert (await fixed_store.get_doc("tech/a.mdx")).content == "v2"


async def test_update_keeps_stored_uid(tree):
    """An update without uid keeps the document's existing uid."""
    uids = iter(["first", "second"])
    store = ContentStore(tree, uid_factory=lambda: next(uids))
    created = await store.upsert_doc("tech/a.mdx", "v1", meta={"title": "A"})
    await store.upsert_doc("tech/a.mdx", "v2", meta={"title": "B"}, sha=created.sha)
    doc = await store.get_doc("tech/a.mdx")
    assert doc.uid == "first"
    assert doc.meta["title"] == "B"


async def test_reads_are_cached_and_writes_invalidate(fixed_store, tree):
    """Repeated reads hit the cache; a write makes the next read go to the tree."""
    result = await fixed_store.upsert_doc("tech/a.mdx", "v1")
    await fixed_store.get_doc("tech/a.mdx")
    gets = tree.calls["get"]
    await fixed_store.get_doc("tech/a.mdx")
    assert tree.calls["get"] == gets

    await fixed_store.upsert_doc("tech/a.mdx", "v2", sha=result.sha)
    assert (await fixed_store.get_doc("tech/a.mdx")).content == "v2"
    assert tree.calls["get"] > gets


async def test_listing_reflects_new_category_after_write(fixed_store):
    """A write invalidates the root listing so new categories show up."""
    await fixed_store.upsert_doc("tech/a.mdx", "x")
    assert await fixed_store.list_all_categories() == ["tech"]
    await fixed_store.upsert_doc("life/b.mdx", "y")
    assert await fixed_store.list_all_categories() == ["life", "tech"]


async def test_list_empty_root(fixed_store):
    """A missing root or category lists as empty."""
    assert await fixed_store.list_all_categories() == []
    assert await fixed_store.list_docs_by_category("tech") == []
    assert await fixed_store.list_docs_with_content() == []


async def test_list_docs_skips_non_documents(fixed_store, tree):
    """Only .md/.mdx files are documents; the .keep marker is ignored."""
    tree.files.update({
        "content/tech/.keep": "",
        "content/tech/a.mdx": "A",
        "content/tech/b.md": "B",
        "content/tech/image.png": "png",
        "content/life/c.mdx": "C",
    })
    docs = await fixed_store.list_docs_by_category("tech")
    assert sorted(d.path for d in docs) == ["tech/a.mdx", "tech/b.md"]
    everything = await fixed_store.list_docs_with_content()
    assert sorted(d.path for d in everything) == ["life/c.mdx", "tech/a.mdx", "tech/b.md"]


async def test_list_docs_with_content_fails_fast(tree):
    """One unreadable category fails the whole listing."""
    class BrokenTree(InMemoryTreeStore):
        async def get_content(self, path):
            if path == "content/life":
                raise AppError.from_status(500, "boom")
            return await super().get_content(path)

    broken = BrokenTree(files={"content/tech/a.mdx": "A", "content/life/b.mdx": "B"})
    with pytest.raises(AppError) as exc:
        await ContentStore(broken).list_docs_with_content()
    assert exc.value.code == ErrorCode.INTERNAL


async def test_find_doc_missing_is_none(fixed_store):
    """find_doc returns None for a path that does not exist."""
    assert await fixed_store.find_doc("tech/none.mdx") is None


async def test_delete_doc(fixed_store, tree):
    """delete_doc removes the file, looking up the sha when not given."""
    await fixed_store.upsert_doc("tech/a.mdx", "x")
    result = await fixed_store.delete_doc("tech/a.mdx")
    assert result.deleted
    assert "content/tech/a.mdx" not in tree.files
    assert await fixed_store.find_doc("tech/a.mdx") is None


async def test_archive_then_unarchive_restores_category(fixed_store, tree):
    """Archiving and unarchiving lands back in the original category as a draft with the same uid."""
    await fixed_store.upsert_doc("tech/post.mdx", "Body", meta={"title": "T", "status": "published"})

    archived = await fixed_store.archive_doc("tech/post.mdx")
    assert archived.status == DocStatus.archived
    assert archived.path == "archived/post.mdx"
    assert not archived.move.partial
    assert "content/tech/post.mdx" not in tree.files
    doc = await fixed_store.get_doc("archived/post.mdx")
    assert doc.status == DocStatus.archived
    assert doc.meta["originalCategory"] == "tech"

    restored = await fixed_store.unarchive_doc("archived/post.mdx")
    assert restored.path == "tech/post.mdx"
    doc = await fixed_store.get_doc("tech/post.mdx")
    assert doc.status == DocStatus.draft
    assert doc.uid == "uid-1"
    assert doc.content == "Body"
    assert doc.meta["title"] == "T"
    assert "content/archived/post.mdx" not in tree.files


async def test_archive_rejects_archived_and_unarchive_rejects_live(fixed_store):
    """Archive and unarchive each refuse the wrong starting folder."""
    await fixed_store.upsert_doc("tech/a.mdx", "x")
    with pytest.raises(AppError) as exc:
        await fixed_store.unarchive_doc("tech/a.mdx")
    assert exc.value.code == ErrorCode.INVALID_REQUEST
    await fixed_store.archive_doc("tech/a.mdx")
    with pytest.raises(AppError) as exc:
        await fixed_store.archive_doc("archived/a.mdx")
    assert exc.value.code == ErrorCode.INVALID_REQUEST


async def test_unarchive_without_original_category_goes_to_drafts(fixed_store, tree):
    """A missing originalCategory falls back to the drafts folder."""
    tree.files["content/archived/x.mdx"] = frontmatter.apply("Body", {"uid": "u", "status": "archived"})
    result = await fixed_store.unarchive_doc("archived/x.mdx")
    assert result.path == "drafts/x.mdx"


async def test_archive_with_stale_sha_conflicts(fixed_store, tree):
    """archive_doc checks the caller's sha before moving anything."""
    await fixed_store.upsert_doc("tech/a.mdx", "x")
    with pytest.raises(AppError) as exc:
        await fixed_store.archive_doc("tech/a.mdx", expected_sha="0" * 40)
    assert exc.value.code == ErrorCode.CONFLICT
    assert "content/tech/a.mdx" in tree.files
    assert "content/archived/a.mdx" not in tree.files


async def test_move_onto_existing_destination_conflicts(fixed_store, tree):
    """move_doc never overwrites the destination."""
    await fixed_store.upsert_doc("tech/a.mdx", "1")
    await fixed_store.upsert_doc("life/a.mdx", "2")
    with pytest.raises(AppError) as exc:
        await fixed_store.change_doc_category("tech/a.mdx", "life")
    assert exc.value.code == ErrorCode.CONFLICT
    assert (await fixed_store.get_doc("life/a.mdx")).content == "2"


async def test_move_same_path_is_invalid(fixed_store):
    """Moving a document onto itself is rejected."""
    with pytest.raises(AppError) as exc:
        await fixed_store.move_doc("tech/a.mdx", "tech/a")
    assert exc.value.code == ErrorCode.INVALID_REQUEST


async def test_move_reports_partial_when_delete_fails():
    """A failed delete after a successful write is surfaced as partial, both copies remain."""
    tree = FailingDeleteTree(files={"content/tech/a.mdx": "x"})
    store = ContentStore(tree)
    result = await store.move_doc("tech/a.mdx", "life/a.mdx")
    assert result.partial
    assert result.delete_error == "upstream unavailable"
    assert "content/tech/a.mdx" in tree.files
    assert "content/life/a.mdx" in tree.files


async def test_change_doc_category_updates_original_category(fixed_store):
    """change_doc_category rewrites originalCategory to the new folder."""
    await fixed_store.upsert_doc("tech/a.mdx", "x")
    result = await fixed_store.change_doc_category("tech/a.mdx", "life")
    assert result.new_path == "life/a.mdx"
    doc = await fixed_store.get_doc("life/a.mdx")
    assert doc.meta["originalCategory"] == "life"
    assert doc.uid == "uid-1"


async def test_category_create_and_delete_are_idempotent(fixed_store, tree):
    """Creating twice and deleting twice both succeed; the second call reports no change."""
    assert await fixed_store.create_category("news") is True
    assert await fixed_store.create_category("news") is False
    assert "content/news/.keep" in tree.files
    assert "news" in await fixed_store.list_all_categories()

    assert await fixed_store.delete_category("news") is True
    assert await fixed_store.delete_category("news") is False
    assert "content/news/.keep" not in tree.files


@pytest.mark.parametrize("name,code", [
    ("default", ErrorCode.FORBIDDEN),
    ("a/b", ErrorCode.INVALID_REQUEST),
    ("", ErrorCode.INVALID_REQUEST),
])
async def test_delete_category_rejects(fixed_store, name, code):
    """The default category and malformed names cannot be deleted."""
    with pytest.raises(AppError) as exc:
        await fixed_store.delete_category(name)
    assert exc.value.code == code


async def test_create_category_rejects_reserved_name(fixed_store):
    """The archive folder cannot be created as a category."""
    with pytest.raises(AppError) as exc:
        await fixed_store.create_category("archived")
    assert exc.value.code == ErrorCode.INVALID_REQUEST
