"""Unit tests for store/tree.py"""

import pytest

from mdcms.core.utils.hashing import git_blob_sha
from mdcms.errors import AppError, ErrorCode
from mdcms.store.tree import RemoteFile, require_file


def test_git_blob_sha_matches_git():
    """git_blob_sha reproduces `git hash-object` for a known input."""
    assert git_blob_sha("hello world\n") == "3b18e512dba79e4c8300dd08aeb37f8e728b8dad"
    assert git_blob_sha("") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"


async def test_put_then_get_returns_file(tree):
    """A created file is readable with the sha put_content reported."""
    result = await tree.put_content("content/a/x.mdx", "body", "create")
    file = await tree.get_content("content/a/x.mdx")
    assert isinstance(file, RemoteFile)
    assert file.content == "body"
    assert file.sha == result.sha == git_blob_sha("body")


async def test_get_directory_lists_children(tree):
    """A directory path returns one entry per immediate child, folders as dir."""
    tree.files.update({"content/a/x.mdx": "1", "content/a/y.mdx": "2", "content/b/.keep": ""})
    listing = await tree.get_content("content")
    assert [(e.name, e.type) for e in listing] == [("a", "dir"), ("b", "dir")]
    listing = await tree.get_content("content/a")
    assert [(e.name, e.type) for e in listing] == [("x.mdx", "file"), ("y.mdx", "file")]


async def test_get_missing_raises_not_found(tree):
    """get_content on an unknown path raises NOT_FOUND."""
    with pytest.raises(AppError) as exc:
        await tree.get_content("content/nope.mdx")
    assert exc.value.code == ErrorCode.NOT_FOUND


@pytest.mark.parametrize("sha", [None, "0" * 40])
async def test_put_existing_without_matching_sha_conflicts(tree, sha):
    """put_content on an existing file needs its current sha."""
    tree.files["f.mdx"] = "v1"
    with pytest.raises(AppError) as exc:
        await tree.put_content("f.mdx", "v2", "update", sha=sha)
    assert exc.value.code == ErrorCode.CONFLICT
    assert tree.files["f.mdx"] == "v1"


async def test_delete_with_stale_sha_conflicts(tree):
    """delete_content refuses a sha that is no longer current."""
    tree.files["f.mdx"] = "v1"
    with pytest.raises(AppError) as exc:
        await tree.delete_content("f.mdx", git_blob_sha("v0"), "delete")
    assert exc.value.code == ErrorCode.CONFLICT
    assert "f.mdx" in tree.files


async def test_require_file_rejects_directory(tree):
    """A directory listing is not a document."""
    tree.files["content/a/x.mdx"] = "1"
    with pytest.raises(AppError) as exc:
        require_file(await tree.get_content("content/a"), "content/a")
    assert exc.value.code == ErrorCode.NOT_FOUND
