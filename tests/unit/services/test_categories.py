"""Unit tests for services/categories.py"""

import pytest

from mdcms.services.categories import create_category, delete_category, list_categories
from mdcms.services.context import build_context


@pytest.fixture(name="app")
def app_fixture(settings, tree):
    return build_context(settings, tree=tree)


async def test_list_hides_archive_and_includes_default(app, tree):
    """The archive folder is hidden; default is always listed first when absent."""
    tree.files.update({"content/tech/a.mdx": "x", "content/archived/b.mdx": "y"})
    _, body = await list_categories(app)
    assert body["data"]["items"] == ["default", "tech"]


async def test_create_category_twice(app, tree):
    """Creating an existing category succeeds with created=False."""
    _, body = await create_category(app, "news", is_admin=True)
    assert body["data"] == {"name": "news", "created": True}
    _, body = await create_category(app, "news", is_admin=True)
    assert body["data"] == {"name": "news", "created": False}
    assert "content/news/.keep" in tree.files


async def test_category_writes_require_admin(app):
    """Create and delete are admin only."""
    status, _ = await create_category(app, "news")
    assert status == 401
    status, _ = await delete_category(app, "news")
    assert status == 401


async def test_delete_default_is_forbidden(app):
    """The default category cannot be removed."""
    status, body = await delete_category(app, "default", is_admin=True)
    assert status == 403


async def test_delete_empty_category_is_idempotent(app, tree):
    """Deleting an empty or missing category succeeds."""
    await create_category(app, "news", is_admin=True)
    for _ in range(2):
        status, body = await delete_category(app, "news", is_admin=True)
        assert status == 200
        assert body["data"]["deleted"] is True
    assert "content/news/.keep" not in tree.files


async def test_delete_with_documents_needs_mode(app, tree):
    """A category holding documents cannot be deleted without a mode."""
    tree.files["content/tech/a.mdx"] = "x"
    status, body = await delete_category(app, "tech", is_admin=True)
    assert status == 400
    assert body["error"]["message"] == "Mode is required when category contains documents"
    status, body = await delete_category(app, "tech", mode="shred", is_admin=True)
    assert body["error"]["message"] == "Unsupported mode"


async def test_delete_mode_move_refiles_to_default(app, tree):
    """mode=move re-files documents under default and removes the marker."""
    tree.files.update({"content/tech/.keep": "", "content/tech/a.mdx": "A", "content/tech/b.mdx": "B"})
    _, body = await delete_category(app, "tech", mode="move", is_admin=True)
    assert body["data"]["moved"] == 2
    assert body["data"]["partial"] == []
    assert {"content/default/a.mdx", "content/default/b.mdx", "content/default/.keep"} <= set(tree.files)
    assert not any(k.startswith("content/tech/") for k in tree.files)
    doc = await app.content.get_doc("default/a")
    assert doc.meta["originalCategory"] == "default"


async def test_delete_mode_delete_removes_documents(app, tree):
    """mode=delete removes every document in the category."""
    tree.files.update({"content/tech/.keep": "", "content/tech/a.mdx": "A"})
    _, body = await delete_category(app, "tech", mode="delete", is_admin=True)
    assert body["data"]["removed"] == 1
    assert tree.files == {}
