"""Shared fixtures: in-memory tree store, content store, SQLite database and app context"""

import pytest

from mdcms.config import Settings
from mdcms.crud.database import Database
from mdcms.services.context import build_context
from mdcms.store.content import ContentStore
from mdcms.store.tree import InMemoryTreeStore


@pytest.fixture(name="settings")
def settings_fixture():
    """Settings pointing at a fake repo; no database URL."""
    return Settings(
        repo_url="https://github.com/acme/blog",
        github_token="test-token",
        mailgun_api_key="key-123",
        mailgun_domain="mg.example.com",
        site_url="https://blog.example.com",
    )


@pytest.fixture(name="tree")
def tree_fixture():
    """Empty in-memory tree store."""
    return InMemoryTreeStore()


@pytest.fixture(name="store")
def store_fixture(tree):
    """Content store over the in-memory tree rooted at content/."""
    return ContentStore(tree, root="content")


@pytest.fixture(name="db")
async def db_fixture(tmp_path):
    """File-backed SQLite database in tmp_path with all tables created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture(name="ctx")
async def ctx_fixture(settings, tree, db):
    """App context wired to the in-memory tree and the test database."""
    ctx = build_context(settings, tree=tree, db=db)
    yield ctx
    await ctx.comments.close()
    await ctx.visit_pool.close()
