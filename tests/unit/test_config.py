"""Unit tests for config.py"""

import pytest

from mdcms.config import RepoConfig, load_config, parse_repo_url


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    """Run each test in an empty directory with no MDCMS_ env vars."""
    monkeypatch.chdir(tmp_path)
    for name in ("MDCMS_DB_URL", "MDCMS_POOL_SIZE", "MDCMS_REPO_URL", "MDCMS_SUBSCRIBE_ENABLED"):
        monkeypatch.delenv(name, raising=False)


def test_load_config_defaults():
    """Defaults apply when no config.yaml, env var, or override exists."""
    settings = load_config()
    assert settings.db_url is None
    assert settings.content_root == "content"
    assert settings.dir_cache_ttl == 3600
    assert settings.vote_pool_size == 64


def test_load_config_uses_env_db_url(monkeypatch):
    """MDCMS_DB_URL env var is picked up by load_config."""
    monkeypatch.setenv("MDCMS_DB_URL", "sqlite+aiosqlite:///env.db")
    assert load_config().db_url == "sqlite+aiosqlite:///env.db"


def test_load_config_env_overrides_config_yaml(tmp_path, monkeypatch):
    """Env vars take precedence over config.yaml."""
    (tmp_path / "config.yaml").write_text("db_url: 'sqlite+aiosqlite:///project.db'\npool_size: 8\n")
    monkeypatch.setenv("MDCMS_DB_URL", "sqlite+aiosqlite:///override.db")
    settings = load_config()
    assert settings.db_url == "sqlite+aiosqlite:///override.db"
    assert settings.pool_size == 8


def test_load_config_cli_overrides_env(monkeypatch):
    """A non-None override beats the env var; None overrides are ignored."""
    monkeypatch.setenv("MDCMS_DB_URL", "sqlite+aiosqlite:///env.db")
    settings = load_config(overrides={"db_url": "sqlite+aiosqlite:///cli.db", "repo_url": None})
    assert settings.db_url == "sqlite+aiosqlite:///cli.db"
    assert settings.repo_url is None


def test_load_config_coerces_env_types(monkeypatch):
    """Env strings are coerced to the field types."""
    monkeypatch.setenv("MDCMS_POOL_SIZE", "5")
    monkeypatch.setenv("MDCMS_SUBSCRIBE_ENABLED", "false")
    settings = load_config()
    assert settings.pool_size == 5
    assert settings.subscribe_enabled is False


def test_load_config_invalid_yaml(tmp_path):
    """load_config raises ValueError when config.yaml contains invalid YAML."""
    (tmp_path / "config.yaml").write_text("key: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid config.yaml"):
        load_config()


@pytest.mark.parametrize("url,expected", [
    ("https://github.com/acme/blog", RepoConfig("acme", "blog")),
    ("https://github.com/acme/blog.git", RepoConfig("acme", "blog")),
    ("git@github.com:acme/blog.git", RepoConfig("acme", "blog")),
    ("https://github.com/acme/blog#dev", RepoConfig("acme", "blog", "dev")),
    ("https://github.com/acme/blog?ref=release", RepoConfig("acme", "blog", "release")),
])
def test_parse_repo_url(url, expected):
    """Owner, repo and optional branch are extracted from common URL forms."""
    assert parse_repo_url(url) == expected


@pytest.mark.parametrize("url", [None, "", "https://gitlab.com/acme/blog"])
def test_parse_repo_url_rejects(url):
    """Missing or non-GitHub URLs raise ValueError."""
    with pytest.raises(ValueError):
        parse_repo_url(url)
