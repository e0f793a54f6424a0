"""Application configuration: settings schema, config.yaml loader and repo URL parsing"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "config.yaml"
ENV_PREFIX = "MDCMS_"

_REPO_URL_RE = re.compile(r"github\.com[:/]+([^/]+)/([^/#?]+)(?:[#?](.*))?", re.IGNORECASE)


class Settings(BaseModel):
    app_name:       str = "mdcms"
    repo_url:       Optional[str] = Field(default=None, description="GitHub repo holding the content tree")
    github_token:   Optional[str] = Field(default=None, description="Bearer token scoped to the content repo")
    github_api_url: str = "https://api.github.com"
    branch:         Optional[str] = Field(default=None, description="Overrides the branch given in repo_url")
    content_root:   str = Field(default="content", description="Directory holding category folders")
    db_url:         Optional[str] = Field(default=None, description="Async SQLAlchemy URL; unset disables the DB")

    dir_cache_ttl:      float = Field(default=3600.0, gt=0, description="Directory/file cache TTL in seconds")
    comments_cache_ttl: float = Field(default=300.0,  gt=0, description="Comment list cache TTL in seconds")
    pool_size:          int   = Field(default=64,     ge=1, description="Generic write pool flush threshold")
    pool_ttl:           float = Field(default=300.0,  gt=0, description="Generic write pool flush delay")
    vote_pool_size:     int   = Field(default=64,     ge=1, description="Vote pool flush threshold")
    vote_pool_ttl:      float = Field(default=30.0,   gt=0, description="Vote pool flush delay")

    mailgun_api_key:  Optional[str] = None
    mailgun_domain:   Optional[str] = None
    mailgun_from:     Optional[str] = None
    mailgun_api_base: str = "https://api.mailgun.net/v3"
    site_url:         str = "http://localhost:3000"

    subscribe_enabled:     bool = True
    subscribe_daily_limit: int  = Field(default=30, ge=0, description="Max new subscribers per 24h; 0 = unlimited")
    log_level:             str  = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")


@dataclass(frozen=True)
class RepoConfig:
    owner: str
    repo: str
    branch: Optional[str] = None


def parse_repo_url(url: Optional[str]) -> RepoConfig:
    """Split a GitHub URL like https://github.com/owner/repo#branch into its parts."""
    if not url:
        raise ValueError("repo_url is not set")
    m = _REPO_URL_RE.search(url.strip())
    if not m:
        raise ValueError(f"repo_url must be a GitHub repo URL like https://github.com/owner/repo (got {url})")
    owner, repo, rest = m.group(1), m.group(2), m.group(3)
    branch = re.sub(r"^ref=", "", rest) if rest else None
    return RepoConfig(owner=owner, repo=re.sub(r"\.git$", "", repo), branch=branch or None)


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then MDCMS_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
