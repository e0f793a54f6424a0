"""Process-lifetime application context: the content store, database and caches handlers share"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx

from mdcms.config import Settings
from mdcms.crud.comments import CommentsCache, CommentsRepository
from mdcms.crud.database import Database
from mdcms.crud.models import Visit
from mdcms.crud.newsletter_queue import NewsletterQueueRepository
from mdcms.crud.pool import CachePool
from mdcms.crud.subscribers import SubscribersRepository
from mdcms.crud.visits import VisitsRepository
from mdcms.errors import AppError, ErrorTag
from mdcms.store.cache import DirectoryFileCache
from mdcms.store.content import ContentStore
from mdcms.store.github import GitHubTreeStore
from mdcms.store.tree import TreeStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    content: ContentStore
    db: Optional[Database] = None
    comments: Optional[CommentsCache] = None
    visit_pool: Optional[CachePool[Visit]] = None
    mail_transport: Optional[httpx.AsyncBaseTransport] = None
    now: Callable[[], datetime] = field(default=datetime.now)

    def require_db(self) -> Database:
        if self.db is None:
            raise AppError.internal("Database is not configured", tag=ErrorTag.DB)
        return self.db

    def require_comments(self) -> CommentsCache:
        if self.comments is None:
            raise AppError.internal("Database is not configured", tag=ErrorTag.DB)
        return self.comments

    def require_visit_pool(self) -> CachePool[Visit]:
        if self.visit_pool is None:
            raise AppError.internal("Database is not configured", tag=ErrorTag.DB)
        return self.visit_pool

    @property
    def subscribers(self) -> SubscribersRepository:
        return SubscribersRepository(self.require_db())

    @property
    def newsletter_queue(self) -> NewsletterQueueRepository:
        return NewsletterQueueRepository(self.require_db())

    @property
    def visits(self) -> VisitsRepository:
        return VisitsRepository(self.require_db())

    async def aclose(self) -> None:
        """Flush pending votes and visits, then release remote and database connections."""
        if self.comments is not None:
            await self.comments.close()
        if self.visit_pool is not None:
            await self.visit_pool.close()
        await self.content.tree.aclose()
        if self.db is not None:
            await self.db.dispose()


def build_context(
    settings: Settings,
    tree: Optional[TreeStore] = None,
    db: Optional[Database] = None,
    mail_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> AppContext:
    """Wire the stores and caches for one process from settings.

    tree and db can be injected; otherwise they come from repo_url/github_token
    and db_url. Without a db the comment and newsletter handlers report
    'Database is not configured'.
    """
    if tree is None:
        tree = GitHubTreeStore.from_settings(settings)
    content = ContentStore(tree, root=settings.content_root, cache=DirectoryFileCache(ttl=settings.dir_cache_ttl))
    if db is None and settings.db_url:
        db = Database(settings.db_url)
    comments = None
    visit_pool = None
    if db is not None:
        visit_pool = CachePool(
            VisitsRepository(db).insert_many, size=settings.pool_size, ttl=settings.pool_ttl, name="visits",
        )
        comments = CommentsCache(
            CommentsRepository(db),
            ttl=settings.comments_cache_ttl,
            vote_pool_size=settings.vote_pool_size,
            vote_pool_ttl=settings.vote_pool_ttl,
        )
    logger.debug(f"context ready: root={settings.content_root} db={'yes' if db else 'no'}")
    return AppContext(
        settings=settings, content=content, db=db,
        comments=comments, visit_pool=visit_pool, mail_transport=mail_transport,
    )
