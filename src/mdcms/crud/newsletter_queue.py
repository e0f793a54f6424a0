"""Newsletter queue persistence: one entry per newly published article"""

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from mdcms.crud.database import Database
from mdcms.crud.models import NewsletterQueueItem

logger = logging.getLogger(__name__)


class NewsletterQueueRepository:
    def __init__(self, db: Database):
        self.db = db

    async def list_pending(self) -> list[NewsletterQueueItem]:
        stmt = (
            select(NewsletterQueueItem)
            .where(NewsletterQueueItem.sent_at.is_(None))
            .order_by(NewsletterQueueItem.created_at, NewsletterQueueItem.id)
        )
        async with self.db.session() as session:
            return list((await session.exec(stmt)).all())

    async def enqueue(self, article_uid: str, article_path: str) -> bool:
        """Insert once per article uid. Returns False when it was already queued."""
        async with self.db.session() as session:
            session.add(NewsletterQueueItem(article_uid=article_uid, article_path=article_path))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(f"newsletter queue: {article_uid} already queued")
                return False
        return True

    async def mark_sent(self, ids: list[int], sent_at: datetime) -> int:
        if not ids:
            return 0
        stmt = update(NewsletterQueueItem).where(NewsletterQueueItem.id.in_(ids)).values(sent_at=sent_at)
        async with self.db.session() as session:
            result = await session.exec(stmt)
            await session.commit()
            return result.rowcount
