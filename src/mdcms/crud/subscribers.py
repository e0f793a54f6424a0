"""Newsletter subscriber persistence"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, update
from sqlmodel import select

from mdcms.crud.database import Database
from mdcms.crud.models import NewsletterSubscriber, SubscriberStatus


class SubscribersRepository:
    def __init__(self, db: Database):
        self.db = db

    async def list(self, status: Optional[str] = None, limit: Optional[int] = None) -> list[NewsletterSubscriber]:
        stmt = select(NewsletterSubscriber)
        if status:
            stmt = stmt.where(NewsletterSubscriber.status == status)
        stmt = stmt.order_by(NewsletterSubscriber.created_at.desc(), NewsletterSubscriber.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.db.session() as session:
            return list((await session.exec(stmt)).all())

    async def find_by_email(self, email: str) -> Optional[NewsletterSubscriber]:
        async with self.db.session() as session:
            return (await session.exec(select(NewsletterSubscriber).where(NewsletterSubscriber.email == email))).first()

    async def count_since(self, since: datetime) -> int:
        stmt = select(func.count()).select_from(NewsletterSubscriber).where(NewsletterSubscriber.created_at >= since)
        async with self.db.session() as session:
            return (await session.exec(stmt)).one()

    async def insert(self, subscriber: NewsletterSubscriber) -> NewsletterSubscriber:
        async with self.db.session() as session:
            session.add(subscriber)
            await session.commit()
            await session.refresh(subscriber)
            return subscriber

    async def update_by_email(self, email: str, **values: Any) -> int:
        values.setdefault("updated_at", datetime.now())
        stmt = update(NewsletterSubscriber).where(NewsletterSubscriber.email == email).values(**values)
        async with self.db.session() as session:
            result = await session.exec(stmt)
            await session.commit()
            return result.rowcount

    async def update_status_by_ids(self, ids: list[int], status: SubscriberStatus) -> int:
        if not ids:
            return 0
        stmt = (
            update(NewsletterSubscriber)
            .where(NewsletterSubscriber.id.in_(ids))
            .values(status=status.value, updated_at=datetime.now())
        )
        async with self.db.session() as session:
            result = await session.exec(stmt)
            await session.commit()
            return result.rowcount

    async def delete_by_ids(self, ids: list[int]) -> int:
        if not ids:
            return 0
        async with self.db.session() as session:
            result = await session.exec(delete(NewsletterSubscriber).where(NewsletterSubscriber.id.in_(ids)))
            await session.commit()
            return result.rowcount
