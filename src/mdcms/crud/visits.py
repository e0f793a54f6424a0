"""Article visit log"""

from sqlalchemy import func
from sqlmodel import select

from mdcms.crud.database import Database
from mdcms.crud.models import Visit


class VisitsRepository:
    def __init__(self, db: Database):
        self.db = db

    async def count_by_article_uid(self) -> dict[str, int]:
        """Visit totals keyed by article uid."""
        stmt = select(Visit.article_uid, func.count()).group_by(Visit.article_uid)
        async with self.db.session() as session:
            return {uid: count for uid, count in (await session.exec(stmt)).all()}

    async def insert_many(self, visits: list[Visit]) -> None:
        """Pool flush function: one transaction for a batch of visits."""
        async with self.db.session() as session:
            session.add_all(visits)
            await session.commit()
