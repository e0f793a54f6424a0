"""Comment persistence and the comment read/vote cache with batched vote flushing"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

from sqlalchemy import delete, func, update
from sqlmodel import select

from mdcms.crud.database import Database
from mdcms.crud.models import Comment, CommentStatus
from mdcms.crud.pool import BackoffPolicy, CachePool, Sleep
from mdcms.errors import AppError
from mdcms.store.cache import Clock, ReadCache

logger = logging.getLogger(__name__)

Direction = Literal["up", "down"]


@dataclass(frozen=True)
class VoteCounts:
    upvotes: int
    downvotes: int

    def bump(self, direction: Direction) -> "VoteCounts":
        if direction == "up":
            return VoteCounts(self.upvotes + 1, self.downvotes)
        return VoteCounts(self.upvotes, self.downvotes + 1)


@dataclass(frozen=True)
class VoteEvent:
    id: int
    direction: Direction


def _article_filter(stmt, article_uid: Optional[str], article_path: Optional[str]):
    if article_uid is not None:
        return stmt.where(Comment.article_uid == article_uid)
    return stmt.where(Comment.article_path == article_path)


class CommentsRepository:
    """CRUD over the comments table. Each call runs in its own session."""

    def __init__(self, db: Database):
        self.db = db

    async def list_approved(self, article_uid: Optional[str] = None, article_path: Optional[str] = None) -> list[Comment]:
        stmt = _article_filter(select(Comment), article_uid, article_path)
        stmt = stmt.where(Comment.status == CommentStatus.approved.value).order_by(
            Comment.created_at.desc(), Comment.id.desc(),
        )
        async with self.db.session() as session:
            return list((await session.exec(stmt)).all())

    async def count_archived(self, article_uid: Optional[str] = None, article_path: Optional[str] = None) -> int:
        stmt = _article_filter(select(func.count()).select_from(Comment), article_uid, article_path)
        stmt = stmt.where(Comment.status == CommentStatus.archived.value)
        async with self.db.session() as session:
            return (await session.exec(stmt)).one()

    async def list_by_status(self, status: Optional[str] = None, limit: Optional[int] = None) -> list[Comment]:
        stmt = select(Comment)
        if status:
            stmt = stmt.where(Comment.status == status)
        stmt = stmt.order_by(Comment.created_at.desc(), Comment.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.db.session() as session:
            return list((await session.exec(stmt)).all())

    async def insert_comment(self, comment: Comment) -> Comment:
        async with self.db.session() as session:
            session.add(comment)
            await session.commit()
            await session.refresh(comment)
            return comment

    async def update_status(self, ids: list[int], status: CommentStatus) -> int:
        if not ids:
            return 0
        stmt = (
            update(Comment)
            .where(Comment.id.in_(ids))
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
            result = await session.exec(delete(Comment).where(Comment.id.in_(ids)))
            await session.commit()
            return result.rowcount

    async def get_article_refs(self, ids: list[int]) -> list[tuple[str, str]]:
        """Distinct (article_uid, article_path) pairs the given comments belong to."""
        if not ids:
            return []
        stmt = select(Comment.article_uid, Comment.article_path).where(Comment.id.in_(ids)).distinct()
        async with self.db.session() as session:
            return [(uid, path) for uid, path in (await session.exec(stmt)).all()]

    async def get_votes(self, id: int) -> Optional[VoteCounts]:
        stmt = select(Comment.upvotes, Comment.downvotes).where(Comment.id == id)
        async with self.db.session() as session:
            row = (await session.exec(stmt)).first()
        return VoteCounts(upvotes=row[0], downvotes=row[1]) if row else None

    async def apply_vote_deltas(self, deltas: dict[int, tuple[int, int]]) -> None:
        """One additive UPDATE per comment id; a column is only touched when its delta is non-zero."""
        async with self.db.session() as session:
            for id, (up, down) in deltas.items():
                values: dict[str, Any] = {}
                if up:
                    values["upvotes"] = Comment.upvotes + up
                if down:
                    values["downvotes"] = Comment.downvotes + down
                if values:
                    await session.exec(update(Comment).where(Comment.id == id).values(**values))
            await session.commit()


def comment_item(c: Comment) -> dict[str, Any]:
    """Public list shape of a comment."""
    return {
        "id": c.id,
        "authorName": c.author_name,
        "content": c.content,
        "createdAt": c.created_at.isoformat() if c.created_at else None,
        "parentId": c.parent_id,
        "upvotes": c.upvotes,
        "downvotes": c.downvotes,
    }


class CommentsCache:
    """Read-through cache of approved comment lists plus optimistic vote counts.

    Keys: `uid:<article uid>` and `path:<article path>` hold list payloads,
    `comment:<id>` holds VoteCounts. Votes are applied to the cache at once
    and reach the database later through the vote pool.
    """

    def __init__(
        self,
        repo: CommentsRepository,
        ttl: float = 300.0,
        vote_pool_size: int = 64,
        vote_pool_ttl: float = 30.0,
        clock: Clock = time.monotonic,
        backoff: BackoffPolicy = BackoffPolicy(),
        sleep: Sleep = asyncio.sleep,
        ):
        self.repo = repo
        self.cache: ReadCache[Any] = ReadCache(ttl, clock)
        self._keys_by_comment: dict[int, set[str]] = {}
        self.vote_pool: CachePool[VoteEvent] = CachePool(
            self.flush_votes, size=vote_pool_size, ttl=vote_pool_ttl,
            backoff=backoff, sleep=sleep, name="votes",
        )

    @staticmethod
    def _list_key(article_uid: Optional[str], article_path: Optional[str]) -> str:
        if (article_uid is None) == (article_path is None):
            raise AppError.invalid_request("Exactly one of article_uid or article_path is required")
        return f"uid:{article_uid}" if article_uid is not None else f"path:{article_path}"

    async def list_approved_cached(
        self,
        article_uid: Optional[str] = None,
        article_path: Optional[str] = None,
        ) -> dict[str, Any]:
        """{items, archivedCount} for one article, from cache when fresh."""
        key = self._list_key(article_uid, article_path)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"comments cache hit: {key}")
            return cached

        comments, archived = await asyncio.gather(
            self.repo.list_approved(article_uid, article_path),
            self.repo.count_archived(article_uid, article_path),
        )
        payload = {"items": [comment_item(c) for c in comments], "archivedCount": archived}
        self.cache.set(key, payload)
        for c in comments:
            self.cache.set(f"comment:{c.id}", VoteCounts(c.upvotes, c.downvotes))
            self._keys_by_comment.setdefault(c.id, set()).add(key)
        logger.debug(f"comments cache set: {key} ({len(comments)} item(s))")
        return payload

    async def increment_vote(self, id: int, direction: Direction) -> VoteCounts:
        """Count a vote now and queue it for the database. Returns the optimistic counts."""
        if direction not in ("up", "down"):
            raise AppError.invalid_request("Direction must be 'up' or 'down'")
        self.vote_pool.check_open()

        current = self.cache.get(f"comment:{id}")
        if current is None:
            current = await self.repo.get_votes(id)
            if current is None:
                raise AppError.not_found("Comment not found")
        counts = current.bump(direction)

        self.cache.set(f"comment:{id}", counts)
        for key in self._keys_by_comment.get(id, ()):
            payload = self.cache.get(key)
            if payload is None:
                continue
            for item in payload["items"]:
                if item["id"] == id:
                    item["upvotes"], item["downvotes"] = counts.upvotes, counts.downvotes
        await self.vote_pool.add(VoteEvent(id=id, direction=direction))
        return counts

    async def flush_votes(self, batch: list[VoteEvent]) -> None:
        """Vote pool flush function: sum deltas per comment id, one update each."""
        deltas: dict[int, tuple[int, int]] = {}
        for event in batch:
            up, down = deltas.get(event.id, (0, 0))
            deltas[event.id] = (up + 1, down) if event.direction == "up" else (up, down + 1)
        await self.repo.apply_vote_deltas(deltas)
        logger.debug(f"vote flush: {len(batch)} event(s) over {len(deltas)} comment(s)")

    def _invalidate(self, refs: list[tuple[str, str]], ids: list[int]) -> None:
        for uid, path in refs:
            self.cache.invalidate(f"uid:{uid}")
            self.cache.invalidate(f"path:{path}")
        for id in ids:
            self.cache.invalidate(f"comment:{id}")
            self._keys_by_comment.pop(id, None)
        logger.debug(f"comments cache invalidated: {len(refs)} article(s), {len(ids)} comment(s)")

    async def _moderate(self, ids: list[int], status: Optional[CommentStatus]) -> int:
        refs = await self.repo.get_article_refs(ids)
        if status is None:
            count = await self.repo.delete_by_ids(ids)
        else:
            count = await self.repo.update_status(ids, status)
        self._invalidate(refs, ids)
        return count

    async def approve(self, ids: list[int]) -> int:
        return await self._moderate(ids, CommentStatus.approved)

    async def archive(self, ids: list[int]) -> int:
        return await self._moderate(ids, CommentStatus.archived)

    async def unarchive(self, ids: list[int]) -> int:
        return await self._moderate(ids, CommentStatus.approved)

    async def delete(self, ids: list[int]) -> int:
        """Hard delete; the rows are removed, not flagged."""
        return await self._moderate(ids, None)

    async def close(self) -> None:
        await self.vote_pool.close()
