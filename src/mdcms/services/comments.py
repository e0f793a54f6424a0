"""Comment handlers: public list/submit/vote and admin moderation"""

import logging
from typing import Any, Mapping, Optional

from mdcms.crud.models import Comment, CommentStatus
from mdcms.errors import AppError
from mdcms.services.context import AppContext
from mdcms.services.util import (
    envelope,
    get_client_ip,
    get_header,
    hash_ip,
    is_record,
    normalize_email,
    parse_ids,
    require_admin,
    require_ids,
    string_value,
)

logger = logging.getLogger(__name__)

MODERATION_ACTIONS = ("approve", "archive", "unarchive", "delete")


@envelope("comments")
async def list_comments(
    ctx: AppContext,
    article_uid: Optional[str] = None,
    article_path: Optional[str] = None,
    ) -> dict[str, Any]:
    """Approved comments for one article plus its archived count."""
    return await ctx.require_comments().list_approved_cached(string_value(article_uid), string_value(article_path))


@envelope("comments")
async def submit_comment(ctx: AppContext, body: Any, headers: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Store a new comment as pending; it is not listed until approved."""
    if not is_record(body):
        raise AppError.invalid_request("Invalid payload")
    article_uid = string_value(body.get("articleUid") or body.get("uid"))
    article_path = string_value(body.get("articlePath") or body.get("path"))
    content = string_value(body.get("content"))
    if not article_uid or not article_path:
        raise AppError.invalid_request("articleUid and articlePath are required")
    if not content:
        raise AppError.invalid_request("content is required")
    parent_ids = parse_ids(body.get("parentId", body.get("parent_id")))
    ip = get_client_ip(headers)

    comments = ctx.require_comments()
    now = ctx.now()
    comment = await comments.repo.insert_comment(Comment(
        article_uid=article_uid,
        article_path=article_path,
        author_name=string_value(body.get("authorName")) or "Anonymous",
        author_email=normalize_email(body.get("authorEmail") or body.get("email")),
        content=content,
        status=CommentStatus.pending.value,
        parent_id=parent_ids[0] if parent_ids else None,
        ip_hash=hash_ip(ip) if ip else None,
        user_agent=get_header(headers, "user-agent"),
        created_at=now,
        updated_at=now,
    ))
    logger.info(f"comment {comment.id} submitted for {article_uid}")
    return {"status": CommentStatus.pending.value}


@envelope("comments/vote")
async def vote_comment(ctx: AppContext, body: Any) -> dict[str, Any]:
    """Count an up/down vote. The returned counts are optimistic; the write is batched."""
    if not is_record(body):
        raise AppError.invalid_request("Invalid payload")
    ids = parse_ids(body.get("id"))
    if len(ids) != 1 or ids[0] <= 0:
        raise AppError.invalid_request("Invalid comment id")
    direction = body.get("direction")
    if direction not in ("up", "down"):
        raise AppError.invalid_request("Direction must be 'up' or 'down'")
    counts = await ctx.require_comments().increment_vote(ids[0], direction)
    return {"id": ids[0], "upvotes": counts.upvotes, "downvotes": counts.downvotes}


def _admin_item(c: Comment) -> dict[str, Any]:
    return {
        "id": c.id,
        "articleUid": c.article_uid,
        "articlePath": c.article_path,
        "authorName": c.author_name,
        "authorEmail": c.author_email,
        "content": c.content,
        "status": c.status,
        "parentId": c.parent_id,
        "upvotes": c.upvotes,
        "downvotes": c.downvotes,
        "createdAt": c.created_at.isoformat() if c.created_at else None,
    }


@envelope("admin/comments")
async def admin_list_comments(ctx: AppContext, is_admin: bool = False, status: Optional[str] = None) -> dict[str, Any]:
    require_admin(is_admin)
    if status and status not in {s.value for s in CommentStatus}:
        raise AppError.invalid_request("Invalid status")
    items = await ctx.require_comments().repo.list_by_status(status)
    return {"items": [_admin_item(c) for c in items]}


@envelope("admin/comments")
async def admin_moderate_comments(ctx: AppContext, body: Any, is_admin: bool = False) -> dict[str, Any]:
    """Bulk approve/archive/unarchive/delete by id list."""
    require_admin(is_admin)
    if not is_record(body):
        raise AppError.invalid_request("Invalid payload")
    action = string_value(body.get("action"))
    if action not in MODERATION_ACTIONS:
        raise AppError.invalid_request("Unsupported action")
    ids = require_ids(body.get("ids"))
    comments = ctx.require_comments()
    updated = await getattr(comments, action)(ids)
    return {"action": action, "updated": updated}
