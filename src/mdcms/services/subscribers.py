"""Newsletter subscription handlers: public subscribe and admin list/moderation"""

import logging
from datetime import timedelta
from typing import Any, Mapping, Optional

from mdcms.crud.models import NewsletterSubscriber, SubscriberStatus
from mdcms.errors import AppError
from mdcms.services.context import AppContext
from mdcms.services.util import (
    envelope,
    get_client_ip,
    get_header,
    is_record,
    normalize_email,
    require_admin,
    require_ids,
    string_value,
)

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(hours=24)
RETRY_AFTER_SECONDS = int(RATE_WINDOW.total_seconds())

ACTIONS = {
    "archive": SubscriberStatus.unsubscribed,
    "unarchive": SubscriberStatus.active,
}


async def _check_rate_limit(ctx: AppContext) -> None:
    limit = ctx.settings.subscribe_daily_limit
    if limit <= 0:
        return
    count = await ctx.subscribers.count_since(ctx.now() - RATE_WINDOW)
    if count >= limit:
        raise AppError.too_many_requests(
            "Too many subscriptions today. Please try again tomorrow.", retry_after=RETRY_AFTER_SECONDS,
        )


@envelope("subscribe")
async def subscribe(ctx: AppContext, body: Any, headers: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Subscribe an email. An already active address is reported, not re-inserted."""
    if not ctx.settings.subscribe_enabled:
        raise AppError.forbidden("Subscriptions are currently disabled.")
    if not is_record(body):
        raise AppError.invalid_request("Invalid payload")
    email = normalize_email(body.get("email"))
    if not email:
        raise AppError.invalid_request("Invalid email")
    source = string_value(body.get("source")) or "web"

    repo = ctx.subscribers
    existing = await repo.find_by_email(email)
    if existing is not None and existing.status == SubscriberStatus.active.value:
        return {"email": email, "status": "already_subscribed"}

    await _check_rate_limit(ctx)
    now = ctx.now()
    values = dict(
        status=SubscriberStatus.active.value, source=source,
        ip=get_client_ip(headers), user_agent=get_header(headers, "user-agent"),
        updated_at=now,
    )
    if existing is not None:
        await repo.update_by_email(email, **values)
        logger.info(f"subscriber re-activated: {email}")
    else:
        await repo.insert(NewsletterSubscriber(email=email, created_at=now, **values))
        logger.info(f"subscriber added: {email}")
    return {"email": email, "status": "subscribed"}


def _subscriber_item(s: NewsletterSubscriber) -> dict[str, Any]:
    return {
        "id": s.id,
        "email": s.email,
        "status": s.status,
        "source": s.source,
        "createdAt": s.created_at.isoformat() if s.created_at else None,
        "updatedAt": s.updated_at.isoformat() if s.updated_at else None,
    }


@envelope("admin/subscribers")
async def admin_list_subscribers(ctx: AppContext, is_admin: bool = False, status: Optional[str] = None) -> dict[str, Any]:
    require_admin(is_admin)
    if status and status not in {s.value for s in SubscriberStatus}:
        raise AppError.invalid_request("Invalid status")
    return {"items": [_subscriber_item(s) for s in await ctx.subscribers.list(status)]}


@envelope("admin/subscribers")
async def admin_update_subscribers(ctx: AppContext, body: Any, is_admin: bool = False) -> dict[str, Any]:
    """Bulk archive (unsubscribe), unarchive (re-activate) or delete by id."""
    require_admin(is_admin)
    if not is_record(body):
        raise AppError.invalid_request("Invalid payload")
    action = string_value(body.get("action"))
    ids = require_ids(body.get("ids"))
    if action == "delete":
        updated = await ctx.subscribers.delete_by_ids(ids)
    elif action in ACTIONS:
        updated = await ctx.subscribers.update_status_by_ids(ids, ACTIONS[action])
    else:
        raise AppError.invalid_request("Unsupported action")
    return {"action": action, "updated": updated}
