"""Newsletter: queue newly published articles and mail them as one digest through Mailgun"""

import html
import logging
from typing import Any

import httpx

from mdcms.core.models import DocStatus, Document
from mdcms.core.utils import paths
from mdcms.crud.models import NewsletterQueueItem, SubscriberStatus
from mdcms.errors import AppError, ErrorCode, ErrorTag
from mdcms.services.context import AppContext
from mdcms.services.util import envelope, require_admin, string_value

logger = logging.getLogger(__name__)


async def enqueue_article(ctx: AppContext, article_uid: str, article_path: str) -> bool:
    """Queue an article once; a second enqueue of the same uid is a no-op."""
    queued = await ctx.newsletter_queue.enqueue(article_uid, article_path)
    if queued:
        logger.info(f"newsletter: queued {article_uid} ({article_path})")
    return queued


def build_email_content(base_url: str, docs: list[dict[str, str]]) -> dict[str, str]:
    """Subject, plain-text and HTML bodies for a digest of docs ({title, summary, path})."""
    base_url = base_url.rstrip("/")
    text_lines, html_items = [], []
    for doc in docs:
        link = f"{base_url}/posts/{paths.strip_ext(doc['path'])}"
        text_lines.append(f"- {doc['title']}\n  {doc['summary']}\n  {link}")
        html_items.append(
            f'<li><a href="{html.escape(link)}">{html.escape(doc["title"])}</a>'
            f"<p>{html.escape(doc['summary'])}</p></li>"
        )
    return {
        "subject": f"New posts ({len(docs)})",
        "text": "New posts:\n\n" + "\n\n".join(text_lines),
        "html": f"<p>New posts:</p><ul>{''.join(html_items)}</ul>",
    }


async def send_mailgun_message(ctx: AppContext, to: list[str], subject: str, text: str, html_body: str) -> None:
    settings = ctx.settings
    if not settings.mailgun_api_key or not settings.mailgun_domain:
        raise AppError.internal("mailgun_api_key and mailgun_domain are required", tag=ErrorTag.ENV)
    domain = settings.mailgun_domain.strip()
    sender = string_value(settings.mailgun_from) or f"no-reply@{domain}"
    url = f"{settings.mailgun_api_base.rstrip('/')}/{domain}/messages"
    data = {"from": sender, "to": ",".join(to), "subject": subject, "text": text, "html": html_body}

    async with httpx.AsyncClient(transport=ctx.mail_transport, timeout=30.0) as client:
        try:
            response = await client.post(url, data=data, auth=("api", settings.mailgun_api_key))
        except httpx.HTTPError as e:
            raise AppError.from_unknown(e, tag=ErrorTag.FETCH, message=f"Mailgun request failed: {e}") from e
    if not response.is_success:
        logger.error(f"mailgun send error {response.status_code}: {response.text}")
        raise AppError(
            ErrorCode.INTERNAL, f"Mailgun error: {response.status_code}", tag=ErrorTag.FETCH,
            expose=True, details={"status": response.status_code, "body": response.text},
        )
    logger.info(f"mailgun send ok: {len(to)} recipient(s)")


def _result(queued: int, sent: int = 0, not_found: int = 0, not_published: int = 0, recipients: int = 0) -> dict[str, int]:
    return {
        "queued": queued,
        "sent": sent,
        "skipped": not_found + not_published,
        "skipped_not_found": not_found,
        "skipped_not_published": not_published,
        "recipients": recipients,
    }


async def send_queued(ctx: AppContext) -> dict[str, int]:
    """Mail every pending, published article to active subscribers and mark those entries sent.

    Entries whose article is missing or unpublished are skipped and stay queued.
    """
    queue = await ctx.newsletter_queue.list_pending()
    queued = len(queue)
    logger.info(f"newsletter: {queued} pending")
    if not queued:
        return _result(0)

    subscribers = await ctx.subscribers.list(SubscriberStatus.active.value)
    recipients = [s.email for s in subscribers]
    if not recipients:
        return _result(queued, not_published=queued)

    publishable: list[tuple[NewsletterQueueItem, Document]] = []
    not_found = not_published = 0
    for entry in queue:
        doc = await ctx.content.find_doc(entry.article_path)
        if doc is None:
            not_found += 1
        elif doc.meta.get("status") != DocStatus.published.value:
            not_published += 1
        else:
            publishable.append((entry, doc))

    if not publishable:
        logger.info(f"newsletter: nothing published ({not_found} missing, {not_published} unpublished)")
        return _result(queued, not_found=not_found, not_published=not_published, recipients=len(recipients))

    content = build_email_content(ctx.settings.site_url, [
        {
            "title": string_value(doc.meta.get("title")) or doc.path,
            "summary": string_value(doc.meta.get("summary")) or doc.content[:160],
            "path": doc.path,
        }
        for _, doc in publishable
    ])
    await send_mailgun_message(ctx, recipients, content["subject"], content["text"], content["html"])
    sent = await ctx.newsletter_queue.mark_sent([entry.id for entry, _ in publishable], ctx.now())
    return _result(queued, sent, not_found, not_published, len(recipients))


@envelope("newsletter")
async def admin_send_newsletter(ctx: AppContext, is_admin: bool = False) -> dict[str, Any]:
    require_admin(is_admin)
    return await send_queued(ctx)
