"""Article request handler: the {v, op, params} envelope over the content store"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

from mdcms.core.models import Document
from mdcms.core.utils import paths
from mdcms.crud.models import Visit
from mdcms.errors import AppError
from mdcms.services import newsletter
from mdcms.services.context import AppContext
from mdcms.services.util import envelope, get_client_ip, get_header, is_record, require_admin, string_value

logger = logging.getLogger(__name__)

OPS = ("list", "get", "upsert", "delete", "archive", "unarchive")
MUTATING_OPS = frozenset({"upsert", "delete", "archive", "unarchive"})


def _timestamp_iso(value: Any) -> Optional[str]:
    """Frontmatter timestamps are epoch seconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _string_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return []


def post_from_doc(doc: Document) -> dict[str, Any]:
    """Presentation shape of a document, as listed and returned by get."""
    path = paths.strip_ext(doc.path)
    meta = doc.meta
    return {
        "path": path,
        "uid": meta.get("uid"),
        "title": string_value(meta.get("title")) or path,
        "excerpt": string_value(meta.get("summary")) or doc.content[:200],
        "date": _timestamp_iso(meta.get("createdAt", meta.get("updatedAt"))),
        "tags": _string_list(meta.get("tags")),
        "categories": [paths.first_segment(path)] if "/" in path else [],
        "cover": string_value(meta.get("coverImageUrl")),
        "status": string_value(meta.get("status")),
        "content": doc.content,
    }


def _parse_request(payload: Any) -> tuple[str, dict[str, Any]]:
    if not is_record(payload):
        raise AppError.invalid_request("Invalid request payload")
    op = string_value(payload.get("op"))
    if str(payload.get("v")) != "1" or not op:
        raise AppError.invalid_request("Invalid request envelope")
    if op not in OPS:
        raise AppError.invalid_request("Unsupported operation")
    params = payload.get("params")
    return op, params if is_record(params) else {}


def _require_path(params: dict[str, Any]) -> str:
    path = string_value(params.get("path") or params.get("articlePath"))
    if not path:
        raise AppError.invalid_request("Path is required")
    return path


async def _list(ctx: AppContext, params: dict[str, Any]) -> dict[str, Any]:
    posts = [post_from_doc(d) for d in await ctx.content.list_docs_with_content()]
    status = string_value(params.get("status"))
    tag = string_value(params.get("tag"))
    category = string_value(params.get("category"))
    q = (string_value(params.get("q")) or "").lower()
    if status:
        posts = [p for p in posts if p["status"] == status]
    if tag:
        posts = [p for p in posts if tag in p["tags"]]
    if category:
        posts = [p for p in posts if category in p["categories"]]
    if q:
        posts = [p for p in posts if q in p["title"].lower() or q in p["excerpt"].lower()]
    posts.sort(key=lambda p: p["date"] or "", reverse=True)
    return {"items": posts}


async def _get(ctx: AppContext, params: dict[str, Any]) -> dict[str, Any]:
    uid = string_value(params.get("articleUid") or params.get("uid"))
    path = string_value(params.get("articlePath") or params.get("path"))
    if uid:
        docs = await ctx.content.list_docs_with_content()
        doc = next((d for d in docs if d.meta.get("uid") == uid), None)
        if doc is None:
            raise AppError.not_found()
    elif path:
        doc = await ctx.content.get_doc(path)
    else:
        raise AppError.invalid_request("Missing article path or uid")
    return {"post": post_from_doc(doc), "sha": doc.sha, "articleUid": doc.meta["uid"]}


async def _upsert(ctx: AppContext, params: dict[str, Any]) -> dict[str, Any]:
    path = _require_path(params)
    content = params.get("content") if isinstance(params.get("content"), str) else ""
    meta = dict(params["meta"]) if is_record(params.get("meta")) else {}
    sha = string_value(params.get("sha"))
    message = string_value(params.get("message")) or f"chore: upsert {path}"
    previous_path = string_value(params.get("previousPath"))
    now = int(ctx.now().timestamp())
    meta["updatedAt"] = now

    if previous_path and previous_path != path:
        if not sha:
            raise AppError.conflict("SHA is required when changing article path")
        await ctx.content.upsert_doc(previous_path, content, meta, sha, message)
        move = await ctx.content.move_doc(previous_path, path, message)
        doc = await ctx.content.get_doc(path)
        return {"path": doc.path, "newSha": doc.sha, "partial": move.partial}

    if not sha:
        meta.setdefault("createdAt", now)
    result = await ctx.content.upsert_doc(path, content, meta, sha, message)
    if not sha:
        await _enqueue_new(ctx, result.path)
    return {"path": result.path, "newSha": result.sha, "commitSha": result.commit}


async def _enqueue_new(ctx: AppContext, path: str) -> None:
    if ctx.db is None:
        logger.info(f"no database configured; {path} not queued for the newsletter")
        return
    doc = await ctx.content.get_doc(path)
    await newsletter.enqueue_article(ctx, doc.meta["uid"], doc.path)


async def _delete(ctx: AppContext, params: dict[str, Any]) -> dict[str, Any]:
    path = _require_path(params)
    message = string_value(params.get("message")) or f"chore: delete {path}"
    result = await ctx.content.delete_doc(path, string_value(params.get("sha")), message)
    return result.model_dump()


async def _archive(ctx: AppContext, params: dict[str, Any]) -> dict[str, Any]:
    path = _require_path(params)
    expected = string_value(params.get("expectedSha") or params.get("sha"))
    message = string_value(params.get("message")) or f"chore: archive {path}"
    result = await ctx.content.archive_doc(path, expected, message)
    return {"status": result.status.value, "path": result.path, "newSha": result.sha, "partial": result.move.partial}


async def _unarchive(ctx: AppContext, params: dict[str, Any]) -> dict[str, Any]:
    path = _require_path(params)
    expected = string_value(params.get("expectedSha") or params.get("sha"))
    message = string_value(params.get("message")) or f"chore: unarchive {path}"
    result = await ctx.content.unarchive_doc(path, expected, message)
    return {"status": result.status.value, "path": result.path, "newSha": result.sha, "partial": result.move.partial}


HANDLERS: dict[str, Callable[[AppContext, dict[str, Any]], Awaitable[dict[str, Any]]]] = {
    "list": _list,
    "get": _get,
    "upsert": _upsert,
    "delete": _delete,
    "archive": _archive,
    "unarchive": _unarchive,
}


@envelope("article")
async def handle_article_request(ctx: AppContext, payload: Any, is_admin: bool = False) -> dict[str, Any]:
    op, params = _parse_request(payload)
    if op in MUTATING_OPS:
        require_admin(is_admin)
    return await HANDLERS[op](ctx, params)


@envelope("visits")
async def record_visit(
    ctx: AppContext,
    article_uid: str,
    article_path: str,
    headers: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
    """Queue a page view; visits reach the database in pooled batches."""
    if not string_value(article_uid) or not string_value(article_path):
        raise AppError.invalid_request("articleUid and articlePath are required")
    visit = Visit(
        article_uid=article_uid.strip(), article_path=article_path.strip(),
        ip=get_client_ip(headers), ua=get_header(headers, "user-agent"),
    )
    await ctx.require_visit_pool().add(visit)
    return {"recorded": True}


@envelope("visits")
async def visit_counts(ctx: AppContext, is_admin: bool = False) -> dict[str, Any]:
    require_admin(is_admin)
    return {"items": await ctx.visits.count_by_article_uid()}
