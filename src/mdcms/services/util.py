"""Handler helpers: response envelopes, input coercion and client identification"""

import functools
import logging
import re
from typing import Any, Awaitable, Callable, Mapping, Optional

from mdcms.core.utils.hashing import sha256
from mdcms.errors import AppError, ErrorTag

logger = logging.getLogger(__name__)

Response = tuple[int, dict[str, Any]]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def ok(data: Any, status: int = 200) -> Response:
    return status, {"ok": True, "data": data}


def fail(error: AppError) -> Response:
    body: dict[str, Any] = {"ok": False, "error": error.public_payload()}
    if "retry_after" in error.details:
        body["retryAfter"] = error.details["retry_after"]
    return error.status, body


def envelope(name: str) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Response]]]:
    """Wrap an async handler so its result becomes {ok, data} and any error {ok, error}.

    Non-AppError exceptions are classified INTERNAL; full detail is only logged.
    """
    def decorator(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Response]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return ok(await fn(*args, **kwargs))
            except Exception as e:
                error = AppError.from_unknown(e, tag=ErrorTag.UNKNOWN)
                msg = f"[{name}] {error.code.value} tag={error.tag.value} status={error.status}: {error.message}"
                if error.status >= 500:
                    logger.error(msg, exc_info=e)
                else:
                    logger.warning(msg)
                return fail(error)
        return wrapper
    return decorator


def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def string_value(value: Any) -> Optional[str]:
    """Trimmed non-empty string, else None."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def normalize_email(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    email = value.strip().lower()
    return email if email and _EMAIL_RE.match(email) else None


def parse_ids(value: Any) -> list[int]:
    """Coerce an id, a numeric string or a list of them into ints; unparseable items are dropped."""
    items = value if isinstance(value, list) else [value]
    ids: list[int] = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            ids.append(item)
        elif isinstance(item, str) and item.strip().lstrip("-").isdigit():
            ids.append(int(item.strip()))
    return ids


def require_ids(value: Any) -> list[int]:
    ids = parse_ids(value)
    if not ids:
        raise AppError.invalid_request("ids are required")
    return ids


def get_client_ip(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP."""
    if not headers:
        return None
    lowered = {k.lower(): v for k, v in headers.items()}
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return lowered.get("x-real-ip") or None


def get_header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    name = name.lower()
    return next((v for k, v in headers.items() if k.lower() == name), None)


def hash_ip(ip: str) -> str:
    return sha256(ip)


def require_admin(is_admin: bool) -> None:
    """The admin identity is resolved upstream; handlers only see the boolean."""
    if not is_admin:
        raise AppError.unauthorized()
