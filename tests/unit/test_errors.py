"""Unit tests for errors.py and the handler envelope"""

import logging

import pytest

from mdcms.errors import AppError, ErrorCode, ErrorTag
from mdcms.services.util import envelope, get_client_ip, normalize_email, parse_ids


@pytest.mark.parametrize("factory,status", [
    (AppError.invalid_request, 400),
    (AppError.unauthorized, 401),
    (AppError.forbidden, 403),
    (AppError.not_found, 404),
    (AppError.conflict, 409),
    (AppError.internal, 500),
])
def test_factory_statuses(factory, status):
    """Each factory maps to its HTTP status."""
    assert factory().status == status


def test_internal_messages_are_hidden():
    """INTERNAL errors expose a generic message only."""
    error = AppError.internal("db password wrong", tag=ErrorTag.DB)
    assert error.public_payload() == {"code": "INTERNAL", "message": "Internal error"}
    assert AppError.conflict("stale").public_payload() == {"code": "CONFLICT", "message": "stale"}


def test_from_unknown_wraps_and_passes_through():
    """Arbitrary exceptions become INTERNAL; AppErrors are returned as is."""
    cause = KeyError("x")
    wrapped = AppError.from_unknown(cause, tag=ErrorTag.FETCH)
    assert wrapped.code == ErrorCode.INTERNAL
    assert wrapped.__cause__ is cause
    assert not wrapped.expose
    original = AppError.not_found()
    assert AppError.from_unknown(original) is original


def test_from_status_keeps_retry_after_for_429_only():
    """retry_after is only recorded for rate limiting."""
    assert AppError.from_status(429, "slow", retry_after=5).details["retry_after"] == 5
    assert "retry_after" not in AppError.from_status(409, "stale", retry_after=5).details


async def test_envelope_success_and_failure(caplog):
    """Results are wrapped as ok/data; errors as ok/error with the right status, 5xx logged at error."""
    @envelope("sample")
    async def handler(mode):
        if mode == "boom":
            raise RuntimeError("secret detail")
        if mode == "limit":
            raise AppError.too_many_requests("later", retry_after=60)
        return {"mode": mode}

    assert await handler("fine") == (200, {"ok": True, "data": {"mode": "fine"}})

    status, body = await handler("limit")
    assert status == 429
    assert body == {"ok": False, "error": {"code": "TOO_MANY_REQUESTS", "message": "later"}, "retryAfter": 60}

    with caplog.at_level(logging.ERROR, logger="mdcms.services.util"):
        status, body = await handler("boom")
    assert status == 500
    assert "secret detail" not in str(body)
    assert any(r.levelno == logging.ERROR and "[sample]" in r.getMessage() for r in caplog.records)


def test_input_helpers():
    """Email normalization, id parsing and client IP lookup."""
    assert normalize_email(" A@B.co ") == "a@b.co"
    assert normalize_email("nope") is None
    assert parse_ids(["1", 2, "x", True, " 3 "]) == [1, 2, 3]
    assert parse_ids("7") == [7]
    assert get_client_ip({"X-Forwarded-For": " 1.1.1.1 , 2.2.2.2"}) == "1.1.1.1"
    assert get_client_ip({"X-Real-IP": "3.3.3.3"}) == "3.3.3.3"
    assert get_client_ip(None) is None
