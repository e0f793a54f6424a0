"""Application error taxonomy shared by stores, caches, repositories and handlers"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    INTERNAL = "INTERNAL"


class ErrorTag(str, Enum):
    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    DB = "DB"
    FETCH = "FETCH"
    ENV = "ENV"
    UNKNOWN = "UNKNOWN"


_STATUS = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.TOO_MANY_REQUESTS: 429,
    ErrorCode.INTERNAL: 500,
}

_REMOTE_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    429: ErrorCode.TOO_MANY_REQUESTS,
}


class AppError(Exception):
    """A classified failure.

    `expose` decides whether `message` may reach a client; every code except
    INTERNAL is an expected failure and exposed by default.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        tag: ErrorTag = ErrorTag.UNKNOWN,
        status: Optional[int] = None,
        expose: Optional[bool] = None,
        details: Optional[dict[str, Any]] = None,
        ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.tag = tag
        self.status = status if status is not None else _STATUS[code]
        self.expose = expose if expose is not None else code != ErrorCode.INTERNAL
        self.details = details or {}

    def __repr__(self) -> str:
        return f"AppError({self.code.value}, {self.message!r}, tag={self.tag.value})"

    def public_payload(self) -> dict[str, str]:
        """Client-safe {code, message}; unexposed messages become 'Internal error'."""
        return {
            "code": self.code.value,
            "message": self.message if self.expose else "Internal error",
        }

    @classmethod
    def from_unknown(
        cls,
        error: BaseException,
        tag: ErrorTag = ErrorTag.UNKNOWN,
        message: str = "Internal error",
        ) -> "AppError":
        """Wrap an arbitrary exception as INTERNAL. AppErrors pass through unchanged."""
        if isinstance(error, AppError):
            return error
        wrapped = cls(ErrorCode.INTERNAL, message, tag=tag, expose=False, details={"cause": repr(error)})
        wrapped.__cause__ = error
        return wrapped

    @classmethod
    def from_status(
        cls,
        status: int,
        message: str,
        tag: ErrorTag = ErrorTag.FETCH,
        retry_after: Optional[int] = None,
        ) -> "AppError":
        """Classify a remote HTTP status. The remote message is only exposed for expected kinds."""
        code = _REMOTE_CODES.get(status, ErrorCode.INTERNAL)
        details: dict[str, Any] = {"remote_status": status}
        if code == ErrorCode.TOO_MANY_REQUESTS and retry_after is not None:
            details["retry_after"] = retry_after
        return cls(code, message, tag=tag, details=details)

    @classmethod
    def invalid_request(cls, message: str = "Invalid request", details: Optional[dict] = None) -> "AppError":
        return cls(ErrorCode.INVALID_REQUEST, message, tag=ErrorTag.VALIDATION, details=details)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized") -> "AppError":
        return cls(ErrorCode.UNAUTHORIZED, message, tag=ErrorTag.AUTH)

    @classmethod
    def forbidden(cls, message: str = "Forbidden") -> "AppError":
        return cls(ErrorCode.FORBIDDEN, message, tag=ErrorTag.AUTH)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "AppError":
        return cls(ErrorCode.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str = "Conflict", details: Optional[dict] = None) -> "AppError":
        return cls(ErrorCode.CONFLICT, message, details=details)

    @classmethod
    def too_many_requests(cls, message: str, retry_after: int) -> "AppError":
        return cls(ErrorCode.TOO_MANY_REQUESTS, message, tag=ErrorTag.VALIDATION,
                   details={"retry_after": retry_after})

    @classmethod
    def internal(cls, message: str = "Internal error", tag: ErrorTag = ErrorTag.UNKNOWN) -> "AppError":
        return cls(ErrorCode.INTERNAL, message, tag=tag, expose=False)
