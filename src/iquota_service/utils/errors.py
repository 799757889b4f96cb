"""Error taxonomy surfaced to callers of the quota layer."""

from typing import Any

NOT_FOUND = "AEC_NOT_FOUND"
FORBIDDEN = "AEC_FORBIDDEN"
BAD_REQUEST = "AEC_BAD_REQUEST"
STORE_UNAVAILABLE = "AEC_STORE_UNAVAILABLE"


class QuotaServiceError(Exception):
    """Base class for every error raised by this package.

    Carries a machine-readable ``code`` alongside the message so front ends
    can render backend-specific guidance.
    """

    code: str = BAD_REQUEST

    def __init__(self, message: str, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Wire shape rendered by front ends."""
        return {"code": self.code, "message": self.message}


class BadRequestError(QuotaServiceError):
    """The request is missing or has malformed parameters."""

    code = BAD_REQUEST


class NotFoundError(QuotaServiceError):
    """No quota exists for the requested principal or path."""

    code = NOT_FOUND

    def __init__(self, message: str = "Quota not found", code: str | None = None):
        super().__init__(message, code)


class UnauthorizedError(QuotaServiceError):
    """The caller may not view the requested quota."""

    code = FORBIDDEN

    def __init__(self, message: str = "Access denied", code: str | None = None):
        super().__init__(message, code)


class BackendError(QuotaServiceError):
    """Opaque error from a backend adapter, passed through unmodified."""

    def __init__(self, code: str, message: str, backend: str | None = None):
        self.backend = backend
        super().__init__(message, code)

    def __str__(self) -> str:
        label = f"{self.backend} API Error" if self.backend else "Backend Error"
        return f"{label}: {self.code} - {self.message}"

    @classmethod
    def from_payload(cls, payload: dict[str, Any], backend: str | None = None) -> "BackendError":
        """Build from a ``{"code": ..., "message": ...}`` error object."""
        return cls(
            code=str(payload.get("code") or BAD_REQUEST),
            message=str(payload.get("message") or "Unknown backend error"),
            backend=backend,
        )


class StoreUnavailableError(QuotaServiceError):
    """The cache store could not be reached or answered garbage.

    Never a cache miss: callers decide whether to fail the request or
    bypass the cache for that call.
    """

    code = STORE_UNAVAILABLE

    def __init__(self, message: str = "Cache store unavailable", code: str | None = None):
        super().__init__(message, code)


def is_not_found(error: BaseException) -> bool:
    """True for a typed not-found, including a backend error coded as one."""
    if isinstance(error, NotFoundError):
        return True
    return isinstance(error, BackendError) and error.code == NOT_FOUND
