# =============================================================================
# Service Errors — Request-Scoped Failure Taxonomy
# =============================================================================
#
# Every failure that crosses a module boundary inside the query pipeline is
# one of these. Route handlers translate them into HTTPException (plain
# request/response path) or into a single terminal `error` event (SSE path).
#
#   ServiceError
#   ├── BadRequestError            — empty/missing question (400)
#   ├── StorageError               — placeholder/answer write failed (500)
#   │   └── RecordNotFoundError    — unknown record id (404)
#   ├── UpstreamError              — provider network/status/parse failure (503)
#   │   └── TransportError         — read error on a streaming body
#   ├── UnsupportedOperationError  — streaming asked of a non-streaming provider
#   └── MalformedUpstreamFrame     — one bad SSE frame; recovered locally
#
# Nothing here is fatal to the process: all of them are scoped to the one
# request that raised them.
# =============================================================================

from __future__ import annotations


class ServiceError(Exception):
    """
    Base class for request-scoped service failures.

    Attributes:
        code: Machine-readable error code (e.g. "UPSTREAM_ERROR").
        message: Human-readable message, safe to show to the caller.
        http_status: Status code used when the error is mapped to HTTP.
        extra: Free-form context (provider name, record id, ...) for logs.
    """

    default_code = "SERVICE_ERROR"
    default_status = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        http_status: int | None = None,
        **extra,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.http_status = http_status or self.default_status
        self.extra = extra
        super().__init__(message)


class BadRequestError(ServiceError):
    """The request is invalid before any side effect happened."""

    default_code = "BAD_REQUEST"
    default_status = 400


class StorageError(ServiceError):
    """A question/answer record could not be written or read."""

    default_code = "STORAGE_ERROR"
    default_status = 500


class RecordNotFoundError(StorageError):
    """No record exists for the given identity."""

    default_code = "NOT_FOUND"
    default_status = 404


class UpstreamError(ServiceError):
    """The LLM provider failed: network error, non-2xx status or bad body."""

    default_code = "UPSTREAM_ERROR"
    default_status = 503


class TransportError(UpstreamError):
    """Reading the upstream streaming body failed mid-stream."""

    default_code = "TRANSPORT_ERROR"


class UnsupportedOperationError(ServiceError):
    """The selected provider does not offer the requested capability."""

    default_code = "UNSUPPORTED_OPERATION"
    default_status = 501


class MalformedUpstreamFrame(ServiceError):
    """A single upstream event payload could not be parsed."""

    default_code = "MALFORMED_FRAME"
    default_status = 502
