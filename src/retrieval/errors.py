"""Exception taxonomy raised by the remote clients and retry policy."""

from __future__ import annotations

from typing import Optional


class ApiError(RuntimeError):
    """Base class for any remote call that did not produce a usable result."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class AuthError(ApiError):
    """Credential rejected (401/403 without a rate-limit signal). Never retried."""


class NotFoundError(ApiError):
    """Resource does not exist or is no longer available (404/410)."""


class EmptyRepositoryError(ApiError):
    """Repository has no git history yet (409 on commit listings)."""


class RequestError(ApiError):
    """Request rejected as malformed (400/422); retrying cannot help."""


class GraphQLError(ApiError):
    """GraphQL responded 200 but reported errors for the query."""


class RetriesExhaustedError(ApiError):
    """Transient failures persisted until the retry budget ran out."""

    def __init__(self, message: str, attempts: int, status: Optional[int] = None,
                 url: Optional[str] = None) -> None:
        super().__init__(message, status=status, url=url)
        self.attempts = attempts


__all__ = [
    "ApiError",
    "AuthError",
    "NotFoundError",
    "EmptyRepositoryError",
    "RequestError",
    "GraphQLError",
    "RetriesExhaustedError",
]
