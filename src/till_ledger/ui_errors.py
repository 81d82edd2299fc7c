from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ApiError, LedgerError, TransportError


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None
    category: str = "collaborator"
    retryable: bool = False

    @property
    def technical_details(self) -> str | None:
        if self.details:
            return self.details
        return None


def to_user_facing_error(exc: ApiError | LedgerError) -> UserFacingError:
    if isinstance(exc, LedgerError):
        details = exc.code
        if exc.details:
            details = f"{details}: {exc.details}"
        return UserFacingError(
            message=exc.message.strip() or "Operation failed",
            details=details,
            category=exc.category,
            retryable=exc.retryable,
        )
    primary = exc.message.strip() or "Request failed"
    if isinstance(exc, TransportError):
        primary = "Could not reach the store service. Check the connection and try again."
    details = f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    retryable = isinstance(exc, TransportError) or exc.status_code >= 500 or exc.status_code == 429
    return UserFacingError(
        message=primary,
        details=details,
        trace_id=exc.trace_id,
        category="collaborator",
        retryable=retryable,
    )
