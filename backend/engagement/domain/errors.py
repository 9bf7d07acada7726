"""Domain-level exceptions for the lifecycle & engagement engine."""

from __future__ import annotations


class EngagementError(Exception):
    """Base class for engagement engine errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class DataIntegrityError(EngagementError):
    """A unit of work found rows in a state it cannot act on."""

    reason = "integrity"


class SessionNotFoundError(DataIntegrityError):
    reason = "session_not_found"


class SessionNotCompletedError(DataIntegrityError):
    reason = "session_not_completed"


class SessionNotFinishedError(DataIntegrityError):
    reason = "session_end_in_future"


class CatalogMissingError(DataIntegrityError):
    reason = "catalog_missing"


class GatewayError(EngagementError):
    """Outbound delivery failed; logged by callers, never retried."""

    reason = "gateway_failed"


class TemplateNotFoundError(EngagementError):
    reason = "template_not_found"
