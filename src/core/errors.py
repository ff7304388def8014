"""
Error taxonomy for the analytics engine.

Caller-fixable problems inside components are returned as validation error
dataclasses on the output models. The exceptions below are raised by the
stateful services and adapters, and mapped to HTTP statuses by the API shell.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base analytics engine error."""

    code = "analytics_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class ValidationError(AnalyticsError):
    """Bad or missing input."""

    code = "validation_error"


class AuthorizationError(AnalyticsError):
    """Valid request, insufficient rights."""

    code = "forbidden"


class NotFoundError(AnalyticsError):
    """Resource absent or not visible to the caller."""

    code = "not_found"


class ConflictError(AnalyticsError):
    """Raised when a state transition is not allowed."""

    code = "invalid_transition"

    def __init__(
        self,
        message: str,
        from_status: str | None = None,
        to_status: str | None = None,
        code: str | None = None,
    ) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message, code)

    @classmethod
    def transition(cls, from_status: str, to_status: str, reason: str = "") -> ConflictError:
        msg = f"Cannot transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        return cls(msg, from_status=from_status, to_status=to_status)


class UpstreamError(AnalyticsError):
    """Durable store or external provider failure."""

    code = "upstream_error"


class ConfigurationError(AnalyticsError):
    """Missing secret or salt material. Fatal at process start."""

    code = "configuration_error"
