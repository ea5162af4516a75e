"""Error taxonomy for the pairing relay.

Every :class:`PairingError` carries the HTTP status it maps to and the short
message returned to the client as ``{"error": message}``.  The underlying
cause, when there is one, is chained with ``raise ... from`` so the API layer
can log it without exposing it.
"""
from __future__ import annotations

from typing import Any

__all__ = [
    "PairingError",
    "ValidationError",
    "MissingPushToken",
    "MissingCode",
    "MissingAppName",
    "MissingFields",
    "NotFoundError",
    "CodeNotFound",
    "InvalidToken",
    "DependencyError",
    "StoreError",
    "DispatchFailed",
    "EnvelopeError",
    "MalformedEnvelope",
    "AppNameMismatch",
]


class PairingError(RuntimeError):
    status_code: int = 500
    default_message: str = "Server problem"

    def __init__(self, message: str | None = None, *, detail: Any | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail

    def as_dict(self) -> dict[str, str]:
        return {"error": self.message}


class ValidationError(PairingError):
    status_code = 400
    default_message = "Incomplete request"


class MissingPushToken(ValidationError):
    pass


class MissingCode(ValidationError):
    pass


class MissingAppName(ValidationError):
    default_message = "No appname provided"


class MissingFields(ValidationError):
    pass


class NotFoundError(PairingError):
    status_code = 404
    default_message = "not found"


class CodeNotFound(NotFoundError):
    default_message = "no such code"


class InvalidToken(PairingError):
    status_code = 400
    default_message = "Invalid token"


class DependencyError(PairingError):
    status_code = 500
    default_message = "Server problem"


class StoreError(DependencyError):
    pass


class DispatchFailed(DependencyError):
    default_message = "Push notification failed"


class EnvelopeError(ValueError):
    """Base for envelope decoding failures raised by the token codec."""


class MalformedEnvelope(EnvelopeError):
    pass


class AppNameMismatch(EnvelopeError):
    def __init__(self, expected: str | None, actual: str | None) -> None:
        super().__init__(f"mismatched appname ({expected!r} vs {actual!r})")
        self.expected = expected
        self.actual = actual
