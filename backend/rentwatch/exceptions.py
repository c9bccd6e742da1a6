"""
Exceptions raised by the alert-checking engine.

    RentwatchError (base)
    ├── ConfigurationError
    ├── SourceError
    │   └── SourceTimeoutError
    ├── RegistryError
    └── AlertValidationError

Delivery failures are not exceptions: channel senders return a
SendResult with success=False instead.
"""


class RentwatchError(Exception):
    """Base exception for all rentwatch errors."""

    def __init__(self, message: str, *args):
        self.message = message
        super().__init__(message, *args)


class ConfigurationError(RentwatchError):
    """Credentials or settings for a source or channel are missing."""


class SourceError(RentwatchError):
    """A listing source failed (network, HTTP status, malformed payload)."""

    def __init__(self, message: str, source_id: str = None, status_code: int = None):
        super().__init__(message)
        self.source_id = source_id
        self.status_code = status_code

    def __str__(self):
        prefix = f"[{self.source_id}] " if self.source_id else ""
        if self.status_code:
            return f"{prefix}{self.message} (HTTP {self.status_code})"
        return f"{prefix}{self.message}"


class SourceTimeoutError(SourceError):
    """A listing source did not answer within the call timeout."""


class RegistryError(RentwatchError):
    """The building registry lookup failed."""


class AlertValidationError(RentwatchError):
    """A stored alert violates its own invariants and cannot be checked."""

    def __init__(self, message: str, alert_id: str = None):
        super().__init__(message)
        self.alert_id = alert_id
