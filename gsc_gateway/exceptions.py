"""
Exception Classes - Closed error taxonomy for the gateway core.

Every exception carries an ErrorKind tag, an HTTP status and a typed
details payload. The HTTP boundary matches on the kind exhaustively.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    """Stable error codes surfaced to clients."""

    VALIDATION = "VALIDATION_ERROR"
    AUTH = "AUTH_ERROR"
    PERMISSION = "PERMISSION_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    UPSTREAM = "UPSTREAM_ERROR"
    DATABASE = "DATABASE_ERROR"


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    kind: ClassVar[ErrorKind]
    status_code: ClassVar[int]

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, Any] | None:
        """Structured payload for the error response, if any."""
        return None


class ValidationError(GatewayError):
    """Raised when caller input is malformed or incomplete. Never retried."""

    kind = ErrorKind.VALIDATION
    status_code = 400

    def __init__(self, message: str, missing_fields: list[str] | None = None) -> None:
        self.missing_fields = missing_fields or []
        super().__init__(message)

    def details(self) -> dict[str, Any] | None:
        if not self.missing_fields:
            return None
        return {"missingFields": self.missing_fields}


class AuthError(GatewayError):
    """Raised when the credential chain is missing, invalid or expired."""

    kind = ErrorKind.AUTH
    status_code = 401

    def __init__(self, message: str, needs_connection: bool = True) -> None:
        self.needs_connection = needs_connection
        super().__init__(message)

    def details(self) -> dict[str, Any] | None:
        return {"needsConnection": self.needs_connection}


class PermissionDeniedError(GatewayError):
    """Raised when credentials are valid but lack the grant for a resource."""

    kind = ErrorKind.PERMISSION
    status_code = 403

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Permission denied: {reason}")

    def details(self) -> dict[str, Any] | None:
        return {"reason": self.reason}


class RateLimitError(GatewayError):
    """Raised when the advisory rate limit for an operation is exhausted."""

    kind = ErrorKind.RATE_LIMIT
    status_code = 429

    def __init__(self, remaining: int, reset_at: datetime) -> None:
        self.remaining = remaining
        self.reset_at = reset_at
        super().__init__("Rate limit exceeded")

    @property
    def reset_epoch_ms(self) -> int:
        return int(self.reset_at.timestamp() * 1000)

    def details(self) -> dict[str, Any] | None:
        return {"remaining": self.remaining, "reset": self.reset_epoch_ms}


class InsufficientCreditsError(GatewayError):
    """Raised when account has insufficient balance for charge."""

    kind = ErrorKind.INSUFFICIENT_CREDITS
    status_code = 402

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")

    def details(self) -> dict[str, Any] | None:
        return {"credits": self.balance, "required": self.required}


class UpstreamError(GatewayError):
    """Raised on network failure, timeout or unexpected status from a provider."""

    kind = ErrorKind.UPSTREAM
    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        self.upstream_status = upstream_status
        super().__init__(message)

    def details(self) -> dict[str, Any] | None:
        if self.upstream_status is None:
            return None
        return {"status": self.upstream_status}


class DatabaseError(GatewayError):
    """Raised when a database operation fails unexpectedly."""

    kind = ErrorKind.DATABASE
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(f"Database error: {message}")
