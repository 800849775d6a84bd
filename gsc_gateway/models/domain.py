"""
Domain Models - Internal business logic models using dataclasses.

All data structures passed between core services are immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class OAuthToken:
    """Token endpoint response, normalized."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class AccessToken:
    """Short-lived bearer credential for the Search Console API."""

    value: str
    expires_in: int | None = None

    def authorization_header(self) -> dict[str, str]:
        """Build the Authorization header for upstream calls."""
        return {"Authorization": f"Bearer {self.value}"}


@dataclass(frozen=True)
class UserCredentials:
    """Snapshot of the credential columns of a user row."""

    user_id: int
    gsc_connected: bool
    refresh_token: str | None
    credits: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a fixed-window rate limit check."""

    limited: bool
    remaining: int
    reset_at: datetime

    def __post_init__(self) -> None:
        """Validate remaining count."""
        if self.remaining < 0:
            raise ValueError(f"Remaining cannot be negative: {self.remaining}")


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of a successful credit charge."""

    ok: bool
    remaining_balance: int

    def __post_init__(self) -> None:
        """Validate balance constraints."""
        if self.remaining_balance < 0:
            raise ValueError(f"Balance cannot be negative: {self.remaining_balance}")


@dataclass(frozen=True)
class FetchResult:
    """Result of a GatewayClient fetch."""

    data: dict[str, Any]
    cached: bool = False
    not_found: bool = False
    suggestions: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        """Serialize to the success envelope returned to callers."""
        body: dict[str, Any] = {"success": True, "data": self.data}
        if self.cached:
            body["cached"] = True
        if self.not_found:
            body["notFound"] = True
            body["suggestions"] = list(self.suggestions)
        return body


@dataclass(frozen=True)
class InsightRecordData:
    """Immutable insight record read back from storage."""

    user_id: int
    site_url: str
    date: str
    kind: str
    content: str
    created_at: datetime
