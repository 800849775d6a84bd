"""
Tests for exception classes and their HTTP rendering.

Covers every ErrorKind, its status code, details payload and headers.
"""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from gsc_gateway.api.errors import (
    error_body,
    error_headers,
    error_response,
    unhandled_error_handler,
)
from gsc_gateway.exceptions import (
    AuthError,
    DatabaseError,
    ErrorKind,
    GatewayError,
    InsufficientCreditsError,
    PermissionDeniedError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)

RESET_AT = datetime(2025, 1, 15, 12, 1, tzinfo=UTC)

ALL_ERRORS: list[GatewayError] = [
    ValidationError("Missing required fields: siteUrl", missing_fields=["siteUrl"]),
    AuthError("not connected"),
    PermissionDeniedError("no access to property"),
    RateLimitError(remaining=0, reset_at=RESET_AT),
    InsufficientCreditsError(balance=0, required=1),
    UpstreamError("Search Console returned 500", upstream_status=500),
    DatabaseError("connection lost"),
]


class TestTaxonomy:
    """Every kind has exactly one exception class."""

    def test_kinds_are_closed(self) -> None:
        assert {e.kind for e in ALL_ERRORS} == set(ErrorKind)

    @pytest.mark.parametrize(
        ("error", "status"),
        list(zip(ALL_ERRORS, [400, 401, 403, 429, 402, 502, 500], strict=True)),
    )
    def test_status_codes(self, error: GatewayError, status: int) -> None:
        assert error.status_code == status

    def test_all_are_gateway_errors(self) -> None:
        assert all(isinstance(e, GatewayError) for e in ALL_ERRORS)


class TestDetails:
    def test_validation_lists_fields(self) -> None:
        error = ValidationError("missing", missing_fields=["siteUrl", "endDate"])
        assert error.details() == {"missingFields": ["siteUrl", "endDate"]}

    def test_validation_without_fields_has_no_details(self) -> None:
        assert ValidationError("bad input").details() is None

    def test_auth_flags_connection(self) -> None:
        assert AuthError("not connected").details() == {"needsConnection": True}
        assert AuthError("bad jwt", needs_connection=False).details() == {"needsConnection": False}

    def test_rate_limit_reset_in_epoch_ms(self) -> None:
        error = RateLimitError(remaining=0, reset_at=RESET_AT)
        assert error.details() == {"remaining": 0, "reset": 1736942460000}

    def test_insufficient_credits_message(self) -> None:
        error = InsufficientCreditsError(balance=2, required=3)
        assert "Balance: 2" in str(error)
        assert error.details() == {"credits": 2, "required": 3}

    def test_upstream_without_status(self) -> None:
        assert UpstreamError("timed out").details() is None


class TestErrorResponse:
    """JSON shape {success: false, error, code, details?}."""

    @pytest.mark.parametrize("error", ALL_ERRORS)
    def test_shape(self, error: GatewayError) -> None:
        body = error_body(error)

        assert body["success"] is False
        assert body["code"] == error.kind.value
        assert body["error"] == error.message
        if error.details() is None:
            assert "details" not in body
        else:
            assert body["details"] == error.details()

    def test_rate_limit_headers(self) -> None:
        response = error_response(RateLimitError(remaining=0, reset_at=RESET_AT))

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "1736942460000"
        assert json.loads(response.body)["code"] == "RATE_LIMIT_ERROR"

    def test_other_errors_have_no_rate_limit_headers(self) -> None:
        for error in ALL_ERRORS:
            if error.kind is not ErrorKind.RATE_LIMIT:
                assert "X-RateLimit-Remaining" not in error_headers(error)

    def test_database_error_body(self) -> None:
        response = error_response(DatabaseError("connection lost"))

        assert response.status_code == 500
        assert json.loads(response.body) == {
            "success": False,
            "error": "Database error: connection lost",
            "code": "DATABASE_ERROR",
        }

    async def test_unknown_exception_is_internal_error(self) -> None:
        request = MagicMock()
        request.url.path = "/v1/gsc/properties"

        response = await unhandled_error_handler(request, RuntimeError("boom"))

        assert response.status_code == 500
        assert json.loads(response.body)["code"] == "INTERNAL_ERROR"
