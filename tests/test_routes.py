"""
Tests for API Routes.

Route handler functions are called directly with mocked services; a few
tests go through the ASGI app to check error rendering end to end.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError as PydanticValidationError

from gsc_gateway.api import routes
from gsc_gateway.api.dependencies import (
    decode_user_id,
    get_current_user_id,
    get_insight_generator,
    get_search_console,
)
from gsc_gateway.config import settings
from gsc_gateway.db.session import get_write_db
from gsc_gateway.exceptions import (
    AuthError,
    InsufficientCreditsError,
    RateLimitError,
    ValidationError,
)
from gsc_gateway.main import app
from gsc_gateway.models.api import (
    GscDataRequest,
    InsightRequest,
    OAuthCallbackRequest,
    UseCreditsRequest,
)
from gsc_gateway.models.domain import AccessToken, FetchResult
from gsc_gateway.services.insight_generator import InsightGenerator
from gsc_gateway.services.search_console import SearchConsoleService
from gsc_gateway.services.token_manager import TokenManager
from tests.fakes import FakeDatabase


def make_jwt(claims: dict, secret: str | None = None) -> str:
    return jwt.encode(claims, secret or settings.JWT_SECRET, algorithm="HS256")


@pytest.fixture
def search_console() -> AsyncMock:
    return AsyncMock(spec=SearchConsoleService)


@pytest.fixture
def token_manager() -> AsyncMock:
    return AsyncMock(spec=TokenManager)


class TestCallerAuthentication:
    """HS256 JWT with a user_id claim."""

    def test_valid_token(self) -> None:
        assert decode_user_id(make_jwt({"user_id": 42})) == 42

    def test_wrong_secret(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_user_id(make_jwt({"user_id": 42}, secret="another-secret-another-secret-xx"))
        assert exc_info.value.needs_connection is False

    def test_expired_token(self) -> None:
        token = make_jwt({"user_id": 42, "exp": datetime.now(UTC) - timedelta(minutes=1)})
        with pytest.raises(AuthError, match="expired"):
            decode_user_id(token)

    def test_missing_claim(self) -> None:
        with pytest.raises(AuthError):
            decode_user_id(make_jwt({"sub": "42"}))


class TestSearchConsoleRoutes:
    async def test_properties(self, search_console: AsyncMock) -> None:
        search_console.list_properties.return_value = FetchResult(data={"siteEntry": []})

        body = await routes.get_properties(user_id=1, service=search_console)

        assert body == {"success": True, "data": {"siteEntry": []}}
        search_console.list_properties.assert_awaited_once_with(1)

    async def test_gsc_data_passes_fields(self, search_console: AsyncMock) -> None:
        search_console.query_analytics.return_value = FetchResult(
            data={"rows": []}, not_found=True, suggestions=["sc-domain:example.com"]
        )
        request = GscDataRequest.model_validate(
            {"siteUrl": "example.com", "startDate": "2025-01-01", "endDate": "2025-01-31"}
        )

        body = await routes.fetch_gsc_data(request, user_id=1, service=search_console)

        assert body["notFound"] is True
        search_console.query_analytics.assert_awaited_once_with(
            1, "example.com", "2025-01-01", "2025-01-31", dimensions=None, row_limit=500
        )

    async def test_top_pages(self, search_console: AsyncMock) -> None:
        search_console.top_pages.return_value = {"success": True, "pages": [], "limit": 10}

        body = await routes.get_top_pages(
            site_url="https://example.com/",
            start_date="2025-01-01",
            end_date="2025-01-31",
            limit=25,
            user_id=1,
            service=search_console,
        )

        assert body["limit"] == 10
        search_console.top_pages.assert_awaited_once_with(
            1, "https://example.com/", "2025-01-01", "2025-01-31", limit=25
        )


class TestInsightRoutes:
    async def test_requires_site_url(self) -> None:
        generator = AsyncMock(spec=InsightGenerator)

        with pytest.raises(ValidationError) as exc_info:
            await routes.generate_insights(
                InsightRequest(), force=False, user_id=1, generator=generator
            )

        assert exc_info.value.missing_fields == ["siteUrl"]
        generator.generate.assert_not_called()

    async def test_rows_extracted_from_query_response(self) -> None:
        generator = AsyncMock(spec=InsightGenerator)
        generator.generate.return_value = {"summary": "ok"}
        request = InsightRequest.model_validate(
            {"siteUrl": "https://example.com/", "period": "last 7 days", "data": {"rows": [{"clicks": 1}]}}
        )

        await routes.generate_insights(request, force=True, user_id=1, generator=generator)

        generator.generate.assert_awaited_once_with(
            1, "https://example.com/", "last 7 days", [{"clicks": 1}], force_refresh=True
        )


class TestCreditAndAuthRoutes:
    async def test_credits(self) -> None:
        response = await routes.get_credits(user_id=1, db=FakeDatabase(credits={1: 3}))

        assert response.credits == 3

    async def test_use_credits_charges_and_logs(self) -> None:
        db = FakeDatabase(credits={1: 5})

        response = await routes.use_credits(
            UseCreditsRequest(amount=2, purpose="export"), user_id=1, db=db
        )

        assert response.model_dump() == {"success": True, "credits": 3}
        assert db.balance(1) == 3
        assert db.logs("export") == [(1, 2, "export")]

    async def test_use_credits_short_balance(self) -> None:
        db = FakeDatabase(credits={1: 1})

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await routes.use_credits(UseCreditsRequest(amount=2, purpose="export"), user_id=1, db=db)

        assert exc_info.value.details() == {"credits": 1, "required": 2}
        assert db.balance(1) == 1
        assert db.logs() == []

    def test_use_credits_request_bounds(self) -> None:
        assert UseCreditsRequest(purpose="export").amount == 1
        with pytest.raises(PydanticValidationError):
            UseCreditsRequest(amount=0, purpose="export")
        with pytest.raises(PydanticValidationError):
            UseCreditsRequest(amount=1, purpose="")

    async def test_callback_requires_code(self, token_manager: AsyncMock) -> None:
        with pytest.raises(ValidationError):
            await routes.gsc_oauth_callback(OAuthCallbackRequest(), user_id=1, manager=token_manager)

    async def test_callback_connects(self, token_manager: AsyncMock) -> None:
        response = await routes.gsc_oauth_callback(
            OAuthCallbackRequest(code="abc"), user_id=1, manager=token_manager
        )

        assert response.success is True
        token_manager.connect.assert_awaited_once_with(1, "abc", settings.oauth_redirect_uri)

    async def test_refresh(self, token_manager: AsyncMock) -> None:
        token_manager.force_refresh.return_value = AccessToken("new", 3599)

        response = await routes.refresh_gsc_token(user_id=1, manager=token_manager)

        assert response.model_dump(by_alias=True) == {"success": True, "expiresIn": 3599}

    async def test_disconnect(self, token_manager: AsyncMock) -> None:
        await routes.disconnect_gsc(user_id=1, manager=token_manager)

        token_manager.disconnect.assert_awaited_once_with(1)


class TestErrorRenderingThroughApp:
    """GatewayError subclasses become the JSON error shape."""

    @pytest.fixture(autouse=True)
    def clear_overrides(self):
        yield
        app.dependency_overrides.clear()

    async def test_missing_bearer_is_auth_error(self) -> None:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/v1/gsc/properties")

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Authorization header required",
            "code": "AUTH_ERROR",
            "details": {"needsConnection": False},
        }

    async def test_rate_limit_headers(self, search_console: AsyncMock) -> None:
        reset_at = datetime(2025, 1, 15, 12, 1, tzinfo=UTC)
        search_console.list_properties.side_effect = RateLimitError(0, reset_at)
        app.dependency_overrides[get_current_user_id] = lambda: 1
        app.dependency_overrides[get_search_console] = lambda: search_console

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/v1/gsc/properties")

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "1736942460000"
        assert response.json()["details"] == {"remaining": 0, "reset": 1736942460000}

    async def test_missing_fields_rendered(self, search_console: AsyncMock) -> None:
        search_console.query_analytics.side_effect = ValidationError(
            "Missing required fields: siteUrl, endDate", missing_fields=["siteUrl", "endDate"]
        )
        app.dependency_overrides[get_current_user_id] = lambda: 1
        app.dependency_overrides[get_search_console] = lambda: search_console

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/v1/gsc/data", json={"startDate": "2025-01-01"})

        assert response.status_code == 400
        assert response.json()["details"] == {"missingFields": ["siteUrl", "endDate"]}

    async def test_use_credits_402_body(self) -> None:
        app.dependency_overrides[get_current_user_id] = lambda: 1
        app.dependency_overrides[get_write_db] = lambda: FakeDatabase(credits={1: 0})

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/v1/credits/use", json={"amount": 1, "purpose": "export"}
            )

        assert response.status_code == 402
        assert response.json() == {
            "success": False,
            "error": "Insufficient credits. Balance: 0, Required: 1",
            "code": "INSUFFICIENT_CREDITS",
            "details": {"credits": 0, "required": 1},
        }

    async def test_insufficient_credits_is_402(self) -> None:
        generator = AsyncMock(spec=InsightGenerator)
        generator.generate.side_effect = InsufficientCreditsError(0, 1)
        app.dependency_overrides[get_current_user_id] = lambda: 1
        app.dependency_overrides[get_insight_generator] = lambda: generator

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/v1/insights/generate", json={"siteUrl": "https://example.com/"}
            )

        assert response.status_code == 402
        assert response.json()["code"] == "INSUFFICIENT_CREDITS"
