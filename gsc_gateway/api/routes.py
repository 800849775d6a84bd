"""
API Routes - FastAPI endpoints for Search Console data, insights and credits.

Handlers only translate HTTP to service calls; GatewayError subclasses are
rendered by the application's exception handler.
"""

import secrets
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gsc_gateway.api.dependencies import (
    get_current_user_id,
    get_insight_generator,
    get_kv,
    get_oauth_client,
    get_search_console,
    get_token_manager,
)
from gsc_gateway.config import settings
from gsc_gateway.db.session import get_write_db
from gsc_gateway.exceptions import ValidationError
from gsc_gateway.kv.store import KeyValueStore
from gsc_gateway.models.api import (
    CreditsResponse,
    GscDataRequest,
    HealthResponse,
    InsightRequest,
    OAuthCallbackRequest,
    OAuthUrlResponse,
    StatusResponse,
    TokenRefreshResponse,
    UseCreditsRequest,
)
from gsc_gateway.services.credit_ledger import CreditLedger
from gsc_gateway.services.google_oauth import GoogleOAuthClient
from gsc_gateway.services.insight_generator import InsightGenerator
from gsc_gateway.services.search_console import SearchConsoleService
from gsc_gateway.services.token_manager import TokenManager

logger = get_logger(__name__)

router = APIRouter()


# ============================================================================
# Search Console
# ============================================================================


@router.get("/v1/gsc/properties")
async def get_properties(
    user_id: int = Depends(get_current_user_id),
    service: SearchConsoleService = Depends(get_search_console),
) -> dict[str, Any]:
    """List the Search Console properties the user can read."""
    result = await service.list_properties(user_id)
    return result.to_response()


@router.post("/v1/gsc/data")
async def fetch_gsc_data(
    request: GscDataRequest,
    user_id: int = Depends(get_current_user_id),
    service: SearchConsoleService = Depends(get_search_console),
) -> dict[str, Any]:
    """
    Query search analytics for a property.

    An unknown property answers success with empty rows, notFound and
    alternate property forms to try.
    """
    result = await service.query_analytics(
        user_id,
        request.site_url,
        request.start_date,
        request.end_date,
        dimensions=request.dimensions,
        row_limit=request.row_limit,
    )
    return result.to_response()


@router.get("/v1/gsc/top-pages")
async def get_top_pages(
    site_url: str | None = Query(None, alias="siteUrl"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    limit: int | None = Query(None, ge=1),
    user_id: int = Depends(get_current_user_id),
    service: SearchConsoleService = Depends(get_search_console),
) -> dict[str, Any]:
    """Top pages by clicks; more than 10 rows costs one credit."""
    return await service.top_pages(user_id, site_url, start_date, end_date, limit=limit)


# ============================================================================
# Insights
# ============================================================================


@router.post("/v1/insights/generate")
async def generate_insights(
    request: InsightRequest,
    force: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    generator: InsightGenerator = Depends(get_insight_generator),
) -> dict[str, Any]:
    """
    Generate (or return today's) AI insights for a site.

    Costs one credit per generation; ?force=true regenerates and charges again.
    """
    if not request.site_url:
        raise ValidationError("Missing required fields: siteUrl", missing_fields=["siteUrl"])
    return await generator.generate(
        user_id, request.site_url, request.period, request.rows(), force_refresh=force
    )


# ============================================================================
# Credits
# ============================================================================


@router.get("/v1/credits", response_model=CreditsResponse)
async def get_credits(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_write_db),
) -> CreditsResponse:
    """Current credit balance."""
    balance = await CreditLedger(db).get_balance(user_id)
    return CreditsResponse(credits=balance)


@router.post("/v1/credits/use", response_model=CreditsResponse)
async def use_credits(
    request: UseCreditsRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_write_db),
) -> CreditsResponse:
    """
    Spend credits on a caller-named purpose.

    Raises:
        InsufficientCreditsError: Balance below the amount (402)
    """
    result = await CreditLedger(db).charge(user_id, request.amount, request.purpose)
    return CreditsResponse(credits=result.remaining_balance)


# ============================================================================
# Search Console OAuth
# ============================================================================


@router.get("/v1/auth/gsc/url", response_model=OAuthUrlResponse)
async def get_gsc_auth_url(
    user_id: int = Depends(get_current_user_id),
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
) -> OAuthUrlResponse:
    """Consent URL for connecting Search Console."""
    state = secrets.token_urlsafe(16)
    url = oauth.get_authorization_url(state, settings.oauth_redirect_uri)
    return OAuthUrlResponse(url=url, state=state)


@router.post("/v1/auth/gsc/callback", response_model=StatusResponse)
async def gsc_oauth_callback(
    request: OAuthCallbackRequest,
    user_id: int = Depends(get_current_user_id),
    manager: TokenManager = Depends(get_token_manager),
) -> StatusResponse:
    """Exchange the authorization code and store the refresh token."""
    if not request.code:
        raise ValidationError("Missing required fields: code", missing_fields=["code"])
    await manager.connect(user_id, request.code, settings.oauth_redirect_uri)
    return StatusResponse(message="Google Search Console connected")


@router.post(
    "/v1/auth/gsc/refresh",
    response_model=TokenRefreshResponse,
    response_model_by_alias=True,
)
async def refresh_gsc_token(
    user_id: int = Depends(get_current_user_id),
    manager: TokenManager = Depends(get_token_manager),
) -> TokenRefreshResponse:
    """Force a new access token from the stored refresh token."""
    token = await manager.force_refresh(user_id)
    return TokenRefreshResponse(expires_in=token.expires_in)


@router.delete("/v1/auth/gsc", response_model=StatusResponse)
async def disconnect_gsc(
    user_id: int = Depends(get_current_user_id),
    manager: TokenManager = Depends(get_token_manager),
) -> StatusResponse:
    """Forget the user's Search Console credentials."""
    await manager.disconnect(user_id)
    return StatusResponse(message="Google Search Console disconnected")


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_write_db),
    kv: KeyValueStore = Depends(get_kv),
) -> HealthResponse | JSONResponse:
    """
    Health check for load balancer.

    Verifies database and key-value store connectivity.
    """
    database = "connected"
    kv_store = "connected"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health_database_unavailable", error=str(e))
        database = "disconnected"
    try:
        await kv.get("health:ping")
    except Exception as e:
        logger.error("health_kv_unavailable", error=str(e))
        kv_store = "disconnected"

    healthy = database == "connected" and kv_store == "connected"
    response = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        database=database,
        kv_store=kv_store,
        version=settings.api_version,
    )
    if not healthy:
        return JSONResponse(status_code=503, content=response.model_dump())
    return response
