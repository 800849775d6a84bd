"""
FastAPI Dependencies - caller authentication and per-request service wiring.

Process-wide resources (HTTP client, key-value store) are shared; services
are built per request around the request's database session.
"""

import httpx
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gsc_gateway.config import settings
from gsc_gateway.db.session import get_write_db
from gsc_gateway.exceptions import AuthError
from gsc_gateway.kv.store import KeyValueStore, get_kv_store
from gsc_gateway.services.ai_client import AIClient
from gsc_gateway.services.credential_store import CredentialStore
from gsc_gateway.services.gateway_client import GatewayClient
from gsc_gateway.services.google_oauth import GoogleOAuthClient
from gsc_gateway.services.insight_generator import InsightGenerator
from gsc_gateway.services.rate_limiter import RateLimiter
from gsc_gateway.services.response_cache import ResponseCache
from gsc_gateway.services.search_console import SearchConsoleService
from gsc_gateway.services.token_cache import TokenCache
from gsc_gateway.services.token_manager import TokenManager

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# ============================================================================
# Caller Authentication
# ============================================================================


def decode_user_id(token: str) -> int:
    """
    Verify an HS256 JWT from the login service and return its user_id claim.

    Raises:
        AuthError: Invalid, expired or claim-less token
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token expired", needs_connection=False) from e
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error=str(e))
        raise AuthError("Invalid token", needs_connection=False) from e

    try:
        return int(payload["user_id"])
    except (KeyError, TypeError, ValueError) as e:
        raise AuthError("Invalid token payload", needs_connection=False) from e


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int:
    """
    FastAPI dependency resolving the authenticated user.

    Accepts: Authorization: Bearer {jwt}
    """
    if credentials is None:
        raise AuthError("Authorization header required", needs_connection=False)
    return decode_user_id(credentials.credentials)


# ============================================================================
# Shared Resources
# ============================================================================

_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get or create the process-wide outbound HTTP client."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.upstream_timeout_seconds))
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def get_kv() -> KeyValueStore:
    return get_kv_store()


# ============================================================================
# Service Wiring
# ============================================================================


def build_token_manager(
    db: AsyncSession, kv: KeyValueStore, http_client: httpx.AsyncClient
) -> TokenManager:
    oauth = GoogleOAuthClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        http_client=http_client,
        timeout_seconds=settings.oauth_timeout_seconds,
    )
    return TokenManager(CredentialStore(db), TokenCache(kv), oauth)


def get_token_manager(
    db: AsyncSession = Depends(get_write_db),
    kv: KeyValueStore = Depends(get_kv),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> TokenManager:
    return build_token_manager(db, kv, http_client)


def get_oauth_client(
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> GoogleOAuthClient:
    return GoogleOAuthClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        http_client=http_client,
        timeout_seconds=settings.oauth_timeout_seconds,
    )


def get_search_console(
    db: AsyncSession = Depends(get_write_db),
    kv: KeyValueStore = Depends(get_kv),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> SearchConsoleService:
    gateway = GatewayClient(
        token_manager=build_token_manager(db, kv, http_client),
        rate_limiter=RateLimiter(kv),
        response_cache=ResponseCache(kv),
        http_client=http_client,
        rate_limit=settings.rate_limit_requests,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
        timeout_seconds=settings.upstream_timeout_seconds,
    )
    return SearchConsoleService(
        db,
        gateway,
        free_top_pages=settings.top_pages_free_limit,
        max_top_pages=settings.top_pages_max_limit,
    )


def get_insight_generator(
    db: AsyncSession = Depends(get_write_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> InsightGenerator:
    ai_client = AIClient(
        api_key=settings.OPENAI_API_KEY,
        api_url=settings.openai_api_url,
        model=settings.openai_model,
        http_client=http_client,
        timeout_seconds=settings.ai_timeout_seconds,
    )
    return InsightGenerator(db, ai_client, max_prompt_rows=settings.ai_max_prompt_rows)
