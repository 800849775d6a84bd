"""
Gateway Client - resilient access to the Search Console API.

Pipeline per request:
1. Validate required parameters
2. Response cache lookup (a hit costs no rate limit)
3. Rate limit check
4. Access token from the TokenManager
5. Upstream call, with a single forced refresh and retry on 401
6. Write-through to the response cache

Callers that bill for a fetch pass `before_upstream`; it runs only once
steps 1-4 have passed, so cache hits and rejected requests are never billed.
"""

import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx
from structlog import get_logger

from gsc_gateway.exceptions import (
    AuthError,
    PermissionDeniedError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from gsc_gateway.models.domain import AccessToken, FetchResult
from gsc_gateway.observability.metrics import metrics
from gsc_gateway.observability.tracing import set_attributes, traced
from gsc_gateway.services.operations import Operation, get_operation, site_suggestions
from gsc_gateway.services.rate_limiter import RateLimiter, build_rate_limit_key
from gsc_gateway.services.response_cache import ResponseCache, build_cache_key
from gsc_gateway.services.token_manager import TokenManager

logger = get_logger(__name__)

# One initial attempt plus one retry after a forced token refresh
MAX_ATTEMPTS = 2


class GatewayClient:
    """Fetches Search Console data on behalf of a user."""

    def __init__(
        self,
        token_manager: TokenManager,
        rate_limiter: RateLimiter,
        response_cache: ResponseCache,
        http_client: httpx.AsyncClient,
        rate_limit: int,
        rate_limit_window_seconds: int,
        timeout_seconds: float = 15.0,
    ) -> None:
        self.token_manager = token_manager
        self.rate_limiter = rate_limiter
        self.response_cache = response_cache
        self.http_client = http_client
        self.rate_limit = rate_limit
        self.rate_limit_window_seconds = rate_limit_window_seconds
        self.timeout = httpx.Timeout(timeout_seconds)

    async def fetch(
        self,
        user_id: int,
        operation: str,
        params: Mapping[str, Any] | None = None,
        before_upstream: Callable[[], Awaitable[None]] | None = None,
    ) -> FetchResult:
        """
        Fetch an operation's payload for a user.

        A 404 on a per-site operation is not an error: it yields empty rows
        with alternate property forms to try.

        Raises:
            ValidationError: Unknown operation or missing required fields
            RateLimitError: Window exhausted for (user, operation)
            AuthError: Not connected, refresh rejected, or 401 after retry
            PermissionDeniedError: Upstream answered 403
            UpstreamError: Timeout, transport failure or unexpected status

        Exceptions raised by `before_upstream` propagate and abort the fetch.
        """
        params = dict(params or {})
        op = get_operation(operation)

        missing = op.missing_fields(params)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", missing_fields=missing
            )

        cache_key = build_cache_key(user_id, operation, params)
        cached = await self.response_cache.get(cache_key)
        metrics.record_cache_lookup(operation, hit=cached is not None)
        if cached is not None:
            logger.debug("gsc_cache_hit", user_id=user_id, operation=operation)
            return FetchResult(data=cached, cached=True)

        decision = await self.rate_limiter.check(
            build_rate_limit_key(user_id, operation),
            self.rate_limit,
            self.rate_limit_window_seconds,
        )
        metrics.record_rate_limit(operation, decision.limited)
        if decision.limited:
            logger.warning(
                "rate_limit_exceeded",
                user_id=user_id,
                operation=operation,
                reset_at=decision.reset_at.isoformat(),
            )
            raise RateLimitError(decision.remaining, decision.reset_at)

        token = await self.token_manager.get_valid_token(user_id)
        if before_upstream is not None:
            await before_upstream()

        with traced("gsc_upstream_call", operation=operation, user_id=user_id) as span:
            response = await self._call_with_retry(user_id, op, params, token)
            result = self._interpret(op, params, response)
            set_attributes(span, status_code=response.status_code, not_found=result.not_found)

        if not result.not_found:
            await self.response_cache.set(cache_key, result.data, op.cache_ttl_seconds)

        logger.info(
            "gsc_fetch_completed",
            user_id=user_id,
            operation=operation,
            not_found=result.not_found,
        )
        return result

    async def _call_with_retry(
        self, user_id: int, op: Operation, params: dict[str, Any], token: AccessToken
    ) -> httpx.Response:
        for attempt in range(MAX_ATTEMPTS):
            response = await self._send(op, params, token)
            if response.status_code != 401:
                return response
            if attempt + 1 < MAX_ATTEMPTS:
                logger.info("gsc_unauthorized_retrying", user_id=user_id, operation=op.name)
                token = await self.token_manager.force_refresh(user_id)

        logger.warning("gsc_unauthorized_after_refresh", user_id=user_id, operation=op.name)
        raise AuthError("Search Console rejected the refreshed access token")

    async def _send(
        self, op: Operation, params: dict[str, Any], token: AccessToken
    ) -> httpx.Response:
        started = time.monotonic()
        try:
            response = await self.http_client.request(
                op.method,
                op.url(params),
                json=op.body(params),
                headers=token.authorization_header(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            metrics.record_upstream_call(op.name, "timeout", time.monotonic() - started)
            logger.error("gsc_request_timeout", operation=op.name)
            raise UpstreamError("Search Console request timed out") from e
        except httpx.HTTPError as e:
            metrics.record_upstream_call(op.name, "error", time.monotonic() - started)
            logger.error("gsc_request_error", operation=op.name, error=str(e))
            raise UpstreamError(f"Search Console unreachable: {e}") from e

        metrics.record_upstream_call(op.name, response.status_code, time.monotonic() - started)
        return response

    def _interpret(
        self, op: Operation, params: dict[str, Any], response: httpx.Response
    ) -> FetchResult:
        status = response.status_code

        if status == 404 and op.per_site:
            site_url = str(params["siteUrl"])
            suggestions = site_suggestions(site_url)
            logger.info("gsc_site_not_found", site_url=site_url, suggestions=suggestions)
            return FetchResult(data={"rows": []}, not_found=True, suggestions=suggestions)

        if status == 403:
            reason = _error_message(response) or "Insufficient permission for this property"
            logger.warning("gsc_permission_denied", operation=op.name, reason=reason)
            raise PermissionDeniedError(reason)

        if not response.is_success:
            logger.error(
                "gsc_request_failed",
                operation=op.name,
                status=status,
                text=response.text[:500],
            )
            raise UpstreamError(
                f"Search Console returned {status}", upstream_status=status
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("Search Console returned invalid JSON", upstream_status=status) from e
        if not isinstance(data, dict):
            raise UpstreamError("Search Console returned an unexpected payload", upstream_status=status)
        return FetchResult(data=data)


def _error_message(response: httpx.Response) -> str | None:
    """Extract `error.message` from a Google API error body."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return None
