"""
Token Manager - OAuth token lifecycle for Search Console access.

Refresh tokens live in the relational store, access tokens in the
key-value TokenCache. Concurrent cache misses may both refresh; the last
write to the cache wins, which is harmless because both tokens are valid.
"""

from dataclasses import dataclass

from structlog import get_logger

from gsc_gateway.exceptions import AuthError, UpstreamError, ValidationError
from gsc_gateway.models.domain import AccessToken, OAuthToken
from gsc_gateway.observability.metrics import metrics
from gsc_gateway.services.credential_store import CredentialStore
from gsc_gateway.services.google_oauth import GoogleOAuthClient, OAuthRejectedError
from gsc_gateway.services.token_cache import TokenCache

logger = get_logger(__name__)


@dataclass(frozen=True)
class RefreshSummary:
    """Outcome of a scheduled refresh over all connected users."""

    refreshed: int
    failed: int


class TokenManager:
    """
    Hands out valid access tokens, refreshing them from the stored
    refresh token when the cache is empty.

    A rejected refresh marks the user disconnected and is terminal for the
    request: it is never retried here.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        token_cache: TokenCache,
        oauth: GoogleOAuthClient,
    ) -> None:
        self.credentials = credentials
        self.token_cache = token_cache
        self.oauth = oauth

    async def get_valid_token(self, user_id: int) -> AccessToken:
        """
        Return a cached access token or refresh one.

        Raises:
            AuthError: User not connected, or the provider rejected the refresh
            UpstreamError: Token endpoint unreachable or timed out
        """
        cached = await self.token_cache.get(user_id)
        if cached is not None:
            return cached
        return await self._refresh(user_id)

    async def force_refresh(self, user_id: int) -> AccessToken:
        """Evict the cached token and refresh unconditionally (after an upstream 401)."""
        await self.token_cache.evict(user_id)
        logger.info("token_force_refresh", user_id=user_id)
        return await self._refresh(user_id)

    async def connect(self, user_id: int, code: str, redirect_uri: str) -> None:
        """
        Complete the consent flow with an authorization code.

        Google omits the refresh token when the user already granted access
        to this client; in that case an already stored refresh token is reused.

        Raises:
            ValidationError: No refresh token available for this user
            AuthError: Code rejected by the provider
        """
        try:
            token = await self.oauth.exchange_code_for_token(code, redirect_uri)
        except OAuthRejectedError as e:
            raise AuthError(f"OAuth error: {e.body[:200]}", needs_connection=True) from e

        if token.refresh_token:
            await self.credentials.set_refresh_token(user_id, token.refresh_token)
        else:
            existing = await self.credentials.get(user_id)
            if existing is None or not existing.refresh_token:
                logger.warning("oauth_connect_no_refresh_token", user_id=user_id)
                raise ValidationError(
                    "No refresh token received from Google. Please revoke access and try again."
                )
            logger.info("oauth_connect_reusing_refresh_token", user_id=user_id)
            await self.credentials.set_connected(user_id, True)

        await self.token_cache.put(user_id, self._to_access_token(token))
        logger.info("gsc_connected", user_id=user_id, expires_in=token.expires_in)

    async def disconnect(self, user_id: int) -> None:
        """Forget all credentials for a user."""
        await self.token_cache.evict(user_id)
        await self.credentials.clear(user_id)
        logger.info("gsc_disconnected", user_id=user_id)

    async def refresh_all_connected(self) -> RefreshSummary:
        """Refresh every connected user's access token; failures are counted, not raised."""
        refreshed = 0
        failed = 0
        for creds in await self.credentials.list_connected():
            try:
                await self._refresh(creds.user_id)
                refreshed += 1
            except (AuthError, UpstreamError) as e:
                failed += 1
                logger.warning(
                    "scheduled_token_refresh_failed", user_id=creds.user_id, error=str(e)
                )
        logger.info("scheduled_token_refresh_completed", refreshed=refreshed, failed=failed)
        return RefreshSummary(refreshed=refreshed, failed=failed)

    async def _refresh(self, user_id: int) -> AccessToken:
        creds = await self.credentials.get(user_id)
        if creds is None or not creds.refresh_token:
            logger.warning("refresh_token_missing", user_id=user_id, user_exists=creds is not None)
            if creds is not None and creds.gsc_connected:
                await self.credentials.set_connected(user_id, False)
            metrics.record_token_refresh("not_connected")
            raise AuthError("not connected")

        try:
            token = await self.oauth.refresh_access_token(creds.refresh_token)
        except OAuthRejectedError as e:
            logger.error("token_refresh_rejected", user_id=user_id, status=e.status_code)
            await self.credentials.set_connected(user_id, False)
            metrics.record_token_refresh("rejected")
            raise AuthError("refresh failed") from e
        except UpstreamError:
            metrics.record_token_refresh("error")
            raise

        access_token = self._to_access_token(token)
        await self.token_cache.put(user_id, access_token)
        if not creds.gsc_connected:
            await self.credentials.set_connected(user_id, True)

        # Google may rotate the refresh token
        if token.refresh_token and token.refresh_token != creds.refresh_token:
            await self.credentials.set_refresh_token(user_id, token.refresh_token)

        metrics.record_token_refresh("success")
        logger.info("token_refreshed", user_id=user_id, expires_in=token.expires_in)
        return access_token

    @staticmethod
    def _to_access_token(token: OAuthToken) -> AccessToken:
        return AccessToken(value=token.access_token, expires_in=token.expires_in)
