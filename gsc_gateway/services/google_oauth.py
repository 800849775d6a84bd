"""
Google OAuth client for Search Console access.

Talks to Google's token endpoint for both the authorization-code and the
refresh-token grants.
"""

from urllib.parse import urlencode

import httpx
from structlog import get_logger

from gsc_gateway.exceptions import UpstreamError
from gsc_gateway.models.domain import OAuthToken

logger = get_logger(__name__)


class OAuthRejectedError(Exception):
    """Raised when the token endpoint answers with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token endpoint rejected request: {status_code}")


class GoogleOAuthClient:
    """Google OAuth provider implementation."""

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    SCOPE = "https://www.googleapis.com/auth/webmasters.readonly"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http_client = http_client
        self.timeout = httpx.Timeout(timeout_seconds)

    def get_authorization_url(self, state: str, redirect_uri: str) -> str:
        """Get the consent URL; offline access so Google issues a refresh token."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.SCOPE,
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> OAuthToken:
        """Exchange authorization code for access (and usually refresh) token."""
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        return await self._request_token(data, grant="authorization_code")

    async def refresh_access_token(self, refresh_token: str) -> OAuthToken:
        """Exchange a refresh token for a new access token."""
        data = {
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
        }
        return await self._request_token(data, grant="refresh_token")

    async def _request_token(self, data: dict[str, str], grant: str) -> OAuthToken:
        try:
            response = await self.http_client.post(
                self.TOKEN_URL, data=data, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            logger.error("token_request_timeout", grant=grant)
            raise UpstreamError("OAuth token endpoint timed out") from e
        except httpx.HTTPError as e:
            logger.error("token_request_error", grant=grant, error=str(e))
            raise UpstreamError(f"OAuth token endpoint unreachable: {e}") from e

        if not response.is_success:
            logger.error(
                "token_request_rejected",
                grant=grant,
                status=response.status_code,
                text=response.text[:500],
            )
            raise OAuthRejectedError(response.status_code, response.text)

        try:
            token_data = response.json()
            return OAuthToken(
                access_token=token_data["access_token"],
                token_type=token_data.get("token_type", "Bearer"),
                expires_in=token_data.get("expires_in"),
                refresh_token=token_data.get("refresh_token"),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error("token_response_malformed", grant=grant, error=str(e))
            raise UpstreamError("OAuth token endpoint returned a malformed response") from e
