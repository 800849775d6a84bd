"""
Token Cache - short-lived access tokens in the key-value store.

Expiry is delegated to the backing store: the provider's expires_in becomes
the key TTL, and a miss always means the token must be refreshed.
"""

from gsc_gateway.kv.store import KeyValueStore
from gsc_gateway.models.domain import AccessToken

TOKEN_KEY_PREFIX = "gsc_token"

# Used when the provider omits expires_in
DEFAULT_TOKEN_TTL_SECONDS = 3600


def token_key(user_id: int) -> str:
    """KV key holding a user's access token."""
    return f"{TOKEN_KEY_PREFIX}:{user_id}"


class TokenCache:
    """Maps user id to the current access token."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    async def get(self, user_id: int) -> AccessToken | None:
        value = await self.kv.get(token_key(user_id))
        if not value:
            return None
        return AccessToken(value=value)

    async def put(self, user_id: int, token: AccessToken) -> None:
        ttl = token.expires_in if token.expires_in else DEFAULT_TOKEN_TTL_SECONDS
        await self.kv.set(token_key(user_id), token.value, ttl_seconds=ttl)

    async def evict(self, user_id: int) -> None:
        await self.kv.delete(token_key(user_id))
