"""
Credential Store - Search Console refresh tokens and connection state.

Reads and writes the credential columns of the users table. Every write
commits immediately: connection state changes are independent of any
other unit of work in the request.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gsc_gateway.db.models import User
from gsc_gateway.exceptions import DatabaseError
from gsc_gateway.models.domain import UserCredentials

logger = get_logger(__name__)


class CredentialStore:
    """Persistence for per-user OAuth credentials."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize credential store with database session."""
        self.session = session

    async def get(self, user_id: int) -> UserCredentials | None:
        """Get the credential snapshot for a user, or None if no row exists."""
        stmt = select(User).where(User.id == user_id)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return UserCredentials(
            user_id=user.id,
            gsc_connected=bool(user.gsc_connected),
            refresh_token=user.gsc_refresh_token or None,
            credits=user.credits,
        )

    async def list_connected(self) -> list[UserCredentials]:
        """All users flagged as connected with a stored refresh token."""
        stmt = select(User).where(
            User.gsc_connected.is_(True),
            User.gsc_refresh_token.isnot(None),
        )
        result = await self.session.execute(stmt)
        return [
            UserCredentials(
                user_id=user.id,
                gsc_connected=True,
                refresh_token=user.gsc_refresh_token,
                credits=user.credits,
            )
            for user in result.scalars().all()
        ]

    async def set_refresh_token(self, user_id: int, refresh_token: str) -> None:
        """Store a refresh token and mark the user connected."""
        await self._update(user_id, gsc_refresh_token=refresh_token, gsc_connected=True)

    async def set_connected(self, user_id: int, connected: bool) -> None:
        """Set the connection flag without touching the refresh token."""
        await self._update(user_id, gsc_connected=connected)

    async def clear(self, user_id: int) -> None:
        """Forget the refresh token and mark the user disconnected."""
        await self._update(user_id, gsc_refresh_token=None, gsc_connected=False)

    async def _update(self, user_id: int, **values: object) -> None:
        stmt = update(User).where(User.id == user_id).values(**values)
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error("credential_store_write_failed", user_id=user_id, error=str(e))
            await self.session.rollback()
            raise DatabaseError(str(e)) from e
