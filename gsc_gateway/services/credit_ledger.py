"""
Credit Ledger - metered credits gating paid operations.

The balance lives on the users row and is debited with a single
conditional UPDATE, so two concurrent charges can never both spend the
last credit. Every debit appends an immutable credit_logs row.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gsc_gateway.db.models import CreditLog, User
from gsc_gateway.exceptions import DatabaseError, InsufficientCreditsError
from gsc_gateway.models.domain import ChargeResult
from gsc_gateway.observability.metrics import metrics

logger = get_logger(__name__)


class CreditLedger:
    """
    Credit ledger over the users and credit_logs tables.

    Charge pattern:
    1. Conditional decrement-with-floor (UPDATE ... WHERE credits >= amount RETURNING)
    2. Ledger row inside a SAVEPOINT
    3. Commit, unless the caller commits together with its own write
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize credit ledger with database session."""
        self.session = session

    async def charge(
        self, user_id: int, amount: int, purpose: str, commit: bool = True
    ) -> ChargeResult:
        """
        Debit credits from a user.

        With commit=False the debit stays in the open transaction and is
        applied by the caller's next commit on the same session.

        Raises:
            InsufficientCreditsError: Balance below amount (nothing is mutated)
            DatabaseError: Commit failed (debit rolled back)
        """
        if amount <= 0:
            raise ValueError(f"Charge amount must be positive: {amount}")
        if not purpose:
            raise ValueError("Purpose cannot be empty")

        stmt = (
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .returning(User.credits)
        )
        try:
            result = await self.session.execute(stmt)
            remaining = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("credit_charge_failed", user_id=user_id, purpose=purpose, error=str(e))
            await self.session.rollback()
            raise DatabaseError(str(e)) from e

        if remaining is None:
            balance = await self.get_balance(user_id)
            metrics.record_credit_charge(purpose, success=False)
            logger.info(
                "credit_charge_insufficient",
                user_id=user_id,
                purpose=purpose,
                balance=balance,
                required=amount,
            )
            raise InsufficientCreditsError(balance, amount)

        await self._append_log(user_id, amount, purpose)

        if commit:
            try:
                await self.session.commit()
            except SQLAlchemyError as e:
                logger.error("credit_charge_commit_failed", user_id=user_id, error=str(e))
                await self.session.rollback()
                raise DatabaseError(str(e)) from e

        metrics.record_credit_charge(purpose, success=True)
        logger.info(
            "credit_charged",
            user_id=user_id,
            amount=amount,
            purpose=purpose,
            remaining=remaining,
            committed=commit,
        )
        return ChargeResult(ok=True, remaining_balance=remaining)

    async def grant(self, user_id: int, amount: int) -> int:
        """
        Add credits to a user (account creation only).

        Returns the new balance.
        """
        if amount <= 0:
            raise ValueError(f"Grant amount must be positive: {amount}")

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .returning(User.credits)
        )
        try:
            result = await self.session.execute(stmt)
            balance = result.scalar_one_or_none()
            if balance is None:
                raise DatabaseError(f"User {user_id} not found for credit grant")
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error("credit_grant_failed", user_id=user_id, error=str(e))
            await self.session.rollback()
            raise DatabaseError(str(e)) from e

        logger.info("credits_granted", user_id=user_id, amount=amount, balance=balance)
        return balance

    async def get_balance(self, user_id: int) -> int:
        """Current balance; an unknown user has none."""
        stmt = select(User.credits).where(User.id == user_id)
        result = await self.session.execute(stmt)
        balance = result.scalar_one_or_none()
        return balance if balance is not None else 0

    async def _append_log(self, user_id: int, amount: int, purpose: str) -> None:
        """
        Write the ledger row in a SAVEPOINT.

        The balance is authoritative: a failed log write is rolled back on its
        own and reported, the debit stands.
        """
        try:
            async with self.session.begin_nested():
                self.session.add(CreditLog(user_id=user_id, amount=amount, purpose=purpose))
        except SQLAlchemyError as e:
            metrics.credit_log_failures_total.inc()
            logger.error(
                "credit_log_write_failed",
                user_id=user_id,
                amount=amount,
                purpose=purpose,
                error=str(e),
            )
