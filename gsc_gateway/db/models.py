"""
Database Models - SQLAlchemy ORM models with strict typing.

All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """
    ORM model for users table.

    Holds the credit balance and the long-lived Search Console refresh token.
    Rows are created by the registration service, never deleted here.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Credits gate paid operations
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    # Search Console connection
    gsc_connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gsc_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        Index("idx_users_gsc_connected", "gsc_connected"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<User(id={self.id}, credits={self.credits}, "
            f"gsc_connected={self.gsc_connected})>"
        )


class CreditLog(Base):
    """
    ORM model for credit_logs table.

    Immutable ledger of credit debits.
    """

    __tablename__ = "credit_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    purpose: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_logs_amount_positive"),
        Index("idx_credit_logs_user", "user_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<CreditLog(user_id={self.user_id}, amount={self.amount}, purpose={self.purpose})>"


class Insight(Base):
    """
    ORM model for insights table.

    One record per (user, site, date, type); later writes replace earlier ones.
    """

    __tablename__ = "insights"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    site_url: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD (UTC)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("user_id", "site_url", "date", "type", name="uq_insights_daily"),
        Index("idx_insights_user_date", "user_id", "date"),
    )


class GscSnapshot(Base):
    """
    ORM model for gsc_data table.

    Historical copies of analytics query results.
    """

    __tablename__ = "gsc_data"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    site_url: Mapped[str] = mapped_column(Text, nullable=False)
    date_range: Mapped[str] = mapped_column(String(32), nullable=False)
    dimensions: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_gsc_data_user_site", "user_id", "site_url"),)
