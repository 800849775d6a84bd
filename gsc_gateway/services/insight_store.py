"""
Insight Store - daily insight records keyed by (user, site, date, type).
"""

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from gsc_gateway.db.models import Insight, utc_now
from gsc_gateway.models.domain import InsightRecordData


class InsightStore:
    """Reads and upserts insight records. Writes are never committed here."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(
        self, user_id: int, site_url: str, date: str, kind: str
    ) -> InsightRecordData | None:
        stmt = select(Insight).where(
            Insight.user_id == user_id,
            Insight.site_url == site_url,
            Insight.date == date,
            Insight.type == kind,
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return InsightRecordData(
            user_id=record.user_id,
            site_url=record.site_url,
            date=record.date,
            kind=record.type,
            content=record.content,
            created_at=record.created_at,
        )

    async def upsert(
        self, user_id: int, site_url: str, date: str, kind: str, content: str
    ) -> None:
        """
        Insert or replace the record for (user, site, date, kind).

        Last writer wins. The caller owns the transaction.
        """
        now = utc_now()
        stmt = insert(Insight).values(
            user_id=user_id,
            site_url=site_url,
            date=date,
            type=kind,
            content=content,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_insights_daily",
            set_={"content": stmt.excluded.content, "created_at": stmt.excluded.created_at},
        )
        await self.session.execute(stmt)
