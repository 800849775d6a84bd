"""
Search Console Service - user-facing Search Console reads over the GatewayClient.
"""

import json
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gsc_gateway.db.models import GscSnapshot
from gsc_gateway.exceptions import InsufficientCreditsError
from gsc_gateway.models.domain import FetchResult
from gsc_gateway.services.credit_ledger import CreditLedger
from gsc_gateway.services.gateway_client import GatewayClient
from gsc_gateway.services.operations import DEFAULT_DIMENSIONS, DEFAULT_ROW_LIMIT

logger = get_logger(__name__)

TOP_PAGES_PURPOSE = "top_pages_extended"


class SearchConsoleService:
    """Properties, analytics queries and top pages for one request."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: GatewayClient,
        free_top_pages: int = 10,
        max_top_pages: int = 50,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.ledger = CreditLedger(session)
        self.free_top_pages = free_top_pages
        self.max_top_pages = max_top_pages

    async def list_properties(self, user_id: int) -> FetchResult:
        return await self.gateway.fetch(user_id, "sites", {})

    async def query_analytics(
        self,
        user_id: int,
        site_url: str | None,
        start_date: str | None,
        end_date: str | None,
        dimensions: list[str] | None = None,
        row_limit: int = DEFAULT_ROW_LIMIT,
    ) -> FetchResult:
        """Query search analytics; fresh results are kept as a historical snapshot."""
        dimensions = dimensions or list(DEFAULT_DIMENSIONS)
        result = await self.gateway.fetch(
            user_id,
            "search_analytics",
            {
                "siteUrl": site_url,
                "startDate": start_date,
                "endDate": end_date,
                "dimensions": dimensions,
                "rowLimit": row_limit,
            },
        )
        if not result.cached and not result.not_found:
            await self._store_snapshot(
                user_id, str(site_url), f"{start_date} to {end_date}", dimensions, result.data
            )
        return result

    async def top_pages(
        self,
        user_id: int,
        site_url: str | None,
        start_date: str | None,
        end_date: str | None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """
        Top pages by clicks.

        Up to the free tier this costs nothing. A larger limit is capped and
        costs one credit, charged only when the rows come from upstream; a
        cached or rejected request is free. Without credit the free tier is
        served instead.
        """
        page_limit = self.free_top_pages
        before_upstream: Callable[[], Awaitable[None]] | None = None
        if limit is not None and limit > self.free_top_pages:
            page_limit = min(limit, self.max_top_pages)
            before_upstream = partial(self._charge_extended, user_id)

        try:
            result = await self.gateway.fetch(
                user_id,
                "top_pages",
                _top_pages_params(site_url, start_date, end_date, page_limit),
                before_upstream=before_upstream,
            )
        except InsufficientCreditsError:
            logger.info("top_pages_downgraded", user_id=user_id, requested=limit)
            page_limit = self.free_top_pages
            result = await self.gateway.fetch(
                user_id,
                "top_pages",
                _top_pages_params(site_url, start_date, end_date, page_limit),
            )

        body: dict[str, Any] = {
            "success": True,
            "pages": result.data.get("rows", []),
            "limit": page_limit,
            "creditsRemaining": await self.ledger.get_balance(user_id),
        }
        if result.cached:
            body["cached"] = True
        if result.not_found:
            body["notFound"] = True
            body["suggestions"] = result.suggestions
        return body

    async def _charge_extended(self, user_id: int) -> None:
        await self.ledger.charge(user_id, 1, TOP_PAGES_PURPOSE)

    async def _store_snapshot(
        self,
        user_id: int,
        site_url: str,
        date_range: str,
        dimensions: list[str],
        data: dict[str, Any],
    ) -> None:
        try:
            self.session.add(
                GscSnapshot(
                    user_id=user_id,
                    site_url=site_url,
                    date_range=date_range,
                    dimensions=",".join(dimensions),
                    data=json.dumps(data),
                )
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning("gsc_snapshot_failed", user_id=user_id, site_url=site_url, error=str(e))


def _top_pages_params(
    site_url: str | None, start_date: str | None, end_date: str | None, row_limit: int
) -> dict[str, Any]:
    return {
        "siteUrl": site_url,
        "startDate": start_date,
        "endDate": end_date,
        "dimensions": ["page"],
        "rowLimit": row_limit,
    }
