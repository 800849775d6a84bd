"""
Insight Generator - once-per-day AI insight documents per (user, site).

Generation pattern:
1. Today's stored document is returned as-is unless a refresh is forced
2. One credit is charged before the AI provider is called (no refund)
3. Any AI failure is masked by a rule-based fallback document
4. The charge and the upsert commit together
"""

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gsc_gateway.db.models import utc_now
from gsc_gateway.exceptions import DatabaseError
from gsc_gateway.observability.metrics import metrics
from gsc_gateway.services.ai_client import AIClient, AIUnavailableError
from gsc_gateway.services.credit_ledger import CreditLedger
from gsc_gateway.services.fallback import analyze_rows, build_fallback_insights, build_raw_data
from gsc_gateway.services.insight_store import InsightStore

logger = get_logger(__name__)

INSIGHT_KIND = "overall"
INSIGHT_PURPOSE = "insight_generation"
INSIGHT_COST = 1
REQUIRED_KEYS = ("summary", "performance", "topFindings", "recommendations")

PROMPT_TEMPLATE = """Generate insights for a website based on the following Google Search Console data:

Period: {period}
Site: {site_url}

Data ({row_count} of {total_rows} rows): {rows}

Please analyze this data and provide insights on:
1. Overall search performance trends
2. Top performing keywords and pages
3. Areas for improvement
4. Specific actionable recommendations

Format the response as a JSON object with the following structure:
{{
  "summary": "Brief executive summary",
  "performance": {{ "trend": "up/down/stable", "details": "..." }},
  "topFindings": [ {{"title": "...", "description": "..."}} ],
  "recommendations": [ {{"title": "...", "description": "...", "priority": "high/medium/low"}} ]
}}"""


def build_prompt(site_url: str, period: str, rows: list[dict[str, Any]], max_rows: int) -> str:
    """Bounded prompt: at most max_rows rows are serialized."""
    sample = rows[:max_rows]
    return PROMPT_TEMPLATE.format(
        period=period,
        site_url=site_url,
        row_count=len(sample),
        total_rows=len(rows),
        rows=json.dumps(sample, separators=(",", ":")),
    )


class InvalidInsightError(ValueError):
    """AI output lacks a required key."""


def normalize_insights(document: dict[str, Any]) -> dict[str, Any]:
    """Check required keys and fill optional sub-keys with neutral defaults."""
    missing = [k for k in REQUIRED_KEYS if k not in document]
    if missing:
        raise InvalidInsightError(f"AI output missing keys: {', '.join(missing)}")

    performance = document["performance"]
    if not isinstance(performance, dict):
        performance = {"details": str(performance)}

    return {
        "summary": str(document["summary"]),
        "performance": {
            "trend": performance.get("trend", "stable"),
            "details": performance.get("details", ""),
        },
        "topFindings": [
            {"title": f.get("title", ""), "description": f.get("description", "")}
            for f in _as_list(document["topFindings"])
        ],
        "recommendations": [
            {
                "title": r.get("title", ""),
                "description": r.get("description", ""),
                "priority": r.get("priority", "medium"),
            }
            for r in _as_list(document["recommendations"])
        ],
    }


def _as_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class InsightGenerator:
    """Generates and stores the daily 'overall' insight for a site."""

    def __init__(
        self,
        session: AsyncSession,
        ai_client: AIClient,
        max_prompt_rows: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session = session
        self.ledger = CreditLedger(session)
        self.store = InsightStore(session)
        self.ai_client = ai_client
        self.max_prompt_rows = max_prompt_rows
        self.clock = clock

    async def generate(
        self,
        user_id: int,
        site_url: str,
        period: str,
        rows: list[dict[str, Any]],
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """
        Return today's insight document, generating it if needed.

        Raises:
            InsufficientCreditsError: No credit left (raised before any AI call)
            DatabaseError: Persisting the document failed (charge rolled back too)
        """
        now = self.clock()
        today = now.date().isoformat()

        if not force_refresh:
            existing = await self.store.get(user_id, site_url, today, INSIGHT_KIND)
            if existing is not None:
                metrics.record_insight_generation("cached")
                logger.info("insight_served_from_store", user_id=user_id, site_url=site_url)
                return json.loads(existing.content)

        # Holds the users row lock until the commit below, across the AI call
        await self.ledger.charge(user_id, INSIGHT_COST, INSIGHT_PURPOSE, commit=False)

        prompt = build_prompt(site_url, period, rows, self.max_prompt_rows)
        try:
            insights = normalize_insights(await self.ai_client.complete_json(prompt))
            ai_analysis: dict[str, Any] = dict(insights)
            fallback = False
        except (AIUnavailableError, InvalidInsightError) as e:
            logger.warning("insight_ai_unavailable", user_id=user_id, site_url=site_url, error=str(e))
            ai_analysis = analyze_rows(rows)
            insights = build_fallback_insights(site_url, period, rows, ai_analysis)
            fallback = True

        document = {
            **insights,
            "raw_data": build_raw_data(rows),
            "ai_analysis": ai_analysis,
            "fallback": fallback,
            "generatedAt": now.isoformat(),
        }

        try:
            await self.store.upsert(user_id, site_url, today, INSIGHT_KIND, json.dumps(document))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            metrics.record_insight_generation("persist_failed")
            logger.error("insight_persist_failed", user_id=user_id, site_url=site_url, error=str(e))
            raise DatabaseError(str(e)) from e

        outcome = "fallback" if fallback else "ai"
        metrics.record_insight_generation(outcome)
        logger.info(
            "insight_generated",
            user_id=user_id,
            site_url=site_url,
            outcome=outcome,
            forced=force_refresh,
        )
        return document
