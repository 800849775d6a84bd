"""
Rule-based analysis of Search Console rows.

Used to build the insight document when the AI provider is unavailable,
and to compute the raw metrics attached to every document.
"""

from typing import Any

FALLBACK_MARKER = "[FALLBACK]"

LOW_CTR = 0.02
TARGET_CTR = 0.03
FIRST_PAGE_POSITION = 10
HIGH_IMPRESSIONS = 1000
MAX_EXAMPLES = 5
TOP_QUERY_COUNT = 10


def _metric(row: dict[str, Any], name: str) -> float:
    value = row.get(name) or 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _label(row: dict[str, Any]) -> str:
    keys = row.get("keys") or []
    return str(keys[0]) if keys else ""


def _example(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "query": _label(row),
        "impressions": _metric(row, "impressions"),
        "ctr": _metric(row, "ctr"),
        "position": _metric(row, "position"),
    }


def build_raw_data(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Totals, averages and top queries computed from the input rows only."""
    total_clicks = sum(_metric(r, "clicks") for r in rows)
    total_impressions = sum(_metric(r, "impressions") for r in rows)
    count = len(rows)
    top = sorted(rows, key=lambda r: _metric(r, "clicks"), reverse=True)[:TOP_QUERY_COUNT]
    return {
        "rowCount": count,
        "totalClicks": total_clicks,
        "totalImpressions": total_impressions,
        "averageCtr": (sum(_metric(r, "ctr") for r in rows) / count) if count else 0.0,
        "averagePosition": (sum(_metric(r, "position") for r in rows) / count) if count else 0.0,
        "topQueries": [
            {
                "query": _label(r),
                "clicks": _metric(r, "clicks"),
                "impressions": _metric(r, "impressions"),
            }
            for r in top
        ],
    }


def _performance(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not rows:
        return []
    findings = []
    avg_ctr = sum(_metric(r, "ctr") for r in rows) / len(rows)
    avg_position = sum(_metric(r, "position") for r in rows) / len(rows)

    if avg_ctr < LOW_CTR:
        findings.append(
            {
                "type": "ctr",
                "severity": "high",
                "message": "Low average CTR detected. Consider improving meta descriptions and titles.",
                "metrics": {"current": avg_ctr, "target": TARGET_CTR},
            }
        )
    if avg_position > FIRST_PAGE_POSITION:
        findings.append(
            {
                "type": "position",
                "severity": "medium",
                "message": "Average position is above 10. Focus on improving content quality and relevance.",
                "metrics": {"current": avg_position, "target": 5},
            }
        )
    return findings


def _opportunities(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    found = []

    low_ctr = [
        _example(r)
        for r in rows
        if _metric(r, "impressions") > HIGH_IMPRESSIONS and _metric(r, "ctr") < LOW_CTR
    ]
    if low_ctr:
        found.append(
            {
                "type": "ctr_improvement",
                "severity": "high",
                "message": "Found queries with high impressions but low CTR",
                "data": low_ctr[:MAX_EXAMPLES],
            }
        )

    near_top = [
        _example(r)
        for r in rows
        if FIRST_PAGE_POSITION < _metric(r, "position") <= 20 and _metric(r, "ctr") > TARGET_CTR
    ]
    if near_top:
        found.append(
            {
                "type": "position_improvement",
                "severity": "medium",
                "message": "Found queries with good CTR but ranking 11-20",
                "data": near_top[:MAX_EXAMPLES],
            }
        )
    return found


def _issues(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    found = []

    top = sorted(rows, key=lambda r: _metric(r, "impressions"), reverse=True)[:TOP_QUERY_COUNT]
    drops = [_example(r) for r in top if _metric(r, "impressions") < 100 and _metric(r, "clicks") > 0]
    if drops:
        found.append(
            {
                "type": "impression_drop",
                "severity": "high",
                "message": "Top queries have very few impressions despite earning clicks",
                "data": drops,
            }
        )

    mismatched = [
        _example(r) for r in rows if _metric(r, "position") > 15 and _metric(r, "ctr") > 0.05
    ]
    if mismatched:
        found.append(
            {
                "type": "content_relevance",
                "severity": "medium",
                "message": "Some queries show high CTR despite poor ranking, suggesting content relevance issues",
                "data": mismatched[:MAX_EXAMPLES],
            }
        )
    return found


# finding type -> (suggestion type, priority, title, action)
_SUGGESTIONS: dict[str, tuple[str, str, str, str]] = {
    "ctr": (
        "content",
        "high",
        "Improve meta descriptions and titles for better CTR",
        "Review and optimize meta tags for pages with low CTR",
    ),
    "position": (
        "seo",
        "medium",
        "Focus on content quality and relevance improvements",
        "Review content quality and update based on user intent",
    ),
    "ctr_improvement": (
        "optimization",
        "high",
        "Optimize content for high-impression, low-CTR queries",
        "Review and improve content for identified queries",
    ),
    "position_improvement": (
        "seo",
        "medium",
        "Improve ranking for queries with good CTR",
        "Enhance content and technical SEO for identified queries",
    ),
    "impression_drop": (
        "monitoring",
        "high",
        "Investigate causes of impression drops",
        "Review recent changes and technical issues",
    ),
    "content_relevance": (
        "content",
        "medium",
        "Improve content relevance for identified queries",
        "Update content to better match user intent",
    ),
}


def analyze_rows(rows: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Deterministic analysis: performance, opportunities, issues and suggestions."""
    performance = _performance(rows)
    opportunities = _opportunities(rows)
    issues = _issues(rows)

    suggestions = []
    for finding in [*performance, *opportunities, *issues]:
        kind, priority, message, action = _SUGGESTIONS[finding["type"]]
        suggestions.append(
            {"type": kind, "priority": priority, "message": message, "action": action}
        )

    return {
        "performance": performance,
        "opportunities": opportunities,
        "issues": issues,
        "suggestions": suggestions,
    }


def build_fallback_insights(
    site_url: str, period: str, rows: list[dict[str, Any]], analysis: dict[str, Any]
) -> dict[str, Any]:
    """Shape a rule-based analysis like an AI answer (summary, performance, findings, recommendations)."""
    raw = build_raw_data(rows)
    summary = (
        f"{FALLBACK_MARKER} Automated analysis of {raw['rowCount']} rows for {site_url} "
        f"({period}): {int(raw['totalClicks'])} clicks from {int(raw['totalImpressions'])} "
        f"impressions, average position {raw['averagePosition']:.1f}."
    )
    findings = [
        {"title": f["type"].replace("_", " ").capitalize(), "description": f["message"]}
        for f in [*analysis["performance"], *analysis["opportunities"], *analysis["issues"]]
    ]
    recommendations = [
        {"title": s["message"], "description": s["action"], "priority": s["priority"]}
        for s in analysis["suggestions"]
    ]
    return {
        "summary": summary,
        "performance": {
            "trend": "stable",
            "details": "Trend direction is unavailable without AI analysis.",
        },
        "topFindings": findings,
        "recommendations": recommendations,
    }
