"""
Search Console operations known to the gateway.

Each operation declares its required parameters, how to build the upstream
request, how long its responses are cached and whether it addresses a
single site (which enables 404 translation).
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from gsc_gateway.config import settings
from gsc_gateway.exceptions import ValidationError

GSC_API_BASE = "https://www.googleapis.com/webmasters/v3"

DEFAULT_DIMENSIONS = ["query", "page"]
DEFAULT_ROW_LIMIT = 500


@dataclass(frozen=True)
class Operation:
    """Static description of one upstream operation."""

    name: str
    method: str
    required_fields: tuple[str, ...]
    cache_ttl_seconds: int
    per_site: bool

    def missing_fields(self, params: Mapping[str, Any]) -> list[str]:
        """Every required field that is absent or empty, in declaration order."""
        return [f for f in self.required_fields if params.get(f) in (None, "", [])]

    def url(self, params: Mapping[str, Any]) -> str:
        if not self.per_site:
            return f"{GSC_API_BASE}/sites"
        site = quote(str(params["siteUrl"]), safe="")
        return f"{GSC_API_BASE}/sites/{site}/searchAnalytics/query"

    def body(self, params: Mapping[str, Any]) -> dict[str, Any] | None:
        if self.method == "GET":
            return None
        dimensions = params.get("dimensions") or DEFAULT_DIMENSIONS
        if isinstance(dimensions, str):
            dimensions = [d for d in dimensions.split(",") if d]
        return {
            "startDate": params["startDate"],
            "endDate": params["endDate"],
            "dimensions": list(dimensions),
            "rowLimit": int(params.get("rowLimit") or DEFAULT_ROW_LIMIT),
        }


_ANALYTICS_FIELDS = ("siteUrl", "startDate", "endDate")

OPERATIONS: dict[str, Operation] = {
    "sites": Operation(
        name="sites",
        method="GET",
        required_fields=(),
        cache_ttl_seconds=settings.cache_ttl_sites_seconds,
        per_site=False,
    ),
    "search_analytics": Operation(
        name="search_analytics",
        method="POST",
        required_fields=_ANALYTICS_FIELDS,
        cache_ttl_seconds=settings.cache_ttl_analytics_seconds,
        per_site=True,
    ),
    "top_pages": Operation(
        name="top_pages",
        method="POST",
        required_fields=_ANALYTICS_FIELDS,
        cache_ttl_seconds=settings.cache_ttl_analytics_seconds,
        per_site=True,
    ),
}


def get_operation(name: str) -> Operation:
    """Look up an operation; unknown names are a caller error."""
    operation = OPERATIONS.get(name)
    if operation is None:
        raise ValidationError(f"Unknown operation: {name}")
    return operation


def site_suggestions(site_url: str) -> list[str]:
    """
    Alternate property forms to try after a 404.

    Search Console distinguishes domain properties (`sc-domain:example.com`)
    from URL-prefix properties (`https://example.com/`). The form that was
    tried is never suggested.
    """
    if site_url.startswith("sc-domain:"):
        domain = site_url[len("sc-domain:"):]
        candidates = [f"https://{domain}/"]
    elif site_url.startswith(("http://", "https://")):
        host = site_url.split("://", 1)[1].split("/", 1)[0]
        candidates = [f"sc-domain:{host}"]
    else:
        candidates = [f"sc-domain:{site_url.strip('/')}"]
    return [c for c in candidates if c != site_url]
