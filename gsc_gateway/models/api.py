"""
API Models - Pydantic models for request/response validation.

Wire names are camelCase; Python attributes are snake_case.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Accepts both the camelCase alias and the field name."""

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Search Console Models
# ============================================================================


class GscDataRequest(CamelModel):
    """
    POST /v1/gsc/data request body.

    Required fields are optional here so that every missing one is reported
    together as a VALIDATION_ERROR.
    """

    site_url: str | None = Field(None, alias="siteUrl")
    start_date: str | None = Field(None, alias="startDate")
    end_date: str | None = Field(None, alias="endDate")
    dimensions: list[str] | None = None
    row_limit: int = Field(500, alias="rowLimit", ge=1, le=25000)


# ============================================================================
# Insight Models
# ============================================================================


class InsightRequest(CamelModel):
    """POST /v1/insights/generate request body."""

    site_url: str | None = Field(None, alias="siteUrl")
    period: str = "last 28 days"
    data: dict[str, Any] | list[dict[str, Any]] = Field(default_factory=list)

    def rows(self) -> list[dict[str, Any]]:
        """Analytics rows, whether sent as a raw query response or a bare list."""
        if isinstance(self.data, dict):
            rows = self.data.get("rows") or []
            return [r for r in rows if isinstance(r, dict)]
        return self.data


# ============================================================================
# Auth Models
# ============================================================================


class OAuthCallbackRequest(BaseModel):
    """POST /v1/auth/gsc/callback request body."""

    code: str | None = None


class OAuthUrlResponse(BaseModel):
    success: bool = True
    url: str
    state: str


class TokenRefreshResponse(CamelModel):
    success: bool = True
    expires_in: int | None = Field(None, serialization_alias="expiresIn")


class StatusResponse(BaseModel):
    success: bool = True
    message: str


# ============================================================================
# Credit / Health Models
# ============================================================================


class UseCreditsRequest(BaseModel):
    """POST /v1/credits/use request."""

    amount: int = Field(1, ge=1)
    purpose: str = Field(..., min_length=1, max_length=100)


class CreditsResponse(BaseModel):
    """Balance returned by the credit endpoints."""

    success: bool = True
    credits: int = Field(..., ge=0)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    kv_store: str
    version: str
