"""
Metrics Collection with Prometheus.

Exposes gateway and upstream metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from gsc_gateway.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class GatewayMetrics:
    """
    Centralized metrics for the gateway.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Upstream calls per operation (status, duration)
    - Response cache and rate limiter decisions
    - Token refreshes and credit charges
    - Insight generation outcomes
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "gateway_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "gateway_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "gateway_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "gateway_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Upstream Metrics
        # ====================================================================
        self.upstream_requests_total = Counter(
            "gateway_upstream_requests_total",
            "Total upstream Search Console calls",
            [MetricLabels.OPERATION, MetricLabels.STATUS_CODE],
        )

        self.upstream_request_duration_seconds = Histogram(
            "gateway_upstream_request_duration_seconds",
            "Upstream call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
        )

        # ====================================================================
        # Cache / Rate Limit Metrics
        # ====================================================================
        self.cache_lookups_total = Counter(
            "gateway_cache_lookups_total",
            "Response cache lookups",
            [MetricLabels.OPERATION, "hit"],
        )

        self.rate_limit_decisions_total = Counter(
            "gateway_rate_limit_decisions_total",
            "Rate limiter decisions",
            [MetricLabels.OPERATION, "limited"],
        )

        # ====================================================================
        # Token / Credit Metrics
        # ====================================================================
        self.token_refreshes_total = Counter(
            "gateway_token_refreshes_total",
            "OAuth refresh-token exchanges",
            [MetricLabels.OUTCOME],
        )

        self.credit_charges_total = Counter(
            "gateway_credit_charges_total",
            "Credit charge attempts",
            ["purpose", "success"],
        )

        self.credit_log_failures_total = Counter(
            "gateway_credit_log_failures_total",
            "Credit ledger rows that failed to persist after a debit",
        )

        # ====================================================================
        # Insight Metrics
        # ====================================================================
        self.insight_generations_total = Counter(
            "gateway_insight_generations_total",
            "Insight generation requests by outcome (cached, ai, fallback)",
            [MetricLabels.OUTCOME],
        )

        self.ai_request_duration_seconds = Histogram(
            "gateway_ai_request_duration_seconds",
            "AI provider call duration in seconds",
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "gateway_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_upstream_call(self, operation: str, status_code: int | str, duration: float) -> None:
        """Record an upstream call (status_code may be 'timeout' or 'error')."""
        self.upstream_requests_total.labels(
            operation=operation, status_code=str(status_code)
        ).inc()
        self.upstream_request_duration_seconds.labels(operation=operation).observe(duration)

    def record_cache_lookup(self, operation: str, hit: bool) -> None:
        """Record response cache hit or miss."""
        self.cache_lookups_total.labels(operation=operation, hit=str(hit)).inc()

    def record_rate_limit(self, operation: str, limited: bool) -> None:
        """Record a rate limiter decision."""
        self.rate_limit_decisions_total.labels(operation=operation, limited=str(limited)).inc()

    def record_token_refresh(self, outcome: str) -> None:
        """Record token refresh outcome (success, rejected, not_connected, error)."""
        self.token_refreshes_total.labels(outcome=outcome).inc()

    def record_credit_charge(self, purpose: str, success: bool) -> None:
        """Record credit charge attempt."""
        self.credit_charges_total.labels(purpose=purpose, success=str(success)).inc()

    def record_insight_generation(self, outcome: str) -> None:
        """Record insight generation outcome."""
        self.insight_generations_total.labels(outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GatewayMetrics()
