"""
Observability module - Logging, Metrics, and Tracing.
"""

from gsc_gateway.observability.logging import get_logger, log_context, setup_logging
from gsc_gateway.observability.metrics import metrics
from gsc_gateway.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
