"""
Observability module - Logging, Metrics, and Tracing.
"""

from supportdesk.observability.logging import get_logger, log_context, setup_logging
from supportdesk.observability.metrics import metrics
from supportdesk.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
