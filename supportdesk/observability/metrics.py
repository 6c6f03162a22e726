"""
Metrics Collection with Prometheus.

Exposes auth, ticket and realtime metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from supportdesk.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    EVENT = "event"
    ERROR_TYPE = "error_type"


class SupportDeskMetrics:
    """
    Centralized metrics for the SupportDesk API.

    Covers:
    - HTTP requests (rate, duration, in flight)
    - Auth events (signin, refresh, logout, link and OAuth logins)
    - Ticket operations by outcome
    - Realtime connections and broadcast events
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "supportdesk_service",
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
            "supportdesk_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "supportdesk_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "supportdesk_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Auth Metrics
        # ====================================================================
        self.auth_events_total = Counter(
            "supportdesk_auth_events_total",
            "Authentication events by outcome",
            [MetricLabels.EVENT, MetricLabels.OUTCOME],
        )

        self.token_rotations_total = Counter(
            "supportdesk_token_rotations_total",
            "Refresh token hashes written",
        )

        self.magic_links_total = Counter(
            "supportdesk_magic_links_total",
            "One-time links issued and verified",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Ticket Metrics
        # ====================================================================
        self.ticket_operations_total = Counter(
            "supportdesk_ticket_operations_total",
            "Ticket operations by outcome",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Realtime Metrics
        # ====================================================================
        self.realtime_connections = Gauge(
            "supportdesk_realtime_connections",
            "Authenticated realtime connections currently open",
        )

        self.realtime_rejections_total = Counter(
            "supportdesk_realtime_rejections_total",
            "Realtime handshakes rejected",
        )

        self.realtime_events_total = Counter(
            "supportdesk_realtime_events_total",
            "Events delivered to room members",
            [MetricLabels.EVENT],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "supportdesk_errors_total",
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

    def record_auth_event(self, event: str, success: bool) -> None:
        """Record an authentication attempt."""
        self.auth_events_total.labels(
            event=event, outcome="success" if success else "denied"
        ).inc()

    def record_magic_link(self, operation: str, outcome: str) -> None:
        """Record one-time link issuance or verification."""
        self.magic_links_total.labels(operation=operation, outcome=outcome).inc()

    def record_ticket_operation(self, operation: str, outcome: str) -> None:
        """Record a ticket operation (outcome: ok, forbidden, not_found)."""
        self.ticket_operations_total.labels(operation=operation, outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = SupportDeskMetrics()
