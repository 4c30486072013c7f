"""
Prometheus metrics for monitoring the reconciliation engine.

Defines and exposes metrics for:
- Cycle outcomes and duration
- Samples evaluated and history records written
- Alert outcomes per kind (notified, suppressed, send failures, ...)
- Notification delivery results
- Engine run state

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from alertcpl.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for cycle duration (in seconds); a cycle walks every account sequentially
CYCLE_BUCKETS = (1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the AlertCPL engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_cycle("completed", duration=12.5)
        metrics.record_alert("HIGH_COST_PER_LEAD", "notified")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.cycles = Counter(
            "alertcpl_cycles_total",
            "Reconciliation cycles by outcome",
            ["status"],  # completed, no_accounts, already_running, failed
        )

        self.cycle_duration = Histogram(
            "alertcpl_cycle_duration_seconds",
            "Wall-clock duration of a reconciliation cycle",
            buckets=CYCLE_BUCKETS,
        )

        self.accounts_processed = Counter(
            "alertcpl_accounts_processed_total",
            "Accounts processed by outcome",
            ["status"],  # ok, skipped, error
        )

        self.samples_evaluated = Counter(
            "alertcpl_samples_evaluated_total",
            "Ad-level metric samples evaluated",
        )

        self.history_written = Counter(
            "alertcpl_history_records_total",
            "CPL history records written",
            ["status"],  # success, error
        )

        self.alerts = Counter(
            "alertcpl_alerts_total",
            "Alert incidents by kind and outcome",
            ["kind", "outcome"],
        )

        self.notifications = Counter(
            "alertcpl_notifications_total",
            "Notification delivery attempts",
            ["status"],  # success, error
        )

        self.engine_running = Gauge(
            "alertcpl_engine_running",
            "Whether a reconciliation cycle is in flight (1=running, 0=idle)",
        )

        self.last_run_started = Gauge(
            "alertcpl_last_run_started_timestamp_seconds",
            "Unix timestamp of the most recent cycle start",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_cycle(self, status: str, duration: float | None = None) -> None:
        """
        Record a finished (or rejected) cycle.

        Args:
            status: Cycle status value
            duration: Elapsed seconds, omitted for rejected invocations
        """
        self.cycles.labels(status=status).inc()
        if duration is not None:
            self.cycle_duration.observe(duration)

    def record_account(self, status: str) -> None:
        """Record the outcome of one account."""
        self.accounts_processed.labels(status=status).inc()

    def record_sample(self) -> None:
        self.samples_evaluated.inc()

    def record_history(self, success: bool) -> None:
        """Record a history write attempt."""
        self.history_written.labels(status="success" if success else "error").inc()

    def record_alert(self, kind: str, outcome: str) -> None:
        """Record the outcome of one alert incident."""
        self.alerts.labels(kind=kind, outcome=outcome).inc()

    def record_notification(self, success: bool) -> None:
        """Record a notification delivery attempt."""
        self.notifications.labels(status="success" if success else "error").inc()

    def set_running(self, running: bool, started_at: float | None = None) -> None:
        """
        Update engine run-state gauges.

        Args:
            running: Whether a cycle is in flight
            started_at: Unix timestamp of the cycle start (set on entry)
        """
        self.engine_running.set(1 if running else 0)
        if started_at is not None:
            self.last_run_started.set(started_at)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
