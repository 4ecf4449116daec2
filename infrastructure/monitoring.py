"""
Monitoring Infrastructure: Structured Logging and Prometheus Metrics

Provides JSON-based structured logging for the API layer and a metrics
collector for the analysis queue.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from config.settings import get_settings


def configure_structlog(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structlog for production logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON (or console) rendering
    """
    monitoring = get_settings().monitoring
    level_name = (level or monitoring.log_level).upper()
    renderer = (
        structlog.processors.JSONRenderer()
        if (fmt or monitoring.log_format) == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for the analysis queue.

    Tracks:
    - Task outcomes, retries and durations
    - Queue depth
    - Report stage results
    - Notification delivery
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        # Task metrics
        self.tasks_total = Counter(
            "analysis_tasks_total",
            "Analysis tasks reaching a terminal outcome",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.task_retries_total = Counter(
            "analysis_task_retries_total",
            "Analysis task attempts scheduled for retry",
            registry=self.registry,
        )

        self.task_duration_seconds = Histogram(
            "analysis_task_duration_seconds",
            "Duration of one analysis attempt",
            buckets=[5, 15, 30, 60, 120, 300, 600, 1200, 1800],
            labelnames=["outcome"],
            registry=self.registry,
        )

        # Queue metrics
        self.queue_length = Gauge(
            "analysis_queue_length",
            "Tasks waiting in the analysis queue",
            registry=self.registry,
        )

        # Pipeline metrics
        self.report_stages_total = Counter(
            "analysis_report_stages_total",
            "Report generator results",
            labelnames=["stage", "status"],
            registry=self.registry,
        )

        self.notifications_total = Counter(
            "analysis_notifications_total",
            "Report e-mail delivery attempts",
            labelnames=["status"],
            registry=self.registry,
        )

        log = get_logger(__name__)
        log.info("metrics_collector_initialized", metrics_type="prometheus")

    def record_task_outcome(self, outcome: str, duration_seconds: Optional[float] = None) -> None:
        """
        Record the terminal outcome of a task attempt.

        Args:
            outcome: "completed", "failed" or "retried"
            duration_seconds: Attempt duration, if known
        """
        if outcome == "retried":
            self.task_retries_total.inc()
        else:
            self.tasks_total.labels(outcome=outcome).inc()

        if duration_seconds is not None:
            self.task_duration_seconds.labels(outcome=outcome).observe(duration_seconds)

    def update_queue_length(self, size: int) -> None:
        self.queue_length.set(size)

    def record_report_stage(self, stage: str, success: bool) -> None:
        self.report_stages_total.labels(stage=stage, status="success" if success else "failure").inc()

    def record_notification(self, status: str) -> None:
        self.notifications_total.labels(status=status).inc()

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus format.

        Returns:
            Prometheus-formatted metrics payload
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "metrics_initialized": True,
            "queue_length": self.queue_length._value.get(),
        }

    @classmethod
    def reset_singleton(cls) -> None:
        """Reset the default registry for testing purposes."""
        for collector in list(REGISTRY._collector_to_names.keys()):
            REGISTRY.unregister(collector)
