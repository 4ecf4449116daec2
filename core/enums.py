"""
Domain Enumerations
===================
String enums for task lifecycle and pipeline bookkeeping. String values keep
JSON and database storage free of integer mapping fragility.
"""

from enum import Enum, IntEnum


class TaskState(str, Enum):
    """Overall lifecycle of an analysis task."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED)


class EmailState(str, Enum):
    """Delivery state of the final notification, tracked apart from TaskState."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


# Written by older deployments while the report e-mail was going out.
LEGACY_SENDING_STATE = "sending_email"

# Statuses that block a new submission for the same identity.
ACTIVE_STATES = frozenset({TaskState.QUEUED.value, TaskState.PROCESSING.value, LEGACY_SENDING_STATE})

TERMINAL_STATES = frozenset({TaskState.COMPLETED.value, TaskState.FAILED.value})


class RequiredStage(str, Enum):
    """Pipeline stages whose failure aborts the run, in execution order."""

    WEBSITE = "website"
    GEO = "geo"
    SCORING = "scoring"
    RISK_CLAIMS = "risk_claims"


class ReportStage(str, Enum):
    """Independent report generators run after the required stages."""

    PROFESSIONAL = "professional_report"
    CRAWLABILITY = "crawlability_report"
    FAQ = "faq_report"
    STRUCTURED_DATA = "structured_data_report"
    META_TAGS = "meta_tags_report"


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Determines alerting and log level for structured errors.
    """

    CRITICAL = 5
    ERROR = 4
    WARNING = 3
    INFO = 2
    DEBUG = 1

    @property
    def should_alert(self) -> bool:
        return self >= self.ERROR
