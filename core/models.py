"""
Domain Data Models
==================
Pydantic v2 models for task status, pipeline results and queue
introspection, plus the in-memory ``Task`` work unit.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.enums import LEGACY_SENDING_STATE, EmailState, TaskState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=True,
        validate_default=True,
        populate_by_name=True,
    )


# =============================================================================
# TASK STATUS
# =============================================================================


class TaskStatus(BaseModelConfig):
    """
    Observable state of an analysis task.

    Held in the queue's in-memory cache and mirrored to the
    ``analysis_records`` table.
    """

    task_id: str
    email: str
    url: str
    status: TaskState = TaskState.QUEUED
    email_status: EmailState = EmailState.PENDING
    report_directory: Optional[str] = None
    email_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    # Row mirrored by this status; each admission inserts its own row
    record_id: Optional[int] = Field(default=None, exclude=True)

    @property
    def is_terminal(self) -> bool:
        return TaskState(self.status).is_terminal

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "TaskStatus":
        """Build a status from an ``analysis_records`` row mapping."""
        status = record.get("status") or TaskState.QUEUED
        if status == LEGACY_SENDING_STATE:
            status = TaskState.PROCESSING
        return cls(
            task_id=record["task_id"],
            email=record.get("email") or "",
            url=record["url"],
            status=status,
            email_status=record.get("email_status") or EmailState.PENDING,
            report_directory=record.get("report_directory"),
            email_error=record.get("email_error"),
            created_at=_as_utc(record.get("created_at")),
            updated_at=_as_utc(record.get("updated_at")),
            record_id=record.get("id"),
        )


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# TASK (in-memory work unit)
# =============================================================================


@dataclass
class Task:
    """One queued analysis request. Lives only inside the queue."""

    task_id: str
    email: str
    url: str
    user_id: Optional[str] = None
    queued_at: float = field(default_factory=time.time)
    processing_started_at: Optional[float] = None
    retry_count: int = 0
    outcome: Optional[asyncio.Future] = field(default=None, repr=False, compare=False)

    def resolve(self, result: dict[str, Any]) -> None:
        """Hand the terminal outcome to whoever is still waiting on it."""
        if self.outcome is not None and not self.outcome.done():
            self.outcome.set_result(result)

    def summary(self) -> dict[str, Any]:
        return {"task_id": self.task_id, "url": self.url, "email": self.email}


class SubmissionResult(BaseModel):
    """Answer to an admission request."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    duplicate: bool
    task_id: str
    status: Optional[TaskStatus] = None
    outcome: Optional[asyncio.Future] = Field(default=None, exclude=True)


# =============================================================================
# PIPELINE RESULTS
# =============================================================================


class StageResult(BaseModel):
    """Outcome of one required pipeline stage."""

    success: bool
    error: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    duration: float = 0.0


class ReportResult(BaseModel):
    """Outcome of one optional report generator."""

    success: bool
    path: Optional[str] = None
    error: Optional[str] = None
    duration: float = 0.0


class PipelineResult(BaseModel):
    """Structured audit of a full pipeline run."""

    success: bool = False
    steps: dict[str, dict[str, Any]] = Field(default_factory=dict)
    report_directory: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    retryable: bool = False
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None

    @property
    def successful_reports(self) -> list[str]:
        return [name for name, step in self.steps.items() if name.endswith("_report") and step.get("success")]


# =============================================================================
# QUEUE INTROSPECTION
# =============================================================================


class QueueItem(BaseModel):
    task_id: str
    url: str
    email: str
    retries: int
    wait_time_ms: int


class QueueSnapshot(BaseModel):
    queue_length: int
    is_processing: bool
    current_task: Optional[dict[str, Any]] = None
    queue_items: list[QueueItem] = Field(default_factory=list)


class ReconciliationResult(BaseModel):
    restored: int
    total_considered: int
