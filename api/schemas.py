"""
API Schemas: Request/Response Models

Centralized Pydantic models for API request/response validation.
Implements Domain Transfer Objects (DTOs) pattern for clean API contracts.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from core.models import QueueItem, TaskStatus


class AnalyzeRequest(BaseModel):
    """Command: queue a website analysis for delivery to an e-mail address."""

    email: EmailStr = Field(..., description="Where the finished reports are sent")
    url: str = Field(..., min_length=1, max_length=2048, description="Website to analyze")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must not be empty")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "owner@example.com",
                "url": "https://example.com",
            }
        }
    )


class AnalyzeResponse(BaseModel):
    success: bool = True
    task_id: str
    status: str
    message: str = "Analysis queued"


class TaskStatusResponse(BaseModel):
    """Query result: task status representation."""

    task_id: str
    email: str
    url: str
    status: str
    email_status: str
    report_directory: Optional[str] = None
    email_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_status(cls, status: TaskStatus) -> "TaskStatusResponse":
        return cls.model_validate(status.model_dump())


class QueueStatusResponse(BaseModel):
    queue_length: int
    is_processing: bool
    current_task: Optional[dict] = None
    queue_items: List[QueueItem] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    success: bool = True
    restored: int
    total_considered: int


class AnalysisRecordResponse(BaseModel):
    """One row of a user's analysis history."""

    task_id: str
    email: str
    url: str
    status: str
    email_status: Optional[str] = None
    report_directory: Optional[str] = None
    email_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MyAnalysesResponse(BaseModel):
    """Paginated analysis history for the authenticated user."""

    success: bool = True
    analyses: List[AnalysisRecordResponse]
    page: int
    page_size: int
    total: int
    total_pages: int
    has_more: bool


class PrecheckRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)


class PrecheckResponse(BaseModel):
    success: bool = True
    input: str
    normalized_url: str
    final_url: str
    status: int
    redirected: bool


class HealthCheckResponse(BaseModel):
    """System health status."""

    status: str
    timestamp: datetime
    version: str
    dependencies: dict
    queue: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standardized error response."""

    success: bool = False
    error: str
    detail: Optional[Any] = None
    timestamp: datetime
    request_id: Optional[str]
