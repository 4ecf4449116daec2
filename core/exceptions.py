"""
Exception Hierarchy & Error Handling Framework
===============================================
Type-safe exception taxonomy with structured context propagation and
retry metadata. The ``retryable`` flag is what the analysis queue consults
first when deciding whether a failed task gets another attempt.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class AnalysisEngineException(Exception):
    """
    Root exception for all application errors.

    Carries:
    - Unique error ID for log correlation
    - Severity classification
    - Structured context dictionary
    - Retry metadata
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.now(timezone.utc)

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        return self.message


# =============================================================================
# QUEUE & TASK EXCEPTIONS
# =============================================================================


class DuplicateAnalysisError(AnalysisEngineException):
    """An analysis for the same (email, url) identity is already in flight."""

    def __init__(self, task_id: str, status: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            "This URL is already being processed for this email.",
            severity=ErrorSeverity.INFO,
            context={"task_id": task_id},
            error_code="ANALYSIS_DUPLICATE",
            **kwargs,
        )
        self.task_id = task_id
        self.status = status


class TaskNotFoundError(AnalysisEngineException):
    """No status is known for the requested task."""

    def __init__(self, task_id: str, **kwargs):
        super().__init__(
            f"Analysis task {task_id} not found",
            severity=ErrorSeverity.INFO,
            context={"task_id": task_id},
            error_code="TASK_NOT_FOUND",
            **kwargs,
        )
        self.task_id = task_id


class QueueShuttingDownError(AnalysisEngineException):
    """Submission attempted after shutdown began."""

    def __init__(self, message: str = "Analysis queue is shutting down", **kwargs):
        super().__init__(message, severity=ErrorSeverity.WARNING, error_code="QUEUE_CLOSED", **kwargs)


# =============================================================================
# PIPELINE EXCEPTIONS
# =============================================================================


class StageError(AnalysisEngineException):
    """A pipeline stage could not complete."""

    def __init__(self, message: str, *, stage: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {}) or {}
        context.setdefault("stage", stage)
        super().__init__(message, context=context, error_code=kwargs.pop("error_code", "STAGE_FAILED"), **kwargs)
        self.stage = stage


class AnalysisPipelineError(StageError):
    """A required stage failed and the pipeline was aborted."""

    def __init__(self, message: str, *, stage: Optional[str] = None, retryable: bool = False, **kwargs):
        super().__init__(
            message,
            stage=stage,
            retryable=retryable,
            error_code="PIPELINE_ABORTED",
            **kwargs,
        )


class ScrapingError(StageError):
    """Website could not be crawled."""

    def __init__(self, message: str, *, url: Optional[str] = None, retryable: bool = False, **kwargs):
        super().__init__(
            message,
            stage="website",
            retryable=retryable,
            context={"url": url},
            error_code="SCRAPING_FAILED",
            **kwargs,
        )


class ReportGenerationError(StageError):
    """An optional report generator failed."""

    def __init__(self, message: str, *, stage: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            stage=stage,
            severity=ErrorSeverity.WARNING,
            error_code="REPORT_FAILED",
            **kwargs,
        )


# =============================================================================
# LLM EXCEPTIONS
# =============================================================================


class LLMException(AnalysisEngineException):
    """Base exception for LLM-related errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "LLM_ERROR")
        super().__init__(message, **kwargs)


LLMError = LLMException


class LLMNotConfiguredError(LLMException):
    """No API key is configured for the LLM provider."""

    def __init__(self, message: str = "OPENAI_API_KEY is required for AI analysis", **kwargs):
        super().__init__(message, severity=ErrorSeverity.CRITICAL, error_code="LLM_NOT_CONFIGURED", **kwargs)


class LLMRateLimitError(LLMException):
    """API rate limit exceeded."""

    def __init__(self, message: str = "LLM API rate limit exceeded", **kwargs):
        super().__init__(message, retryable=True, error_code="LLM_RATE_LIMIT", **kwargs)


class LLMTimeoutError(LLMException):
    """API request timed out."""

    def __init__(self, message: str = "LLM API request timed out", **kwargs):
        super().__init__(message, retryable=True, error_code="LLM_TIMEOUT", **kwargs)


class LLMInvalidResponseError(LLMException):
    """LLM returned a response that could not be parsed."""

    def __init__(self, message: str = "LLM returned invalid response", *, response_text: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            context={"response_preview": response_text[:500] if response_text else None},
            error_code="LLM_INVALID_RESPONSE",
            **kwargs,
        )


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS
# =============================================================================


class DatabaseException(AnalysisEngineException):
    """Base exception for database errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, severity=kwargs.pop("severity", ErrorSeverity.CRITICAL), **kwargs)


DatabaseError = DatabaseException


class DatabaseConnectionError(DatabaseException):
    """Failed to establish database connection."""

    def __init__(
        self,
        message: str = "Database connection failed",
        *,
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"host": host, "database": database},
            error_code="DB_CONNECTION_FAILED",
            **kwargs,
        )


class DatabaseQueryError(DatabaseException):
    """Query execution failed."""

    def __init__(self, message: str = "Database query failed", *, query_preview: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            context={"query_preview": query_preview},
            error_code="DB_QUERY_FAILED",
            **kwargs,
        )


class NotificationError(AnalysisEngineException):
    """Report e-mail could not be delivered."""

    def __init__(self, message: str, *, recipient: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            context={"recipient": recipient},
            error_code="NOTIFICATION_FAILED",
            **kwargs,
        )


class AuthorizationError(AnalysisEngineException):
    """Bearer token missing or invalid."""

    def __init__(self, message: str = "Forbidden", *, status_code: int = 403, **kwargs):
        super().__init__(message, severity=ErrorSeverity.WARNING, error_code="FORBIDDEN", **kwargs)
        self.status_code = status_code


__all__ = [
    "AnalysisEngineException",
    "DuplicateAnalysisError",
    "TaskNotFoundError",
    "QueueShuttingDownError",
    "StageError",
    "AnalysisPipelineError",
    "ScrapingError",
    "ReportGenerationError",
    "LLMException",
    "LLMError",
    "LLMNotConfiguredError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMInvalidResponseError",
    "DatabaseException",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "NotificationError",
    "AuthorizationError",
]
