"""
API Exception Handlers: Domain Error → HTTP Error Mapping

Centralized exception handling for clean error responses.
Maps domain-specific exceptions to appropriate HTTP status codes.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from core.exceptions import (
    AnalysisEngineException,
    AuthorizationError,
    DuplicateAnalysisError,
    QueueShuttingDownError,
    TaskNotFoundError,
)


def _body(request: Request, error: str, detail: Any = None, **extra: Any) -> Dict[str, Any]:
    body = {
        "success": False,
        "error": error,
        "detail": detail,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }
    body.update(extra)
    return body


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_body(request, "Validation Error", jsonable_errors(exc)),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw ValueError, which is not JSON serializable
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


async def duplicate_analysis_handler(request: Request, exc: DuplicateAnalysisError):
    """Handle a submission for an identity that is already queued or processing."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_body(request, str(exc), task_id=exc.task_id, status=exc.status),
    )


async def task_not_found_handler(request: Request, exc: TaskNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=_body(request, "Task Not Found", str(exc), task_id=exc.task_id),
    )


async def authorization_error_handler(request: Request, exc: AuthorizationError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_body(request, str(exc)),
        headers=headers,
    )


async def queue_shutting_down_handler(request: Request, exc: QueueShuttingDownError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_body(request, "Service Unavailable", str(exc)),
    )


async def engine_exception_handler(request: Request, exc: AnalysisEngineException):
    """Catch-all for domain errors without a dedicated mapping."""
    logger.error(f"Unhandled domain error | {exc.to_dict()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_body(request, "Internal Error", str(exc), error_id=str(exc.error_id)),
    )


def add_exception_handlers(app: FastAPI):
    """Add all exception handlers to the FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DuplicateAnalysisError, duplicate_analysis_handler)
    app.add_exception_handler(TaskNotFoundError, task_not_found_handler)
    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(QueueShuttingDownError, queue_shutting_down_handler)
    app.add_exception_handler(AnalysisEngineException, engine_exception_handler)
