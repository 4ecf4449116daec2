"""
Analysis Routes: Admission, Status and History

Implements the public analysis surface:
- Submit a website analysis (idempotent per email + url)
- Task status by id or by e-mail
- Queue introspection
- Operator-triggered status reconciliation
- Per-user analysis history
- URL reachability precheck
"""

import math
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger

from api.schemas import (
    AnalysisRecordResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    MyAnalysesResponse,
    PrecheckRequest,
    PrecheckResponse,
    QueueStatusResponse,
    ReconcileResponse,
    TaskStatusResponse,
)
from config.settings import Settings
from container import AnalysisQueue, AnalysisRecordRepository, StatusReconciler, container
from core.exceptions import DatabaseException, DuplicateAnalysisError, TaskNotFoundError
from core.models import TaskStatus
from execution.website_analyzer import precheck_url
from security import get_optional_user_id, require_reconcile_token, require_user_id

router = APIRouter(tags=["Analysis"])

MAX_PAGE_SIZE = 100


# Simple dependency functions for FastAPI
def get_queue_dependency() -> AnalysisQueue:
    """Get the process-wide AnalysisQueue for FastAPI dependency injection."""
    return container.queue()


def get_repository_dependency() -> AnalysisRecordRepository:
    """Get AnalysisRecordRepository instance for FastAPI dependency injection."""
    return container.record_repository()


def get_reconciler_dependency() -> StatusReconciler:
    """Get StatusReconciler instance for FastAPI dependency injection."""
    return container.reconciler()


def get_settings_dependency() -> Settings:
    return container.config()


# ============================================================================
# ADMISSION
# ============================================================================


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a website analysis",
    responses={409: {"description": "Analysis already queued or processing"}},
)
async def analyze(
    request: AnalyzeRequest,
    queue: AnalysisQueue = Depends(get_queue_dependency),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> AnalyzeResponse:
    """
    Queue an analysis and return immediately.

    The reports are e-mailed when the pipeline finishes; poll
    ``/analysis-status/{task_id}`` for progress.
    """
    result = await queue.submit(str(request.email), request.url, user_id=user_id)
    if result.duplicate:
        raise DuplicateAnalysisError(
            result.task_id,
            status=result.status.model_dump(mode="json") if result.status else None,
        )

    return AnalyzeResponse(task_id=result.task_id, status=result.status.status)


# ============================================================================
# STATUS
# ============================================================================


@router.get("/analysis-status/{task_id}", response_model=TaskStatusResponse)
async def get_analysis_status(
    task_id: str,
    queue: AnalysisQueue = Depends(get_queue_dependency),
    repository: AnalysisRecordRepository = Depends(get_repository_dependency),
) -> TaskStatusResponse:
    """Status of one task; falls back to the store when the cache has evicted it."""
    cached = queue.get_status(task_id)
    if cached is not None:
        return TaskStatusResponse.from_status(cached)

    try:
        record = await repository.get_by_task_id(task_id)
    except DatabaseException as e:
        logger.warning(f"Status fallback lookup failed | task_id={task_id} | error={e}")
        record = None

    if record is None:
        raise TaskNotFoundError(task_id)

    restored = TaskStatus.from_record(record)
    queue.restore_status(restored)
    return TaskStatusResponse.from_status(restored)


@router.get("/analysis-status", response_model=List[TaskStatusResponse])
async def get_analysis_statuses_for_email(
    email: str = Query(..., min_length=3),
    queue: AnalysisQueue = Depends(get_queue_dependency),
) -> List[TaskStatusResponse]:
    """All cached statuses for an e-mail address, newest first."""
    return [TaskStatusResponse.from_status(s) for s in queue.get_statuses_for_email(email)]


@router.get("/queue-status", response_model=QueueStatusResponse)
async def get_queue_status(queue: AnalysisQueue = Depends(get_queue_dependency)) -> QueueStatusResponse:
    snapshot = queue.queue_snapshot()
    return QueueStatusResponse(**snapshot.model_dump())


@router.post(
    "/reconcile-analyses",
    response_model=ReconcileResponse,
    dependencies=[Depends(require_reconcile_token)],
)
async def reconcile_analyses(
    reconciler: StatusReconciler = Depends(get_reconciler_dependency),
) -> ReconcileResponse:
    """Rebuild cached statuses from the store, e.g. after a restart."""
    result = await reconciler.reconcile()
    return ReconcileResponse(restored=result.restored, total_considered=result.total_considered)


# ============================================================================
# HISTORY
# ============================================================================


@router.get("/my-analyses", response_model=MyAnalysesResponse)
async def get_my_analyses(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1),
    user_id: str = Depends(require_user_id),
    repository: AnalysisRecordRepository = Depends(get_repository_dependency),
) -> MyAnalysesResponse:
    page_size = min(page_size, MAX_PAGE_SIZE)

    total = await repository.count_for_user(user_id)
    rows = await repository.list_for_user(user_id, page=page, page_size=page_size)
    total_pages = math.ceil(total / page_size) if total else 0

    return MyAnalysesResponse(
        analyses=[AnalysisRecordResponse.model_validate(row) for row in rows],
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_more=page < total_pages,
    )


# ============================================================================
# PRECHECK
# ============================================================================


@router.post("/precheck-url", response_model=PrecheckResponse)
async def precheck(
    request: PrecheckRequest,
    settings: Settings = Depends(get_settings_dependency),
) -> PrecheckResponse:
    """Check that a URL answers before the user submits it for analysis."""
    result = await precheck_url(request.url, settings.scraping)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not reach {request.url}. Check the address and try again.",
        )
    return PrecheckResponse(**result)
