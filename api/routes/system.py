"""
System Routes: Health Check and Monitoring Endpoints

Provides system-level endpoints for health monitoring and Prometheus metrics.

Architectural Pattern: System API + Health Check Pattern
"""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from api.routes.analysis import get_queue_dependency, get_settings_dependency
from api.schemas import HealthCheckResponse
from config.settings import Settings
from container import AnalysisQueue, DatabaseManager, MetricsCollector, container
from core.exceptions import DatabaseException

router = APIRouter(prefix="/system", tags=["System"])


# Simple dependency functions for FastAPI
def get_database_dependency() -> DatabaseManager:
    """Get DatabaseManager instance for FastAPI dependency injection."""
    return container.database()


def get_metrics_dependency() -> MetricsCollector:
    """Get MetricsCollector instance for FastAPI dependency injection."""
    return container.metrics()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="System health check with dependency status",
)
async def health_check(
    db: DatabaseManager = Depends(get_database_dependency),
    queue: AnalysisQueue = Depends(get_queue_dependency),
    settings: Settings = Depends(get_settings_dependency),
) -> HealthCheckResponse:
    """
    System health check with dependency status.

    The queue keeps serving from its cache while the database is down, so a
    failed database check reports ``degraded`` rather than ``unhealthy``.
    """
    dependencies: Dict[str, str] = {}

    if not db.is_initialized:
        dependencies["database"] = "unhealthy: not initialized"
    else:
        try:
            await db.health_check()
            dependencies["database"] = "healthy"
        except DatabaseException as e:
            dependencies["database"] = f"unhealthy: {e}"

    dependencies["smtp"] = "configured" if settings.smtp.host else "unconfigured"
    dependencies["llm"] = "configured" if settings.llm.is_configured else "unconfigured"

    snapshot = queue.queue_snapshot()
    overall_status = "healthy" if dependencies["database"] == "healthy" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        dependencies=dependencies,
        queue={"queue_length": snapshot.queue_length, "is_processing": snapshot.is_processing},
    )


@router.get(
    "/metrics",
    summary="System metrics (Prometheus format)",
    description="Export metrics in Prometheus format for monitoring systems",
)
async def get_system_metrics(
    metrics: MetricsCollector = Depends(get_metrics_dependency),
) -> Response:
    """
    Export metrics in Prometheus format.

    Includes task outcomes and retries, queue depth, report stage results and
    notification delivery.
    """
    return Response(content=metrics.export_metrics(), media_type=metrics.get_content_type())
