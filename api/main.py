"""
Main FastAPI application definitions, middleware, and request handlers.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from api.exceptions import add_exception_handlers
from api.routes import analysis, system
from api.schemas import HealthCheckResponse
from config.settings import settings
from container import container, get_database, get_queue, shutdown_container
from core.exceptions import DatabaseException
from infrastructure.monitoring import configure_structlog, get_logger
from security import get_security_headers

# Configure structlog for the application
configure_structlog()
logger = get_logger(__name__)

# ============================================================================
# MIDDLEWARE STACK (Cross-Cutting Concerns)
# ============================================================================


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach environment-aware security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for k, v in get_security_headers().items():
            if k not in response.headers:
                response.headers[k] = v
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for distributed tracing and correlation."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ============================================================================
# FASTAPI APPLICATION INITIALIZATION
# ============================================================================


def validate_environment() -> None:
    """Log missing configuration; refuse to start in production."""
    validation_errors = []
    warnings = []

    if not settings.llm.is_configured:
        validation_errors.append("OPENAI_API_KEY is required for GEO scoring and claims analysis")
    if not settings.smtp.host:
        warnings.append("SMTP_HOST is not set; reports will be generated but not e-mailed")
    if settings.reconcile_token is None:
        warnings.append("RECONCILE_TOKEN is not set; /reconcile-analyses is disabled")
    if len(settings.secret_key.get_secret_value()) < 32:
        validation_errors.append("SECRET_KEY must be at least 32 characters long")

    for warning in warnings:
        logger.warning("configuration_warning", detail=warning)

    if validation_errors:
        logger.error("configuration_invalid", errors=validation_errors)
        if settings.is_production:
            raise RuntimeError("Environment configuration validation failed: " + "; ".join(validation_errors))
        logger.warning("Continuing with invalid configuration (development mode)")
    else:
        logger.info("configuration_validated")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: validate config, connect the store, create the reports root.
    Shutdown: drain the analysis queue, then release connections.
    """
    validate_environment()

    try:
        await get_database().initialize()
        logger.info("database_manager_initialized")
    except DatabaseException as e:
        if settings.is_production:
            raise
        # Status mirroring logs and skips store writes until the database is back
        logger.warning("database_initialization_failed", error=str(e))

    settings.reports.reports_dir.mkdir(parents=True, exist_ok=True)
    queue = get_queue()
    logger.info("application_startup_complete", reports_dir=str(settings.reports.reports_dir))

    yield

    logger.info("application_shutdown_started", queued=queue.queue_snapshot().queue_length)
    await shutdown_container()
    logger.info("application_shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    description="Queues website analyses, runs the GEO visibility pipeline and e-mails the reports",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

add_exception_handlers(app)

# Wire container so the @inject getters resolve providers
container.wire(modules=["container"])

app.include_router(analysis.router)
app.include_router(system.router)


# API Root - redirect to docs
@app.get("/")
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/docs")


# Health alias at root for load balancer checks
@app.get("/health", response_model=HealthCheckResponse)
async def root_health():
    queue = get_queue()
    snapshot = queue.queue_snapshot()
    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        dependencies={"database": "initialized" if get_database().is_initialized else "not initialized"},
        queue={"queue_length": snapshot.queue_length, "is_processing": snapshot.is_processing},
    )


# Middleware stack (order matters: last added = first executed)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, log_level="info", access_log=True)
