"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from credit_workflow.api.dependencies import get_request_id
from credit_workflow.api.middleware import RequestIDMiddleware, MetricsMiddleware
from credit_workflow.api.v1 import applications, audit, decision
from credit_workflow.domain.exceptions import (
    ApplicationNotFound,
    ConflictError,
    PermissionDenied,
    ScoringUnavailable,
    ValidationError,
)
from credit_workflow.infrastructure.observability.logging import setup_logging
from credit_workflow.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP responses"""

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        logging.warning(f"Validation failed: {exc}", extra={"request_id": get_request_id(request)})
        return JSONResponse(status_code=422, content={"detail": exc.message, "field": exc.field})

    @app.exception_handler(PermissionDenied)
    async def permission_denied(request: Request, exc: PermissionDenied):
        logging.warning(f"Permission denied: {exc}", extra={"request_id": get_request_id(request)})
        return JSONResponse(
            status_code=403,
            content={"detail": str(exc), "capability": exc.capability},
        )

    @app.exception_handler(ApplicationNotFound)
    async def not_found(request: Request, exc: ApplicationNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict(request: Request, exc: ConflictError):
        logging.warning(f"Concurrent modification: {exc}", extra={"request_id": get_request_id(request)})
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "current_version": exc.actual_version},
            headers={"ETag": f'"{exc.actual_version}"'},
        )

    @app.exception_handler(ScoringUnavailable)
    async def scoring_unavailable(request: Request, exc: ScoringUnavailable):
        logging.error(f"Scoring unavailable: {exc}", extra={"request_id": get_request_id(request)})
        return JSONResponse(status_code=503, content={"detail": "Scoring service unavailable"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Credit Decision Workflow",
        description="Automatic scoring, manual overrides, data corrections and contestations",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(applications.router, prefix="/v1", tags=["applications"])
    app.include_router(decision.router, prefix="/v1", tags=["decisions"])
    app.include_router(audit.router, prefix="/v1", tags=["audit"])

    return app


app = create_app()
