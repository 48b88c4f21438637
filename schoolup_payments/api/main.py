"""
Main FastAPI application.

School fee collection API with:
- CORS configuration
- PaymentError to HTTP status mapping
- Request ID tracking
- Structured logging
- Prometheus metrics
- Timeout sweeper and notification relay running alongside the app
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schoolup_payments import __version__
from schoolup_payments.core.service import PaymentService, create_payment_service
from schoolup_payments.exceptions import PaymentError
from schoolup_payments.integrations.webhook_handler import MoMoWebhookHandler
from schoolup_payments.monitoring.health import HealthCheck
from schoolup_payments.monitoring.logging import setup_logging
from schoolup_payments.workers.background import BackgroundWorkers

from .routes import (
    inbox_router,
    monitoring_router,
    payment_router,
    student_router,
    webhook_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Starts the background workers on startup and stops them on shutdown.
    """
    service: PaymentService = app.state.service
    settings = service.settings

    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        simulator_enabled=service.confirmation_port is not None,
    )

    workers: Optional[BackgroundWorkers] = None
    if settings.background_workers_enabled:
        workers = BackgroundWorkers(service)
        workers.start()

    yield

    logger.info("application_shutdown")
    if workers is not None:
        await workers.stop()

    close = getattr(service.confirmation_port, "close", None)
    if close is not None:
        await close()


def create_app(service: Optional[PaymentService] = None) -> FastAPI:
    """
    Build the application around a payment service.

    Args:
        service: Service to expose (defaults to the demo school ledger)
    """
    service = service or create_payment_service()
    settings = service.settings
    setup_logging(settings)

    app = FastAPI(
        title="SchoolUp Payments",
        description=(
            "School fee collection over MTN MoMo and Airtel Money. "
            "Features: idempotent network confirmations, atomic settlement with unique "
            "receipts, inbox notifications, and balance tracking."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.service = service
    app.state.webhook_handler = MoMoWebhookHandler(service)
    app.state.health_check = HealthCheck(service.store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Add a request ID to every request and its log lines."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        logger.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            "payment_error",
            error=exc.message,
            error_code=exc.error_code,
            path=request.url.path,
            **exc.context,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred. Please try again later.",
                    "type": "InternalServerError",
                }
            },
        )

    app.include_router(payment_router)
    app.include_router(student_router)
    app.include_router(inbox_router)
    app.include_router(webhook_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


if __name__ == "__main__":
    import uvicorn

    from schoolup_payments.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "schoolup_payments.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
