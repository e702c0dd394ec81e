"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from creditflow.api.deps import get_job_queue
from creditflow.api.v1 import credits, customers, health, jobs, subscriptions, transactions
from creditflow.api.webhooks import stripe as stripe_webhooks
from creditflow.config import settings
from creditflow.database import engine
from creditflow.exceptions import (
    CreditFlowError,
    EnqueueFailure,
    InsufficientCredits,
    InvalidSignature,
    JobNotFound,
    MalformedEvent,
    PaymentsNotConfigured,
    StorageError,
)
from creditflow.middleware.logging import LoggingMiddleware, setup_logging
from creditflow.middleware.metrics import MetricsMiddleware
from creditflow.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES = {
    InvalidSignature: status.HTTP_400_BAD_REQUEST,
    MalformedEvent: status.HTTP_400_BAD_REQUEST,
    InsufficientCredits: status.HTTP_402_PAYMENT_REQUIRED,
    JobNotFound: status.HTTP_404_NOT_FOUND,
    EnqueueFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentsNotConfigured: status.HTTP_503_SERVICE_UNAVAILABLE,
}

RETRY_AFTER_SECONDS = "30"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env, payments_mode=settings.payments_mode)
    yield
    logger.info("application_shutting_down")
    await get_job_queue().close()
    await engine.dispose()


app = FastAPI(
    title="CreditFlow",
    description="Payment webhook reconciliation and credit-metered job pipeline",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[dict],
    remediation: str | None,
) -> JSONResponse:
    """Build the error envelope shared by every non-webhook endpoint."""
    request_id = getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details,
            "remediation": remediation,
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
        headers=headers,
    )


@app.exception_handler(CreditFlowError)
async def domain_exception_handler(request: Request, exc: CreditFlowError) -> JSONResponse:
    """
    Translate domain errors into structured responses.

    InsufficientCredits is a client rejection (402); queue, storage and
    payment-configuration outages are retryable (503 with Retry-After).
    """
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.warning if status_code < 500 else logger.error
    log("domain_error", error_code=exc.code, error_message=exc.message, status_code=status_code, **exc.context)

    return _error_response(
        request,
        status_code,
        error=type(exc).__name__,
        message=exc.message,
        details=[ErrorDetail(code=exc.code, message=exc.message).model_dump()],
        remediation=REMEDIATION_HINTS.get(exc.code),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one detail per invalid field, located as ``body.amount``."""
    details = []
    for error in exc.errors():
        missing = error["type"] == "missing"
        details.append(
            ErrorDetail(
                code=ErrorCode.MISSING_REQUIRED_FIELD if missing else ErrorCode.VALIDATION_ERROR,
                message=error["msg"],
                field=".".join(str(loc) for loc in error["loc"]),
                value=None if missing else error.get("input"),
            ).model_dump(mode="json")
        )

    logger.warning("request_validation_failed", error_count=len(details))
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        error="ValidationError",
        message="Request validation failed",
        details=details,
        remediation="See /docs for the expected request format",
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database_error", error_type=type(exc).__name__, error_message=str(exc))

    # Driver messages can carry SQL and parameters
    detail = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)
    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        error="DatabaseError",
        message="A database error occurred",
        details=[ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=detail).model_dump()],
        remediation=REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", exception_type=type(exc).__name__)

    detail = str(exc) if settings.debug else "Internal server error"
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        error="InternalServerError",
        message="An unexpected error occurred",
        details=[ErrorDetail(code=ErrorCode.INTERNAL_ERROR, message=detail).model_dump()],
        remediation="Contact support with the request ID",
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {"service": "CreditFlow", "version": "0.1.0", "docs": "/docs"}


app.include_router(health.router)
for router in (
    credits.router,
    jobs.router,
    transactions.router,
    subscriptions.router,
    customers.router,
    stripe_webhooks.router,
):
    app.include_router(router, prefix="/v1")
