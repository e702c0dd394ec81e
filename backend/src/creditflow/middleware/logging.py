"""Structured logging setup and per-request context."""
import logging
import sys
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from creditflow.config import settings

REQUEST_ID_HEADER = "X-Request-ID"

SHARED_PROCESSORS = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
)


def _renderer():
    if settings.app_env == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    """
    Route structlog through stdlib logging.

    Shared by the API process and the arq worker. Production emits one JSON
    object per line; every other environment gets the console renderer.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[*SHARED_PROCESSORS, _renderer()],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds a request_id into structlog context for every log line of a request.

    An incoming X-Request-ID is reused; otherwise a new one is generated. The
    id is echoed in the response header and kept on ``request.state`` for the
    error envelopes.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
        log = structlog.get_logger(__name__)
        log.info("request_started")

        try:
            response = await call_next(request)
        except Exception:
            log.exception("request_failed")
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        log.info("request_completed", status_code=response.status_code)
        return response
