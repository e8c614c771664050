# gold_ledger/utils/logger.py

"""
Structured logging for the ledger service.

Every log line goes through structlog and the stdlib logging module, carrying
the request id of the HTTP call that produced it and, inside ledger
transactions, the alliance being mutated.
"""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

DEFAULT_APP_NAME = "Gold Collections Ledger"
REQUEST_ID_HEADER = "X-Request-ID"

# Request id of the HTTP call being served
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class LogConfig:
    """Values stamped on every log line."""

    APP_NAME = DEFAULT_APP_NAME
    ENVIRONMENT = "development"


def add_request_id(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request ID to log context."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_app_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict["app"] = LogConfig.APP_NAME
    event_dict["environment"] = LogConfig.ENVIRONMENT
    return event_dict


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _build_handler(handler: logging.Handler, level: int, renderer: Any) -> logging.Handler:
    processors = _shared_processors()
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=processors + [renderer],
            foreign_pre_chain=processors,
        )
    )
    return handler


def setup_logging(
    log_level: str = "INFO",
    use_json: bool = True,
    log_file: Optional[str] = None,
    app_name: str = DEFAULT_APP_NAME,
    environment: str = "development"
) -> None:
    """
    Configure structlog on top of the stdlib root logger

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: JSON lines on stdout instead of the console renderer
        log_file: Optional path of a JSON log file
        app_name: Application name stamped on every line
        environment: Environment name stamped on every line
    """
    LogConfig.APP_NAME = app_name
    LogConfig.ENVIRONMENT = environment
    level = getattr(logging, log_level.upper())

    if use_json:
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(
            colors=False,
            exception_formatter=structlog.dev.plain_traceback
        )

    handlers = [_build_handler(logging.StreamHandler(sys.stdout), level, console_renderer)]
    if log_file:
        # File always gets JSON format
        handlers.append(
            _build_handler(logging.FileHandler(log_file), level, structlog.processors.JSONRenderer())
        )

    logging.root.handlers = handlers
    logging.root.setLevel(level)

    structlog.configure(
        processors=_shared_processors() + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name (Optional[str]): Name of the logger.

    Returns:
        structlog.BoundLogger: Configured logger instance.
    """
    return structlog.get_logger(name)


@contextmanager
def ledger_context(**values: Any) -> Iterator[None]:
    """Bind values (alliance_id, ...) to every log line emitted inside the block"""
    bound = {key: value for key, value in values.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request id to every call and logs its start and outcome
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        access_logger = get_logger("api.access")
        started = time.perf_counter()

        access_logger.info("request_started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            access_logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error=str(e),
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id},
                headers={REQUEST_ID_HEADER: request_id}
            )
        finally:
            request_id_var.reset(token)

        access_logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2)
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_app_logging(
    app: FastAPI,
    log_level: str = "INFO",
    use_json: bool = True,
    log_file: Optional[str] = None,
    app_name: Optional[str] = None,
    environment: str = "development",
) -> None:
    """
    Configure logging and install the request logging middleware.
    """
    setup_logging(
        log_level=log_level,
        use_json=use_json,
        log_file=log_file,
        app_name=app_name or app.title or DEFAULT_APP_NAME,
        environment=environment,
    )
    app.add_middleware(LoggingMiddleware)
