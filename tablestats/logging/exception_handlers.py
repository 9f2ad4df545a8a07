# tablestats/logging/exception_handlers.py

import json
import logging
import traceback
from datetime import datetime

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tablestats.core.config import APPLICATION_ID
from tablestats.core.exceptions import TableStatsError
from tablestats.logging.middleware import resolve_hostname, resolve_username
from tablestats.logging.models import Log

logger = logging.getLogger(__name__)

USERNAME = resolve_username()
HOSTNAME = resolve_hostname()


def safe_json_dumps(obj):
    return json.dumps(obj, indent=2, default=str)


def write_error_log(request: Request, status_code: int, response_body: str) -> None:
    """Persist an error response; failures to log never mask the original error."""
    try:
        with request.app.state.session_factory() as session:
            session.add(
                Log(
                    timestamp=datetime.now(),
                    method=request.method,
                    path=str(request.url.path),
                    status_code=status_code,
                    client_ip=request.client.host if request.client else None,
                    request_headers=json.dumps(dict(request.headers)),
                    request_body=None,
                    response_body=response_body,
                    processing_time=None,
                    user_agent=request.headers.get("user-agent"),
                    username=USERNAME,
                    hostname=HOSTNAME,
                    application_id=APPLICATION_ID,
                )
            )
            session.commit()
    except Exception as log_error:
        logger.warning("Error logging exception: %s", log_error)


async def table_stats_exception_handler(request: Request, exc: TableStatsError):
    """Map domain errors to their HTTP status"""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)

    write_error_log(
        request,
        exc.status_code,
        safe_json_dumps({"error": str(exc), "type": type(exc).__name__, "context": exc.context}),
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and log them to database"""
    error_traceback = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error("Unhandled error on %s: %s", request.url.path, exc)

    write_error_log(
        request,
        500,
        safe_json_dumps({"error": str(exc), "type": type(exc).__name__, "traceback": error_traceback}),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors"""
    write_error_log(request, 422, safe_json_dumps(exc.errors()))

    # Convert errors to a safe format for JSON response
    def convert_error(error):
        if isinstance(error, dict):
            return {k: convert_error(v) for k, v in error.items()}
        elif isinstance(error, list):
            return [convert_error(item) for item in error]
        else:
            return str(error)

    return JSONResponse(status_code=422, content={"detail": convert_error(exc.errors())})


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions and log 4xx/5xx errors"""
    if exc.status_code >= 400:
        write_error_log(
            request,
            exc.status_code,
            safe_json_dumps({"detail": exc.detail, "headers": getattr(exc, "headers", None)}),
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )
