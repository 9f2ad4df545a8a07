import getpass
import json
import logging
import platform
import socket
import time
from datetime import datetime
from typing import Callable

from fastapi import Request, Response
from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from tablestats.core.config import APPLICATION_ID
from tablestats.logging.models import Log

logger = logging.getLogger(__name__)


def resolve_username() -> str:
    try:
        return getpass.getuser() or "unknown_user"
    except Exception:
        return "unknown_user"


def resolve_hostname() -> str:
    try:
        return socket.gethostname() or platform.node() or "unknown_host"
    except Exception:
        return "unknown_host"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Records every API request and response into the `log` table."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.username = resolve_username()
        self.hostname = resolve_hostname()
        self.application_id = APPLICATION_ID

        logger.info(
            "Logging middleware initialized with username: %s on host: %s, App ID: %s",
            self.username,
            self.hostname,
            self.application_id,
        )

    async def dispatch(self, request: Request, call_next: Callable):
        # Define paths that should be excluded from logging
        excluded_paths = ["/api/logs", "/health"]

        if any(request.url.path.startswith(path) for path in excluded_paths):
            return await call_next(request)

        start_time = time.time()

        body_bytes = await request.body()
        request_body = body_bytes.decode("utf-8", errors="ignore")

        # Reconstruct stream
        async def receive() -> dict:
            return {"type": "http.request", "body": body_bytes}

        request = Request(request.scope, receive=receive)

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        status_code = response.status_code

        response_body = b""
        if isinstance(response, Response) and hasattr(response, "body"):
            response_body = response.body
        elif hasattr(response, "body_iterator"):
            # Streaming response: collect chunks while they are sent
            original_iterator = response.body_iterator
            chunks = []

            async def buffer_iterator():
                nonlocal response_body
                async for chunk in original_iterator:
                    chunks.append(chunk)
                    yield chunk
                response_body = b"".join(chunks)

            response.body_iterator = buffer_iterator()

        session_factory = request.app.state.session_factory

        def log_to_db():
            body_to_log = (
                response_body.decode("utf-8", errors="ignore") if response_body else "[Response body not available]"
            )
            try:
                with session_factory() as session:
                    session.add(
                        Log(
                            timestamp=datetime.now(),
                            method=request.method,
                            path=str(request.url.path),
                            status_code=status_code,
                            client_ip=request.client.host if request.client else None,
                            request_headers=json.dumps(dict(request.headers)),
                            request_body=request_body,
                            response_body=body_to_log,
                            processing_time=duration_ms,
                            user_agent=request.headers.get("user-agent"),
                            username=self.username,
                            hostname=self.hostname,
                            application_id=self.application_id,
                        )
                    )
                    session.commit()
            except Exception as log_error:
                logger.warning("Error writing request log: %s", log_error)

        response.background = getattr(response, "background", None) or BackgroundTask(log_to_db)
        return response
