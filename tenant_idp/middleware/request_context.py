"""Request context middleware: assigns a unique ID to every request.

Concurrent requests interleave their log lines on one event loop thread.
The request ID, kept in a ContextVar (per-task, not per-thread), is stamped
on every record by a root-logger filter so a single authorize or token
exchange can be followed through the log.

The completion line carries the path only.  Query strings are left out on
purpose: /oauth/authorize callbacks and login redirects put codes and
state in them.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Incoming X-Request-ID values longer than this are replaced.
_MAX_REQUEST_ID_LEN = 128


class _RequestContextFilter(logging.Filter):
    """Attach the current request ID to every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


# Install on the root logger so every logger inherits it, once.
root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


def _incoming_request_id(request: Request) -> str:
    candidate = request.headers.get("x-request-id", "")
    if candidate and len(candidate) <= _MAX_REQUEST_ID_LEN and candidate.isprintable():
        return candidate
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request and log one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = _incoming_request_id(request)
        token = request_id_var.set(req_id)
        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            request_id_var.reset(token)
