"""
Request logging middleware.

One log line per API call, carrying a request id that is echoed back to
the caller so ingestion and export requests can be traced.
"""

import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TOTAL_ROWS_HEADER = "X-Total-Rows"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, client, status code and duration per request.

    A request id is taken from the ``X-Request-ID`` header or generated.
    Export responses also log their row count. Long-lived stream endpoints
    belong in ``skip_paths``.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger_instance: logging.Logger | None = None,
        skip_paths: set[str] | None = None,
    ) -> None:
        super().__init__(app)
        self._logger = logger_instance or logger
        self._skip_paths = frozenset(skip_paths or ())

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in self._skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        fields: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": client_address(request),
            "request_id": request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            self._logger.error(
                f"{fields['method']} {fields['path']} failed: {e}",
                extra={**fields, "event": "request_failed", "duration_ms": _elapsed_ms(started)},
                exc_info=True,
            )
            raise

        duration_ms = _elapsed_ms(started)
        fields.update(event="request_completed", status_code=response.status_code, duration_ms=duration_ms)
        total_rows = response.headers.get(TOTAL_ROWS_HEADER)
        if total_rows is not None:
            fields["rows"] = int(total_rows)

        self._logger.info(f"{fields['method']} {fields['path']} -> {response.status_code}", extra=fields)

        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"
        response.headers[REQUEST_ID_HEADER] = fields["request_id"]
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def client_address(request: Request) -> str:
    """Client address, preferring proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"
