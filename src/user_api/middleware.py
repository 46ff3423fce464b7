"""Request-scoped middleware for the user API."""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from user_api.logging import get_logger

REQUEST_ID_HEADER = "x-request-id"

_logger = get_logger("request")


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its correlation id, status and duration.

    The correlation id is taken from the ``x-request-id`` header when the
    caller provides one and is exposed to handlers as ``request.state.request_id``.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        _logger.info(
            "request.start id=%s method=%s path=%s client=%s",
            request_id,
            request.method,
            request.url.path,
            request.client.host if request.client else "-",
        )
        try:
            response = await call_next(request)
        except Exception:  # pragma: no cover - logged and re-raised
            _logger.exception(
                "request.error id=%s method=%s path=%s duration_ms=%d",
                request_id,
                request.method,
                request.url.path,
                _elapsed_ms(start),
            )
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        _logger.info(
            "request.complete id=%s method=%s path=%s status=%s duration_ms=%d",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            _elapsed_ms(start),
        )
        return response
