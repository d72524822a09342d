from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger("cashflow.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Write one structured log line per request and record request metrics.

    Requests turned away by the rate limiter are logged at WARNING together
    with the ``retry_after`` the client was sent. Unhandled errors are logged
    at ERROR and re-raised.
    """

    async def dispatch(  # type: ignore[override]
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            _record(request, 500, started, exc_info=True)
            raise

        _record(request, response.status_code, started)
        response.headers["X-Request-ID"] = request_id
        return response


def _record(request: Request, status: int, started: float, exc_info: bool = False) -> None:
    elapsed = time.perf_counter() - started
    path = _route_template(request)
    status_label = str(status)

    REQUEST_COUNT.labels(method=request.method, path=path, status=status_label).inc()
    REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)
    if status >= 500:
        REQUEST_ERRORS.labels(method=request.method, path=path, status=status_label).inc()

    fields: dict[str, Any] = {
        "request_id": request.state.request_id,
        "path": path,
        "method": request.method,
        "status": status,
        "duration_ms": round(elapsed * 1000, 3),
        "client": getattr(request.state, "client_hash", None),
    }
    retry_after = getattr(request.state, "retry_after", None)
    if retry_after is not None:
        logger.warning("request rate limited", extra={**fields, "retry_after": retry_after})
    elif status >= 500:
        logger.error("request failed", extra=fields, exc_info=exc_info)
    else:
        logger.info("request complete", extra=fields)


def _route_template(request: Request) -> str:
    # Templated paths keep metric label cardinality bounded.
    route = request.scope.get("route")
    return str(getattr(route, "path", None) or request.url.path)
