from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..services.ratelimit import UNKNOWN_CLIENT, RateLimiter, hash_client_id

DEFAULT_EXEMPT_PATHS = frozenset({"/healthz", "/readyz", "/metrics"})
RATE_LIMIT_MESSAGE = "Too many requests, please try again later"


def client_identifier(request: Request) -> str:
    """Resolve the key used to track a request in the rate limiter.

    The first ``X-Forwarded-For`` hop wins when present, then the peer
    address. Requests with neither share the ``unknown`` bucket.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",", 1)[0].strip()
        # An empty first hop falls through to the peer address rather than
        # keying every such request on "".
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def rate_limited_response(retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": RATE_LIMIT_MESSAGE, "retryAfterSeconds": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Admit or reject every request through the application's rate limiter."""

    def __init__(self, app: ASGIApp, exempt_paths: Iterable[str] | None = None) -> None:
        super().__init__(app)
        self._exempt_paths = (
            frozenset(exempt_paths) if exempt_paths is not None else DEFAULT_EXEMPT_PATHS
        )

    async def dispatch(  # type: ignore[override]
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        if limiter is None or request.url.path in self._exempt_paths:
            return await call_next(request)

        client_id = client_identifier(request)
        request.state.client_hash = hash_client_id(client_id)

        decision = limiter.admit(client_id)
        if not decision.allowed:
            request.state.retry_after = decision.retry_after
            return rate_limited_response(decision.retry_after or 0)
        return await call_next(request)
