from .logging import RequestLoggingMiddleware
from .ratelimit import RateLimitMiddleware, client_identifier

__all__ = ["RateLimitMiddleware", "RequestLoggingMiddleware", "client_identifier"]
