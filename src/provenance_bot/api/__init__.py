"""Trace HTTP API: server, client and write rate limiting."""

from provenance_bot.api.client import TraceApiClient, TraceApiError, TraceLookup, TraceLookupStatus
from provenance_bot.api.rate_limiter import RateLimitResult, SimpleRateLimiter
from provenance_bot.api.server import TRACE_TOKEN_HEADER, create_app

__all__ = [
    "RateLimitResult",
    "SimpleRateLimiter",
    "TRACE_TOKEN_HEADER",
    "TraceApiClient",
    "TraceApiError",
    "TraceLookup",
    "TraceLookupStatus",
    "create_app",
]
