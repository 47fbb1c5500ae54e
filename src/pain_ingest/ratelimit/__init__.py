"""Rate limiting for archive requests."""

from pain_ingest.ratelimit.limiter import LimiterStats, RateLimiter, RateLimitState

__all__ = [
    "LimiterStats",
    "RateLimitState",
    "RateLimiter",
]
