from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from core.prometheus_metrics import prometheus_collector

# Per-address guard in front of the per-phone hourly budget that AuthService enforces
OTP_SEND_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address)


def custom_rate_limit_exceeded(request: Request, exc: RateLimitExceeded):
    prometheus_collector.record_rate_limited(request.url.path)

    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate Limited",
            "error_type": "RateLimitedError",
            "message": "Too many requests. Please try again later.",
            "field": None,
            "limit": str(exc.detail),
        },
    )
