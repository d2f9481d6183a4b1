import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.errors import RateLimitExceeded


class FixedWindowRateLimiter:
    """In-process request counter per client identity and time window"""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._window = None
        self._counts: dict[str, int] = {}

    def hit(self, identity: str) -> bool:
        """Count one request; False once the identity is over its limit"""
        window = int(self._clock() // self.window_seconds)
        if window != self._window:
            # Counts from earlier windows are never read again
            self._window = window
            self._counts.clear()

        count = self._counts.get(identity, 0) + 1
        self._counts[identity] = count
        return count <= self.max_requests


def client_identity(request: Request) -> str:
    ip = request.client.host if request.client else "unknown"
    return f"ip:{ip}"


async def enforce_rate_limit(request: Request) -> None:
    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    if not limiter.hit(client_identity(request)):
        raise RateLimitExceeded("Too many requests from this IP, please try again later")


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body is larger than max_body_bytes"""

    def __init__(self, app, max_body_bytes: int):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > self.max_body_bytes:
            return JSONResponse(
                status_code=413,
                content={"success": False, "error": "Request body too large"},
            )
        return await call_next(request)
