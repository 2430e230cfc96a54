# admin_api/core/http.py
"""HTTP policies applied to every request: origin allow-list, rate limits, security headers."""

import logging
import math
import time
from typing import Callable, Dict, List, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from admin_api.core.errors import AdminApiError, ErrorKind

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


class FixedWindowRateLimiter:
    """
    Counts hits per key inside fixed windows. Windows are reset lazily when a
    key is seen again after its window ended. Keys whose window has ended are
    dropped at most once per window, while handling a hit.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._windows = {
            key: window for key, window in self._windows.items() if now - window[0] < self.window_seconds
        }
        self._last_sweep = now

    def hit(self, key: str) -> bool:
        now = self._clock()
        self._sweep(now)
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        return count <= self.limit

    def retry_after(self, key: str) -> int:
        started, _ = self._windows.get(key, (self._clock(), 0))
        return max(0, math.ceil(self.window_seconds - (self._clock() - started)))


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _is_same_origin(request: Request, origin: str) -> bool:
    host = request.headers.get("host")
    if not host:
        return False
    protocol = request.headers.get("x-forwarded-proto") or "https"
    return origin == f"{protocol}://{host}"


def install_http_policies(app: FastAPI, allowed_origins: List[str], api_limiter: FixedWindowRateLimiter) -> None:
    # Starlette runs the middleware added last first

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        key = client_key(request)
        if not api_limiter.hit(key):
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Try again later."},
                headers={"Retry-After": str(api_limiter.retry_after(key))},
            )
        return await call_next(request)

    @app.middleware("http")
    async def origin_policy(request: Request, call_next):
        origin = request.headers.get("origin")
        if not origin:
            return await call_next(request)

        if not (_is_same_origin(request, origin) or origin in allowed_origins):
            logger.warning("Rejected request from origin %s", origin)
            return JSONResponse(status_code=403, content={"detail": "Origin is not allowed"})

        cors_headers = {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
            "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
            "Vary": "Origin",
        }
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors_headers)

        response = await call_next(request)
        response.headers.update(cors_headers)
        return response

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def enforce_login_rate_limit(request: Request) -> None:
    """FastAPI dependency guarding the login route."""
    limiter: FixedWindowRateLimiter = request.app.state.login_limiter
    if not limiter.hit(client_key(request)):
        raise AdminApiError(ErrorKind.RATE_LIMITED, "Too many login attempts. Try again later.")
