"""HTTP middleware: request ids, request logging, timeouts and rate limiting."""

import asyncio
import logging
import time
import uuid
from collections import deque

from fastapi import FastAPI, Request

from agrimarket.app.config import Settings
from agrimarket.app.responses import error_response
from agrimarket.domain.errors import ErrorCode

logger = logging.getLogger("agrimarket.request")

# Probes are never throttled or timed
_UNMETERED_PATHS = {"/health", "/ready", "/live"}


def client_ip(request: Request) -> str:
    """Remote address of the caller.

    ``X-Forwarded-For`` is client-controlled, so it is only honoured when the
    app is configured to sit behind a trusted proxy.
    """
    settings = getattr(request.app.state, "settings", None)
    if settings is not None and settings.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Rolling-window request counter keyed by remote address.

    Each key keeps the timestamps of its requests inside the window; a request
    is refused once the window already holds ``max_requests`` entries. Keys
    with no hits left in the window are dropped once per window.
    """

    def __init__(self, max_requests: int, window_seconds: float, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> tuple[bool, float]:
        """Record a request. Returns (allowed, seconds until a slot frees up)."""
        now = self._clock()
        cutoff = now - self.window_seconds
        self._sweep(now, cutoff)

        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False, max(0.0, hits[0] + self.window_seconds - now)
        hits.append(now)
        return True, 0.0

    def _sweep(self, now: float, cutoff: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        self._hits.clear()


def install_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. The last one added runs outermost."""
    limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
    app.state.rate_limiter = limiter
    timeout = settings.request_timeout_seconds

    @app.middleware("http")
    async def enforce_timeout(request: Request, call_next):
        if request.url.path in _UNMETERED_PATHS or not timeout:
            return await call_next(request)
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Request timed out after %.1fs: %s %s", timeout, request.method, request.url.path)
            return error_response(ErrorCode.INTERNAL_ERROR, "Request timed out")

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not settings.rate_limit_enabled or request.url.path in _UNMETERED_PATHS:
            return await call_next(request)
        allowed, retry_after = limiter.hit(client_ip(request))
        if not allowed:
            logger.warning("Rate limit exceeded: ip=%s path=%s", client_ip(request), request.url.path)
            return error_response(
                ErrorCode.RATE_LIMITED,
                "Too many requests, please try again later",
                headers={"Retry-After": str(max(1, int(retry_after + 0.999)))},
            )
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        status = response.status_code
        level = logging.ERROR if status >= 500 else logging.WARNING if status >= 400 else logging.INFO
        logger.log(
            level,
            "%s %s %d %.1fms user=%s ip=%s ua=%s request_id=%s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            getattr(request.state, "user_id", None),
            client_ip(request),
            request.headers.get("user-agent", "-"),
            request_id,
        )
        return response
