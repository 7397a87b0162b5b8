"""Request interceptors applied around every route, outermost first."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict, deque
from collections.abc import Callable

from fastapi import Request
from loguru import logger
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from bookcatalog.core.errors import server_error_response
from bookcatalog.core.settings import AppSettings

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "style-src 'self' 'unsafe-inline' https://maxcdn.bootstrapcdn.com",
        "script-src 'self' https://code.jquery.com https://maxcdn.bootstrapcdn.com",
        "img-src 'self' data: https:",
        "font-src 'self' https://maxcdn.bootstrapcdn.com",
    ]
)
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def _client_ip(request: Request, trust_proxy: bool = False) -> str:
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anonymous"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, settings: AppSettings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            logger.debug("request.start {} {}", request.method, request.url.path)
            try:
                response = await call_next(request)
            except Exception as exc:
                # 500s built here still pass through the security header middleware
                logger.opt(exception=exc).error("request.error {} {}", request.method, request.url.path)
                response = server_error_response(self.settings, str(exc))

            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            logger.info(
                "{} {} -> {} ({} ms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
            response.headers.setdefault("X-Request-ID", request_id)
            return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, production: bool = False) -> None:
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if self.production:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


class SlidingWindowRateLimiter:
    """In-memory per-key request counter over a sliding time window."""

    def __init__(
        self,
        times: int,
        seconds: int,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._hits: defaultdict[str, deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._times = times
        self._seconds = seconds
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def _cleanup_old_keys(self, now: float) -> None:
        """Drop keys with no hits left in the window so the map cannot grow unbounded."""
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now

        window_start = now - self._seconds
        stale = []
        for key, hits in self._hits.items():
            while hits and hits[0] <= window_start:
                hits.popleft()
            if not hits:
                stale.append(key)
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug("Rate limiter dropped {} idle keys", len(stale))

    async def hit(self, key: str) -> int | None:
        """Record a request for ``key``; return seconds to wait if it is over quota."""
        now = self._clock()
        window_start = now - self._seconds
        async with self._lock:
            self._cleanup_old_keys(now)
            hits = self._hits[key]
            while hits and hits[0] <= window_start:
                hits.popleft()
            if len(hits) >= self._times:
                return max(1, int(self._seconds - (now - hits[0])))
            hits.append(now)
            return None

    def reset(self) -> None:
        self._hits.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        limiter: SlidingWindowRateLimiter,
        path_prefix: str = "/api/",
        trust_proxy: bool = False,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = path_prefix
        self.trust_proxy = trust_proxy

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = _client_ip(request, trust_proxy=self.trust_proxy)
        retry_after = await self.limiter.hit(client_ip)
        if retry_after is not None:
            logger.warning("Rate limit exceeded for {}", client_ip)
            return JSONResponse(
                status_code=429,
                content={"error": RATE_LIMIT_MESSAGE},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)


def build_middleware(settings: AppSettings) -> list[Middleware]:
    """Ordered interceptor chain for the HTTP layer; the first entry wraps all others."""
    chain = [
        Middleware(SecurityHeadersMiddleware, production=settings.environment == "production"),
        Middleware(RequestLoggingMiddleware, settings=settings),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials="*" not in settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(GZipMiddleware, minimum_size=1000),
    ]
    if settings.rate_limit_enabled:
        limiter = SlidingWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
        chain.append(Middleware(RateLimitMiddleware, limiter=limiter, trust_proxy=settings.trust_proxy))
    return chain
