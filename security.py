"""
Request hardening middleware: response headers, body size cap, rate limiting.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from starlette.datastructures import Headers
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from config import MAX_BODY_BYTES, RATE_LIMIT_EXEMPT

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "style-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com https://fonts.googleapis.com",
    "font-src 'self' https://fonts.gstatic.com https://cdnjs.cloudflare.com",
    "script-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com",
    "img-src 'self' data: blob: https://images.unsplash.com",
    "connect-src 'self'",
    "frame-ancestors 'self'",
    "object-src 'none'",
    "base-uri 'self'",
])

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith("/api/admin"):
            response.headers["Cache-Control"] = "no-store"
        return response


class BodySizeLimitMiddleware:
    """Caps request bodies by declared Content-Length and by bytes actually received."""

    def __init__(self, app: ASGIApp, max_bytes: int = MAX_BODY_BYTES):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        length = Headers(scope=scope).get("content-length")
        if length is not None:
            try:
                too_large = int(length) > self.max_bytes
            except ValueError:
                await JSONResponse({"error": "Invalid Content-Length"}, status_code=400)(scope, receive, send)
                return
            if too_large:
                logger.warning(f"Rejected {scope['method']} {path}: body of {length} bytes")
                await JSONResponse({"error": "Request entity too large"}, status_code=413)(scope, receive, send)
                return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning(f"Rejected {scope['method']} {path}: streamed body over {self.max_bytes} bytes")
                    raise HTTPException(status_code=413, detail="Request entity too large")
            return message

        await self.app(scope, limited_receive, send)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def reset_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


class FixedWindowRateLimiter:
    """Counts hits per key in fixed windows of `window_seconds`."""

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._next_prune = 0.0
        self._lock = threading.Lock()

    def hit(self, key: str, now: Optional[float] = None) -> RateLimitResult:
        now = time.time() if now is None else now
        with self._lock:
            if now >= self._next_prune:
                self._prune(now)
                self._next_prune = now + self.window_seconds
            start, count = self._windows.get(key, (now, 0))
            if now >= start + self.window_seconds:
                start, count = now, 0
            count += 1
            self._windows[key] = (start, count)
        return RateLimitResult(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=start + self.window_seconds,
        )

    def _prune(self, now: float) -> None:
        expired = [key for key, (start, _) in self._windows.items() if start + self.window_seconds <= now]
        for key in expired:
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies `app.state.rate_limiter` to /api/ requests."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith("/api/") or path in RATE_LIMIT_EXEMPT:
            return await call_next(request)

        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        client = request.client.host if request.client else "unknown"
        result = limiter.hit(client)
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
        }
        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {client} on {request.method} {path}")
            headers["Retry-After"] = str(max(0, math.ceil(result.reset_at - time.time())))
            return JSONResponse(
                {"error": "Too many requests", "retryAfter": result.reset_datetime.isoformat()},
                status_code=429,
                headers=headers,
            )
        response = await call_next(request)
        response.headers.update(headers)
        return response
