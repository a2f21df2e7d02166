"""
Rate limiting middleware for the dealership squad API.

Sliding window per client (API key or IP) over the public and admin
surface. Voice-platform traffic is never throttled: a tool call must
always come back with a spoken result.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter."""

    EXEMPT_PATHS = ("/health", "/metrics", "/docs", "/openapi.json")
    VOICE_PREFIXES: Tuple[str, ...] = ("/vapi-tools", "/squads/webhook")

    def __init__(self, app, requests_per_minute: int = 100, window_seconds: int = 60):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}
        self._last_prune = time.monotonic()

    def is_exempt(self, path: str) -> bool:
        return path in self.EXEMPT_PATHS or path.startswith(self.VOICE_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self.is_exempt(request.url.path):
            return await call_next(request)

        now = time.monotonic()
        client_id = self._get_client_id(request)
        hits = self._hits.setdefault(client_id, deque())
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= self.requests_per_minute:
            logger.warning(f"Rate limit exceeded for {client_id} on {request.url.path}")
            retry_after = max(1, int(hits[0] + self.window_seconds - now))
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)
        self._prune(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_minute - len(hits)))
        return response

    def _prune(self, now: float) -> None:
        """Forget clients idle for a full window."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        idle = [k for k, v in self._hits.items() if not v or v[-1] <= now - self.window_seconds]
        for key in idle:
            del self._hits[key]

    def _get_client_id(self, request: Request) -> str:
        """Identify client by API key or IP."""
        api_key = request.headers.get("X-API-Key")
        if api_key:
            return f"key:{api_key[:8]}"

        return f"ip:{request.client.host}" if request.client else "ip:unknown"
