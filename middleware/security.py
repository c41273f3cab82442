"""
Security middleware for rate limiting, CORS, and other security features.
"""
from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import time
from collections import deque
from typing import Deque, Dict

from core.logger import logger


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding window rate limiting."""

    def __init__(self, app, requests_per_minute: int = 60, requests_per_hour: int = 1000, enabled: bool = True):
        """
        Initialize rate limiting middleware.

        Args:
            app: FastAPI application
            requests_per_minute: Max requests per minute per IP
            requests_per_hour: Max requests per hour per IP
            enabled: When False every request passes through
        """
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.enabled = enabled
        # Request timestamps per IP, oldest first, never older than one hour
        self.requests: Dict[str, Deque[float]] = {}
        self.cleanup_interval = 60  # Drop idle IPs every minute
        self.last_cleanup = time.time()

    async def dispatch(self, request: Request, call_next):
        """Process request with rate limiting."""
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        current_time = time.time()
        if current_time - self.last_cleanup > self.cleanup_interval:
            self._cleanup_old_entries(current_time)
            self.last_cleanup = current_time

        if not self._check_rate_limit(client_ip, current_time):
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": "60"}
            )

        return await call_next(request)

    @staticmethod
    def _expire(timestamps: Deque[float], current_time: float):
        while timestamps and current_time - timestamps[0] >= 3600:
            timestamps.popleft()

    def _check_rate_limit(self, client_ip: str, current_time: float) -> bool:
        """Check if request is within rate limits, recording it when it is."""
        timestamps = self.requests.setdefault(client_ip, deque())
        self._expire(timestamps, current_time)

        if len(timestamps) >= self.requests_per_hour:
            return False
        last_minute = 0
        for t in reversed(timestamps):
            if current_time - t >= 60:
                break
            last_minute += 1
        if last_minute >= self.requests_per_minute:
            return False

        timestamps.append(current_time)
        return True

    def _cleanup_old_entries(self, current_time: float):
        """Drop IPs with no requests inside the hour window."""
        for ip in list(self.requests.keys()):
            self._expire(self.requests[ip], current_time)
            if not self.requests[ip]:
                del self.requests[ip]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response


def setup_cors(app, allowed_origins: list[str], allowed_methods: list[str] = None):
    """
    Setup CORS middleware.

    Args:
        app: FastAPI application
        allowed_origins: List of allowed origins
        allowed_methods: List of allowed HTTP methods
    """
    if allowed_methods is None:
        allowed_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=allowed_methods,
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )


def setup_trusted_hosts(app, allowed_hosts: list[str]):
    """
    Setup trusted hosts middleware.

    Args:
        app: FastAPI application
        allowed_hosts: List of allowed hostnames
    """
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=allowed_hosts
    )
