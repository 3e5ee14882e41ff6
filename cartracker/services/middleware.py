import logging
import threading
import time
from typing import Dict, Optional, Tuple

from flask import Flask, Response, g, request

logger = logging.getLogger(__name__)

# Paths that are never rate limited or logged
EXEMPT_PATHS = ("/healthz",)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


class RateLimiter:
    """
    Fixed-window request counter keyed by remote address.

    Counters live in process memory, so the limit applies per worker process.
    """

    def __init__(self, limit: int, window_seconds: int, clock=time.monotonic):
        self.limit = limit
        self.window = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}

    def hit(self, key: str) -> Tuple[bool, int, float]:
        """
        Count one request for key.

        Returns (allowed, remaining, seconds_until_reset).
        """
        now = self._clock()
        with self._lock:
            count, started = self._windows.get(key, (0, now))
            if now - started >= self.window:
                count, started = 0, now
            if count >= self.limit:
                return False, 0, started + self.window - now
            count += 1
            self._windows[key] = (count, started)
            if len(self._windows) > 10_000:
                self._prune(now)
        return True, self.limit - count, started + self.window - now

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, started) in self._windows.items() if now - started >= self.window]
        for key in expired:
            del self._windows[key]


def _rate_limit(limiter: RateLimiter) -> Optional[Response]:
    if request.path in EXEMPT_PATHS:
        return None

    allowed, remaining, reset_in = limiter.hit(request.remote_addr or "unknown")
    g.rate_limit_remaining = remaining
    if allowed:
        return None

    logger.warning("Rate limit exceeded for %s on %s", request.remote_addr, request.path)
    response = Response(
        "Too many requests, please try again later.",
        status=429,
        mimetype="text/plain",
    )
    response.headers["Retry-After"] = str(max(1, int(reset_in + 0.999)))
    return response


def _add_headers(limiter: RateLimiter, response: Response) -> Response:
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    if "rate_limit_remaining" in g:
        response.headers["X-RateLimit-Limit"] = str(limiter.limit)
        response.headers["X-RateLimit-Remaining"] = str(g.rate_limit_remaining)
    return response


def _log_request(response: Response) -> Response:
    if request.path in EXEMPT_PATHS or request.path.startswith("/static/"):
        return response

    started = g.get("request_started")
    duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
    status_code = response.status_code

    if status_code >= 500:
        log = logger.error
    elif status_code >= 400:
        log = logger.warning
    else:
        log = logger.info
    log("%s %s %s (%.2fms)", request.method, request.path, status_code, duration_ms)
    return response


def init_middleware(app: Flask, limiter: RateLimiter) -> None:
    """Register rate limiting, security headers and request logging on app."""

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.before_request
    def enforce_rate_limit():
        return _rate_limit(limiter)

    @app.after_request
    def finish_response(response: Response) -> Response:
        response = _add_headers(limiter, response)
        return _log_request(response)
