from __future__ import annotations

import hmac
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from functools import wraps
from typing import Callable

from flask import Request, g, request

from .config import Settings
from .exceptions import RateLimitError, UnauthorizedError

logger = logging.getLogger(__name__)

try:
    import redis  # type: ignore
except Exception:  # pragma: no cover
    redis = None


@dataclass(slots=True)
class RateLimitState:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request counter per client, shared through Redis when available."""

    def __init__(self, settings: Settings) -> None:
        self.limit = settings.rate_limit_per_minute
        self.window_seconds = settings.rate_limit_window_seconds
        self._memory_store: dict[str, RateLimitState] = {}
        self._lock = threading.Lock()
        self._redis_client = None

        if redis is None:
            return

        try:
            self._redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
            self._redis_client.ping()
        except Exception as exc:
            logger.warning("Rate limiter redis unavailable; using memory fallback: %s", exc)
            self._redis_client = None

    def _memory_check(self, identity: str) -> tuple[bool, int, int]:
        now = time.time()
        with self._lock:
            window = self._memory_store.get(identity)
            if window is None or window.reset_at <= now:
                window = RateLimitState(count=0, reset_at=now + self.window_seconds)
                self._memory_store[identity] = window

            window.count += 1
            remaining = max(0, self.limit - window.count)
            return window.count <= self.limit, remaining, int(max(0, window.reset_at - now))

    def _redis_check(self, identity: str) -> tuple[bool, int, int]:
        assert self._redis_client is not None
        now = int(time.time())
        redis_key = f"usm_tap:rl:{identity}:{now // self.window_seconds}"

        count = int(self._redis_client.incr(redis_key))
        if count == 1:
            self._redis_client.expire(redis_key, self.window_seconds)

        remaining = max(0, self.limit - count)
        return count <= self.limit, remaining, self.window_seconds - (now % self.window_seconds)

    def check(self, identity: str) -> tuple[bool, int, int]:
        if self._redis_client is not None:
            try:
                return self._redis_check(identity)
            except Exception as exc:
                logger.warning("Redis limiter error; fallback to memory: %s", exc)
        return self._memory_check(identity)


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("X-Forwarded-For", "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    return req.remote_addr or "unknown"


def extract_token(req: Request) -> str:
    header = req.headers.get("Authorization", "").strip()
    if header.lower().startswith("bearer "):
        return header[7:].strip().strip('"').strip("'")
    return req.headers.get("X-API-Key", "").strip().strip('"').strip("'")


def secure_endpoint(settings: Settings, rate_limiter: RateLimiter) -> Callable:
    """Decorator enforcing the rate limit and, when enabled, the shared API key."""

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            g.request_id = str(uuid.uuid4())

            allowed, remaining, reset = rate_limiter.check(get_client_ip(request))
            if not allowed:
                raise RateLimitError(f"Rate limit exceeded. Retry in {reset}s")
            g.rate_limit_remaining = remaining
            g.rate_limit_reset_seconds = reset

            if settings.zero_trust_enabled:
                token = extract_token(request)
                if not token or not hmac.compare_digest(token, settings.api_key):
                    raise UnauthorizedError("Invalid API credential")

            return func(*args, **kwargs)

        return wrapper

    return decorator


def attach_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
    response.headers["Cache-Control"] = "no-store"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

    if request.is_secure:
        response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"

    for attr, header in (
        ("request_id", "X-Request-Id"),
        ("rate_limit_remaining", "X-RateLimit-Remaining"),
        ("rate_limit_reset_seconds", "X-RateLimit-Reset"),
    ):
        if hasattr(g, attr):
            response.headers[header] = str(getattr(g, attr))

    return response
