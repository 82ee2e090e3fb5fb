from __future__ import annotations

import asyncio
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from structlog import contextvars as structlog_contextvars

from .auth import resolve_owner_id
from .logging import logger
from .metrics import registry

__all__ = [
    "AccessLogAndMetricsMiddleware",
    "RateLimitMiddleware",
    "RequestIDMiddleware",
]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to each incoming request and expose it in headers.

    - Sets `request.state.request_id`
    - Adds `X-Request-ID` to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        structlog_contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog_contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogAndMetricsMiddleware(BaseHTTPMiddleware):
    """Emit one structured log line per request and record latency metrics."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"
        is_error = False
        is_timeout = False
        status_code: int | None = None
        error_type: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            is_timeout = isinstance(exc, asyncio.TimeoutError)
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            registry.record(
                method,
                path,
                latency_ms,
                status_code=status_code,
                is_error=is_error,
                is_timeout=is_timeout,
            )
            # エラー時は severity=ERROR で拾えるよう logger.error を使い分ける
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                path=path,
                method=method,
                status_code=status_code,
                latency_ms=round(latency_ms, 2),
                is_error=is_error,
                is_timeout=is_timeout,
                error_type=error_type,
                request_id=getattr(request.state, "request_id", None),
                client_ip=client_ip,
                owner_id=resolve_owner_id(request),
            )


class _TokenBucket:
    """Thread-safe token bucket that refills to capacity every fixed interval (seconds)."""

    def __init__(self, capacity: int, refill_interval_sec: float) -> None:
        self.capacity = max(1, capacity)
        self.tokens = self.capacity
        self.refill_interval = max(1.0, float(refill_interval_sec))
        self.last_refill = time.time()
        self._lock = threading.Lock()

    def allow(self) -> tuple[bool, int]:
        """Consume one token if available and return the remaining count."""
        now = time.time()
        with self._lock:
            if now - self.last_refill >= self.refill_interval:
                self.tokens = self.capacity
                self.last_refill = now
            if self.tokens > 0:
                self.tokens -= 1
                return True, self.tokens
            return False, 0


@dataclass
class _TrackedBucket:
    bucket: _TokenBucket
    last_seen: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting per client IP and per `X-User-Id` using token buckets.

    ユーザ単位のバケットは最終利用時刻を追跡し、長時間アクセスのないキーを
    捨てることでメモリ使用量を抑える。
    """

    def __init__(
        self,
        app,
        *,
        ip_capacity_per_minute: int,
        user_capacity_per_minute: int,
        user_bucket_ttl_seconds: float = 15 * 60,
        max_user_buckets: int = 10_000,
    ) -> None:
        super().__init__(app)
        self._ip_capacity = max(1, int(ip_capacity_per_minute))
        self._user_capacity = max(1, int(user_capacity_per_minute))
        self._ip_buckets: dict[str, _TokenBucket] = {}
        self._user_buckets: OrderedDict[str, _TrackedBucket] = OrderedDict()
        self._lock = threading.Lock()
        self._user_bucket_ttl = max(1.0, float(user_bucket_ttl_seconds))
        self._max_user_buckets = max(1, int(max_user_buckets))

    def _get_ip_bucket(self, key: str) -> _TokenBucket:
        with self._lock:
            if key not in self._ip_buckets:
                self._ip_buckets[key] = _TokenBucket(self._ip_capacity, refill_interval_sec=60.0)
            return self._ip_buckets[key]

    def _prune_user_buckets(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._user_buckets.items()
            if now - entry.last_seen > self._user_bucket_ttl
        ]
        for key in expired:
            self._user_buckets.pop(key, None)
        while len(self._user_buckets) >= self._max_user_buckets:
            # OrderedDict preserves insertion order; pop oldest entries first.
            self._user_buckets.popitem(last=False)

    def _get_user_bucket(self, key: str, now: float) -> _TokenBucket:
        with self._lock:
            entry = self._user_buckets.get(key)
            if entry is None:
                self._prune_user_buckets(now)
                entry = _TrackedBucket(
                    bucket=_TokenBucket(self._user_capacity, refill_interval_sec=60.0),
                    last_seen=now,
                )
                self._user_buckets[key] = entry
            else:
                entry.last_seen = now
                self._user_buckets.move_to_end(key, last=True)
            return entry.bucket

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        client_ip = request.client.host if request.client else "unknown"
        owner_id = resolve_owner_id(request)

        ok_ip, remaining_ip = self._get_ip_bucket(client_ip).allow()
        if not ok_ip:
            logger.warning("rate_limited", scope="ip", client_ip=client_ip)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too Many Requests (per IP)"},
                headers={
                    "Retry-After": "60",
                    "X-RateLimit-Limit-Ip": str(self._ip_capacity),
                    "X-RateLimit-Remaining-Ip": str(remaining_ip),
                },
            )

        remaining_user: int | None = None
        if owner_id is not None:
            ok_user, remaining_user = self._get_user_bucket(owner_id, time.time()).allow()
            if not ok_user:
                logger.warning("rate_limited", scope="user", owner_id=owner_id)
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Too Many Requests (per User)"},
                    headers={
                        "Retry-After": "60",
                        "X-RateLimit-Limit-User": str(self._user_capacity),
                        "X-RateLimit-Remaining-User": "0",
                    },
                )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit-Ip", str(self._ip_capacity))
        response.headers.setdefault("X-RateLimit-Remaining-Ip", str(remaining_ip))
        if remaining_user is not None:
            response.headers.setdefault("X-RateLimit-Limit-User", str(self._user_capacity))
            response.headers.setdefault("X-RateLimit-Remaining-User", str(remaining_user))
        return response
