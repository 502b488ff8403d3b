r"""backend\app\core\observability.py"""

from __future__ import annotations

import json
import os
import threading
import time
import uuid
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response


_REQUEST_COUNTER = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
_LATENCY_HISTOGRAM = Histogram(
    "http_request_latency_seconds", "Request latency", ["method", "path"]
)

REPORT_GENERATION_SECONDS = Histogram(
    "report_generation_seconds", "Time spent composing a report", ["kind"]
)
REPORT_FETCH_TIMEOUTS = Counter(
    "report_fetch_timeouts_total", "Store reads abandoned after the fetch timeout", ["kind"]
)

# Path segments followed by the id they name, e.g. /reports/sectors/3/monthly.
_SECTOR_SEGMENTS = {"sectors", "restock-prediction"}
_USER_SEGMENTS = {"users"}


def _subject_ids(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(sector_id, user_id)`` from the path or the query string."""

    sector_id = request.query_params.get("sector_id")
    user_id = request.query_params.get("user_id")

    segments = [segment for segment in request.url.path.split("/") if segment]
    for name, value in zip(segments, segments[1:]):
        if not value.isdigit():
            continue
        if name in _SECTOR_SEGMENTS and sector_id is None:
            sector_id = value
        elif name in _USER_SEGMENTS and user_id is None:
            user_id = value
    return sector_id, user_id


class TokenAndRateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing auth, rate limiting, logging, and Prometheus metrics."""

    _lock: threading.Lock = threading.Lock()
    _buckets: dict[str, deque[float]] = defaultdict(deque)
    _per_minute: int = int(os.getenv("RATE_LIMIT_PER_MIN", "60"))
    # Auth is off under pytest unless a test sets ``_token`` explicitly.
    _token: str | None = None if os.getenv("PYTEST_CURRENT_TEST") else os.getenv("API_TOKEN")
    _exempt_prefixes: tuple[str, ...] = (
        "/api/v1/health",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
    )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("request-id")
            or str(uuid.uuid4())
        )
        sector_id, user_id = _subject_ids(request)

        start_perf = time.perf_counter()
        start_wall = time.time()

        def _finalize(response: Response) -> Response:
            latency = time.perf_counter() - start_perf
            status_code = getattr(response, "status_code", 500)

            _REQUEST_COUNTER.labels(method, path, str(status_code)).inc()
            _LATENCY_HISTOGRAM.labels(method, path).observe(latency)

            log_payload = {
                "timestamp": datetime.fromtimestamp(
                    start_wall, tz=timezone.utc
                ).isoformat(),
                "path": path,
                "method": method,
                "status": status_code,
                "latency_ms": int(latency * 1000),
                "request_id": request_id,
                "client_ip": client_ip,
                "sector_id": sector_id,
                "user_id": user_id,
            }
            print(json.dumps(log_payload))

            return response

        # Token authentication
        if self._token and not path.startswith(self._exempt_prefixes):
            auth_header = request.headers.get("authorization", "")
            if auth_header != f"Bearer {self._token}":
                error_response = PlainTextResponse("Unauthorized", status_code=401)
                return _finalize(error_response)

        # Rate limiting per client IP
        if self._per_minute > 0:
            now = time.time()
            with self._lock:
                window = self._buckets[client_ip]
                while window and now - window[0] > 60.0:
                    window.popleft()
                if len(window) >= self._per_minute:
                    error_response = PlainTextResponse("Too Many Requests", status_code=429)
                    return _finalize(error_response)
                window.append(now)

        response: Response
        try:
            response = await call_next(request)
        except Exception:
            # Record the failure before re-raising.
            _finalize(PlainTextResponse("Internal Server Error", status_code=500))
            raise

        return _finalize(response)


def metrics_endpoint() -> Response:
    """Return Prometheus metrics payload."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
