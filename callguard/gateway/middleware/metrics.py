"""Prometheus metrics middleware for the Gateway.

Records request counts and latencies per normalized endpoint. Latency is
measured to the response start, so long recording streams do not skew it.
"""

from __future__ import annotations

import re
import time

import callguard.metrics

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class MetricsMiddleware:
    """Pure ASGI middleware that records Prometheus metrics for HTTP requests."""

    # Endpoints to exclude from metrics (health checks, metrics endpoint itself)
    EXCLUDE_PATHS = {"/health", "/metrics", "/"}

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["path"] in self.EXCLUDE_PATHS:
            await self.app(scope, receive, send)
            return

        endpoint = normalize_path(scope["path"])
        method = scope["method"]
        start_time = time.perf_counter()
        status_code = 500

        async def send_with_metrics(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                callguard.metrics.observe_gateway_request_duration(
                    method, endpoint, time.perf_counter() - start_time
                )
            await send(message)

        try:
            await self.app(scope, receive, send_with_metrics)
        finally:
            callguard.metrics.inc_gateway_requests(method, endpoint, status_code)


def normalize_path(path: str) -> str:
    """Replace call IDs with a placeholder to bound label cardinality."""
    parts = [part for part in path.split("/") if part]
    normalized = ["{call_id}" if _UUID_RE.match(part) else part for part in parts]
    return "/" + "/".join(normalized) if normalized else "/"
