"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes application-level
counters for the review workflow, fee quotes and payments.
"""

import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Workflow metrics ─────────────────────────────────────────────────────────

stage_transitions_total = Counter(
    "stage_transitions_total",
    "Application status transitions by stage and target status",
    ["stage", "status"],
)

stage_rejections_total = Counter(
    "stage_rejections_total",
    "Stage submissions refused before any write",
    ["stage", "reason"],
)

# ── Fee & payment metrics ────────────────────────────────────────────────────

fee_quotes_total = Counter(
    "fee_quotes_total",
    "Fee calculations by outcome",
    ["source"],
)

payments_recorded_total = Counter(
    "payments_recorded_total",
    "Payments recorded against invoices",
    ["channel", "payment_status"],
)

_ID_PATTERN = re.compile(r"^(APP|INV|DIR)-[0-9A-F]+$")


def _normalize_path(path: str) -> str:
    """Collapse path parameters to reduce cardinality.

    e.g. /api/applications/APP-1A2B3C4D → /api/applications/{id}
    """
    parts = path.strip("/").split("/")
    normalized = []
    for i, part in enumerate(parts):
        if i > 1 and (_ID_PATTERN.match(part) or part.isdigit() or len(part) > 20):
            normalized.append("{id}")
        else:
            normalized.append(part)
    return "/" + "/".join(normalized)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            path=path,
        ).observe(duration)

        return response
