from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

access_decisions_total = Counter(
    "access_decisions_total",
    "Total access decisions by resource, operation and outcome",
    ["resource", "operation", "granted"],
)

hierarchy_resolutions_total = Counter(
    "hierarchy_resolutions_total",
    "Subordinate set resolutions by outcome",
    ["outcome"],
)

hierarchy_subordinates_count = Histogram(
    "hierarchy_subordinates_count",
    "Number of subordinates resolved per manager",
    buckets=(0, 1, 2, 5, 10, 25, 50, 100),
)

store_queries_total = Counter(
    "store_queries_total",
    "Attribute store round trips by table and operation",
    ["table", "operation"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    """Matched route template such as `/api/crm/{resource}/{record_id}`, else the sanitized path."""

    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(template, str) and template:
        return template
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_access_decision(resource: str, operation: str, granted: bool) -> None:
    access_decisions_total.labels(resource=resource, operation=operation, granted=str(granted).lower()).inc()


def observe_hierarchy_resolution(outcome: str, count: int | None = None) -> None:
    hierarchy_resolutions_total.labels(outcome=outcome).inc()
    if count is not None:
        hierarchy_subordinates_count.observe(count)


def observe_store_query(table: str, operation: str) -> None:
    store_queries_total.labels(table=table, operation=operation).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
