"""
Prometheus Metrics Middleware
Collects metrics on HTTP requests and on the version control engine
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram
from prometheus_client import CollectorRegistry

# Create a global registry for metrics
metrics_registry = CollectorRegistry()

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=metrics_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
    registry=metrics_registry
)

# Error Metrics
errors_total = Counter(
    'errors_total',
    'Total errors by type',
    ['error_type', 'endpoint'],
    registry=metrics_registry
)

# Versioning Metrics
document_versions_ingested_total = Counter(
    'document_versions_ingested_total',
    'Snapshot ingestions by source and outcome',
    ['source', 'outcome'],
    registry=metrics_registry
)

document_version_write_conflicts_total = Counter(
    'document_version_write_conflicts_total',
    'Ingestion attempts that hit a concurrent write conflict',
    registry=metrics_registry
)

document_versions_pruned_total = Counter(
    'document_versions_pruned_total',
    'Auto versions deleted by retention cleanup',
    registry=metrics_registry
)

document_version_cleanup_failures_total = Counter(
    'document_version_cleanup_failures_total',
    'Retention cleanup runs that failed after a successful ingestion',
    registry=metrics_registry
)

document_version_diffs_total = Counter(
    'document_version_diffs_total',
    'Line diffs computed',
    ['truncated'],
    registry=metrics_registry
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect Prometheus metrics for HTTP requests
    """

    # Endpoints to skip (health checks, metrics endpoint, etc)
    SKIP_ENDPOINTS = ['/health', '/metrics', '/docs', '/openapi.json', '/redoc']

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if any(request.url.path.startswith(skip) for skip in self.SKIP_ENDPOINTS):
            return await call_next(request)

        start_time = time.time()
        method = request.method
        endpoint = request.url.path

        try:
            response = await call_next(request)
        except Exception as exc:
            errors_total.labels(
                error_type=type(exc).__name__,
                endpoint=endpoint
            ).inc()
            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(time.time() - start_time)
            raise

        duration = time.time() - start_time

        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

        response.headers["X-Response-Time"] = str(duration)

        return response


# Metric update functions for engine events

def record_version_ingested(source: str, created: bool) -> None:
    """Record an ingestion outcome"""
    outcome = "created" if created else "deduplicated"
    document_versions_ingested_total.labels(source=source, outcome=outcome).inc()


def record_write_conflict() -> None:
    """Record a write conflict retry"""
    document_version_write_conflicts_total.inc()


def record_versions_pruned(count: int) -> None:
    """Record versions removed by retention cleanup"""
    if count > 0:
        document_versions_pruned_total.inc(count)


def record_cleanup_failure() -> None:
    """Record a failed best-effort cleanup"""
    document_version_cleanup_failures_total.inc()


def record_diff(truncated: bool) -> None:
    """Record a computed diff"""
    document_version_diffs_total.labels(truncated=str(truncated).lower()).inc()

