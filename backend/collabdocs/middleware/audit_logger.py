"""
Audit Logger Middleware
=======================

Structured logging middleware that records one event per request against
the versioning API (who published, restored or delivered a snapshot, and
how it ended).
"""

import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger("audit")


class AuditLoggerMiddleware(BaseHTTPMiddleware):
    """
    Middleware for structured audit logging of all requests.

    Captures:
    - Request method, path, and query parameters
    - Client IP
    - Request ID for correlation
    - Response status and latency
    - Caller id from the gateway header, when present
    """

    # Paths to exclude from logging (e.g., health checks)
    EXCLUDED_PATHS = {"/health", "/metrics", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()

        request_id = getattr(request.state, "request_id", "unknown")
        client_ip = self._get_client_ip(request)
        user_id = request.headers.get("X-User-Id")

        response = await call_next(request)

        latency_ms = (time.perf_counter() - start_time) * 1000

        log_context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query": str(request.query_params),
            "status_code": response.status_code,
            "latency_ms": round(latency_ms, 2),
            "client_ip": client_ip,
        }
        if user_id:
            log_context["user_id"] = user_id

        if response.status_code >= 500:
            logger.error("request_completed", **log_context)
        elif response.status_code >= 400:
            logger.warning("request_completed", **log_context)
        else:
            logger.info("request_completed", **log_context)

        return response

    def _get_client_ip(self, request: Request) -> str:
        """
        Extract client IP from request.

        Handles X-Forwarded-For header for proxied requests.
        """
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"
