"""Middleware module initialization."""

from collabdocs.middleware.audit_logger import AuditLoggerMiddleware
from collabdocs.middleware.prometheus import PrometheusMiddleware
from collabdocs.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AuditLoggerMiddleware",
    "PrometheusMiddleware",
    "RequestIdMiddleware",
]
