"""
Request ID Middleware
=====================

Assigns a correlation id to each request so audit events and engine logs
for one webhook delivery or publish action can be tied together.
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns a unique ID to each request.

    The request ID is:
    - Taken from X-Trace-ID or X-Request-ID when the caller supplies one
    - Generated otherwise
    - Stored in request.state and echoed in both response headers
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = request.headers.get("X-Trace-ID") or request.headers.get("X-Request-ID")
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Trace-ID"] = request_id

        return response
