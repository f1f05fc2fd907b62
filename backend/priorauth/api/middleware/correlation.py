"""
Correlation ID Middleware

Tags every request with a correlation ID so log lines and audit events from
one request can be joined.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import get_logger, set_correlation_id
from ...utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds correlation ID to all requests.

    - Reuses an incoming X-Correlation-Id header, or generates one
    - Sets it in the logging context (audit events pick it up from there)
    - Echoes it on the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-Id") or generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)"
        )
        response.headers["X-Correlation-Id"] = correlation_id
        return response
