"""
Request logging middleware: one log line per request, tagged with a trace id.
"""
import time
import uuid
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log method, path, team, status and latency of every request.

    An incoming X-Trace-ID is reused so traces can span the auth layer;
    otherwise a new one is generated. The id is stored on request.state for
    the exception handlers and echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid.uuid4())
        request.state.trace_id = trace_id
        team = request.headers.get("X-Team-Id", "-")

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error(
                f"[{trace_id}] {request.method} {request.url.path} team={team} "
                f"-> EXCEPTION after {latency_ms}ms: {exc}",
                exc_info=True,
            )
            raise

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        status_code = response.status_code
        if status_code >= 500:
            log_level = logging.ERROR
        elif status_code >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO
        logger.log(
            log_level,
            f"[{trace_id}] {request.method} {request.url.path} team={team} -> {status_code} ({latency_ms}ms)",
        )

        response.headers[TRACE_HEADER] = trace_id
        return response
