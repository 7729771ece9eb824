"""Request middleware for context management and request logging."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import clear_context, set_request_id, set_trace_id


logger = structlog.get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Sets up per-request logging context and logs request start/finish.

    The request ID is taken from ``X-Request-ID`` when the caller supplies one
    and echoed back on the response. Context is always cleared afterwards.
    """

    REQUEST_ID_HEADER = "X-Request-ID"
    TRACE_ID_HEADER = "X-Trace-ID"
    TRACEPARENT_HEADER = "traceparent"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = exclude_paths or ["/health"]

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()

        request_id = set_request_id(request.headers.get(self.REQUEST_ID_HEADER))
        trace_id = request.headers.get(self.TRACE_ID_HEADER) or _extract_traceparent(
            request.headers.get(self.TRACEPARENT_HEADER)
        )
        if trace_id:
            set_trace_id(trace_id)

        request.state.request_id = request_id
        should_log = self.log_requests and not self._should_exclude(request.url.path)

        if should_log:
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
                client_ip=request.client.host if request.client else None,
            )

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            if should_log:
                log_method = (
                    logger.warning if response.status_code >= 400 else logger.info
                )
                log_method(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                )

            response.headers[self.REQUEST_ID_HEADER] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
            )
            raise

        finally:
            clear_context()

    def _should_exclude(self, path: str) -> bool:
        return any(path.startswith(excluded) for excluded in self.exclude_paths)


def _extract_traceparent(traceparent: str | None) -> str | None:
    """Extract the trace ID from a W3C ``traceparent`` header.

    Format: {version}-{trace-id}-{parent-id}-{trace-flags}
    """
    if not traceparent:
        return None

    parts = traceparent.split("-")
    if len(parts) >= 2:
        return parts[1]

    return None


__all__ = ["RequestContextMiddleware"]
