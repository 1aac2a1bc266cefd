import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from mzone.core.logging import bind_request_id, latency_bucket, log_event

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Correlate everything one request logs.

    The id is taken from ``x-request-id`` when the client or the gateway
    sends one, generated otherwise, and echoed on the response. The
    closing ``request.complete`` line also names the authenticated user,
    which the auth dependency leaves on ``request.state``.
    """

    async def dispatch(self, request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = rid

        with bind_request_id(rid):
            started = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            response.headers[REQUEST_ID_HEADER] = rid

            log_event(
                "warning" if response.status_code >= 500 else "info",
                "request.complete",
                user_id=getattr(request.state, "user_id", None),
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket(elapsed_ms),
                },
            )
        return response
