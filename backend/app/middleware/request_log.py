import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import request_id_ctx_var

logger = logging.getLogger("app.request")

_QUIET_PATHS = ("/api/v1/health",)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log one line when it finishes.

    An ``X-Request-ID`` sent by a proxy is kept so panel, IPN and proxy logs can be joined.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        request.state.request_id = request_id
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            if response is not None:
                response.headers["X-Request-ID"] = request_id
                level = logging.DEBUG if request.url.path.startswith(_QUIET_PATHS) else logging.INFO
                logger.log(
                    level,
                    "request",
                    extra={
                        "path": request.url.path,
                        "method": request.method,
                        "panel_route": getattr(request.state, "panel_route", None),
                        "status_code": response.status_code,
                        "duration_ms": int((time.perf_counter() - started) * 1000),
                        "remote_addr": request.client.host if request.client else None,
                    },
                )
            request_id_ctx_var.reset(token)
