"""Request logging middleware.

- Adds an X-Request-ID header to responses (reusing any incoming one)
- Logs method, path, status, duration, client IP and the authenticated user id
- Turns unhandled exceptions into a generic 500 after logging the traceback
- Never logs request/response bodies or headers
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response


logger = logging.getLogger("store_ratings.request")

INTERNAL_ERROR_BODY = {"message": "Internal server error"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.monotonic()

        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        extra = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "request_id": request_id,
        }

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled exception during request",
                extra={
                    **extra,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                    "user_sub": getattr(request.state, "user_sub", None),
                },
            )
            response = JSONResponse(INTERNAL_ERROR_BODY, status_code=500)
            response.headers["X-Request-ID"] = request_id
            return response

        logger.info(
            "Request finished",
            extra={
                **extra,
                "status": response.status_code,
                "duration_ms": int((time.monotonic() - start) * 1000),
                "user_sub": getattr(request.state, "user_sub", None),
            },
        )

        response.headers.setdefault("X-Request-ID", request_id)
        return response
