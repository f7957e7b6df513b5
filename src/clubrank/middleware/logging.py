# src/clubrank/middleware/logging.py

"""Request/response logging middleware for ClubRank API."""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("clubrank.api")

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by load balancers; logged at DEBUG only
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its acting player and outcome.

    A request id supplied by the caller (for example the cron runner or the
    gateway in front of the API) is reused, otherwise a short one is
    generated. The id is echoed back in the ``X-Request-ID`` header so a
    validation transition can be traced from the client to the service logs.
    Responses with a 5xx status are logged as errors.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        player_id = request.headers.get("X-Player-Id")
        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "player_id": player_id,
        }

        started = time.perf_counter()
        logger.log(
            level,
            "[%s] %s %s",
            request_id,
            request.method,
            path,
            extra={
                **context,
                "query_params": str(request.query_params),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "[%s] %s %s -> ERROR: %s",
                request_id,
                request.method,
                path,
                e,
                extra={**context, "error": str(e)},
                exc_info=True,
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if response.status_code >= 500:
            level = logging.ERROR
        logger.log(
            level,
            "[%s] %s %s -> %d (%.2fms)",
            request_id,
            request.method,
            path,
            response.status_code,
            duration_ms,
            extra={
                **context,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response  # type: ignore[no-any-return]
