"""HTTP middleware: лог запросов с X-Request-Id."""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from utils.logger import logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                f"request_id={request_id} {request.method} {request.url.path} "
                f"status=500 duration_ms={duration_ms:.2f}"
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Id"] = request_id

        user_id = getattr(request.state, "user_id", None)
        logger.info(
            f"request_id={request_id} {request.method} {request.url.path} "
            f"status={response.status_code} duration_ms={duration_ms:.2f} user_id={user_id}"
        )
        return response
