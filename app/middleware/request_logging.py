"""
Request Logging Middleware

- Assigns a request_id to every request (honours an incoming X-Request-ID)
- Logs request start & end with timing
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.logging_config import generate_request_id, request_id_ctx

logger = logging.getLogger("domainpub.request")

_MAX_INCOMING_ID = 64


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get("x-request-id", "").strip()
        rid = incoming[:_MAX_INCOMING_ID] if incoming else generate_request_id()
        token = request_id_ctx.set(rid)

        method = request.method
        path = request.url.path
        host = request.headers.get("host", "-")
        client_ip = request.client.host if request.client else "-"

        logger.info("→ %s %s (host=%s) from %s", method, path, host, client_ip)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed = (time.perf_counter() - start) * 1000
            response.headers["X-Request-ID"] = rid
            logger.info("← %s %s %d (%.1fms)", method, path, response.status_code, elapsed)
            return response
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("✗ %s %s (%.1fms, unhandled exception)", method, path, elapsed)
            raise
        finally:
            request_id_ctx.reset(token)
