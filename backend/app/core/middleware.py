"""
Response hardening and request timing for the API
"""
import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 5.0

# Login and verification responses carry tokens, so nothing may be cached
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
}

LEAKY_HEADERS = ("Server", "X-Powered-By")


class SecurityMiddleware(BaseHTTPMiddleware):
    """Adds security headers, a request id and X-Process-Time to every response"""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        client_ip = request.headers.get("X-Real-IP", request.client.host if request.client else "unknown")
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] {request.method} {request.url.path} from {client_ip} failed: {e}")
            raise

        elapsed = time.perf_counter() - started

        response.headers.update(SECURITY_HEADERS)
        for header in LEAKY_HEADERS:
            if header in response.headers:
                del response.headers[header]
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"

        if elapsed > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"[{request_id}] Slow request: {request.method} {request.url.path} "
                f"took {elapsed:.2f}s from {client_ip}"
            )
        return response
