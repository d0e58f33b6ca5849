"""FastAPI middleware for request tracing, metrics and origin checks"""

import logging
import time
import uuid
from typing import Iterable
from urllib.parse import urlparse

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from adelanto_gateway.config import settings
from adelanto_gateway.infrastructure.observability.metrics import request_duration_histogram

logger = logging.getLogger(__name__)

LOCAL_HOSTS = {"localhost", "127.0.0.1"}


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for distributed tracing"""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record HTTP request metrics"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        request_duration_histogram.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
        ).observe(duration)

        return response


def is_origin_allowed(origin: str | None, allowed_origins: Iterable[str], development: bool) -> bool:
    """
    Origin allow-list check.

    Requests without an Origin header (server-to-server) and deployments with
    an empty allow-list are accepted. In development any localhost origin is
    accepted as well.
    """
    allowed = [o.rstrip("/") for o in allowed_origins]
    if not origin or not allowed:
        return True
    if origin.rstrip("/") in allowed:
        return True
    return development and urlparse(origin).hostname in LOCAL_HOSTS


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """Reject /v1 calls from origins outside the allow-list"""

    def __init__(self, app, prefix: str = "/v1"):
        super().__init__(app)
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(self.prefix):
            origin = request.headers.get("origin")
            if not is_origin_allowed(origin, settings.allowed_origins, settings.is_development):
                logger.warning("Blocked request from disallowed origin", extra={"origin": origin})
                return JSONResponse(status_code=403, content={"detail": "Unauthorized request"})

        return await call_next(request)
