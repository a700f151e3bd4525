# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
HTTP middleware.

Every request gets a request id that ends up on the response and in the
JSON log line. Each Slack callback gets its own log line. Metrics are
labelled by the registered route path; anything else is folded into one
``unmatched`` label.
"""
import re
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from casebot.core.logging import get_logger
from casebot.metrics import HTTP_ERRORS, REQUEST_COUNT, REQUEST_LATENCY

logger = get_logger("casebot.http")

SKIP_PATHS = frozenset({"/health", "/health/ready", "/metrics", "/openapi.json", "/docs", "/redoc"})
SLACK_PREFIX = "/slack/"
UNMATCHED = "unmatched"

_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def resolve_request_id(header: str | None) -> str:
    """Reuse a caller's id only when it is safe to echo into headers and logs."""
    if header and _REQUEST_ID.match(header):
        return header
    return str(uuid.uuid4())


def endpoint_label(request: Request) -> str:
    path = request.url.path
    known = {getattr(route, "path", None) for route in request.app.routes}
    return path if path in known else UNMATCHED


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        if request.url.path.startswith(SLACK_PREFIX):
            logger.info(
                "Slack callback handled",
                extra={
                    "request_id": request_id,
                    "context": {
                        "path": request.url.path,
                        "status": response.status_code,
                        "duration_ms": round((time.perf_counter() - start) * 1000, 1),
                    },
                },
            )
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path in SKIP_PATHS:
            return response
        endpoint = endpoint_label(request)
        status = str(response.status_code)
        REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=status).inc()
        REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(
            time.perf_counter() - start
        )
        if response.status_code >= 400:
            HTTP_ERRORS.labels(method=request.method, endpoint=endpoint, status=status).inc()
        return response
