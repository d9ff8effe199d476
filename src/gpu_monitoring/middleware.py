"""
HTTP Middleware

Request logging with request IDs and metrics, exception recovery, and
CORS for the dashboard frontend.

Order on the way in: request logging, CORS, recovery, routes.
"""

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .instrumentation import HTTP_REQUESTS_IN_PROGRESS, record_http_request
from .logging_config import generate_request_id, get_logger, log_request, set_request_id
from .models import APIResponse


logger = get_logger(__name__)

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization"]
CORS_MAX_AGE = 86400

# Scraped or polled constantly
QUIET_PATHS = ("/metrics",)


def _route_template(request: Request):
    """Path template of the route the router matched, if any."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID, record metrics and log its completion."""

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path

        request_id = generate_request_id()
        set_request_id(request_id)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method).inc()
        request_start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            duration = time.perf_counter() - request_start
            record_http_request(method, path, status_code, duration, route_path=_route_template(request))
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method).dec()

            if path not in QUIET_PATHS:
                client_host = request.client.host if request.client else None
                log_request(logger, method, path, status_code, duration * 1000, client=client_host)


class RecoveryMiddleware(BaseHTTPMiddleware):
    """Turn any unhandled exception into a 500 envelope."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error serving {request.method} {request.url.path}")
            body = APIResponse(success=False, error="Internal Server Error")
            return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


def install_middleware(app: FastAPI, cors_origins) -> None:
    """Add the middleware stack; the last one added runs first."""
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        max_age=CORS_MAX_AGE,
    )
    app.add_middleware(RequestLoggingMiddleware)
