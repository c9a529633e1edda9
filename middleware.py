"""Request middleware for request IDs, size limits and metrics."""

from __future__ import annotations

from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram

from logging_config import request_id_ctx
from state import settings

request_count = Counter(
    "t2v_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
request_latency = Histogram(
    "t2v_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)


def _scrub_path(path: str) -> str:
    prefix = settings.proxy_prefix
    if path == prefix or path.startswith(prefix + "/"):
        return prefix + "/*"
    return path


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Attach a request ID header to each request/response pair."""
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    token = request_id_ctx.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["X-Request-Id"] = request_id
    return response


def _too_large() -> JSONResponse:
    return JSONResponse(
        {
            "error": "payload_too_large",
            "detail": f"payload exceeds {settings.max_request_bytes} bytes",
        },
        413,
    )


async def request_size_limit_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Reject requests that exceed the configured max size.

    Note: For chunked requests without a Content-Length header, we read the body
    to enforce the limit.
    """
    if settings.max_request_bytes:
        size_header = request.headers.get("Content-Length")
        if size_header:
            try:
                size = int(size_header)
            except ValueError:
                return JSONResponse(
                    {"error": "invalid_request", "detail": "invalid Content-Length"},
                    400,
                )
            if size > settings.max_request_bytes:
                return _too_large()
        else:
            body = await request.body()
            if len(body) > settings.max_request_bytes:
                return _too_large()
    return await call_next(request)


async def prometheus_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Collect request count and latency metrics."""
    method = request.method
    path = _scrub_path(request.url.path)
    with request_latency.labels(method=method, path=path).time():
        response = await call_next(request)
    request_count.labels(method=method, path=path, status=response.status_code).inc()
    return response
