"""Catch-all relay to the upstream prediction API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from deps import get_gateway
from gateway import ProxyGateway
from state import settings

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route(settings.proxy_prefix, methods=PROXY_METHODS, include_in_schema=False)
@router.api_route(
    settings.proxy_prefix + "/{subpath:path}", methods=PROXY_METHODS, include_in_schema=False
)
async def relay(request: Request, gateway: ProxyGateway = Depends(get_gateway)) -> Response:
    """Relay the request upstream and mirror the upstream status and body."""
    body = await request.body()
    upstream = await gateway.forward(
        request.method,
        request.url.path,
        query=request.url.query,
        body=body,
    )
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
    )
