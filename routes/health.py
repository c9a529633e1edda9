"""Health and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from constants import ERROR_CONFIGURATION
from deps import get_gateway
from gateway import MISSING_TOKEN_DETAIL, ProxyGateway
from state import SERVICE_VERSION
from utils.time import now

router = APIRouter()


@router.get("/health")
async def health() -> JSONResponse:
    """Return liveness status and timestamp."""
    return JSONResponse({"status": "ok", "service": "t2v-relay", "timestamp": now()})


@router.get("/ping")
async def ping() -> JSONResponse:
    """Return a basic liveness response."""
    return JSONResponse({"status": "ok"})


@router.get("/ready")
async def ready(gateway: ProxyGateway = Depends(get_gateway)) -> JSONResponse:
    """Report readiness; the relay is useless without an upstream token."""
    if not gateway.configured:
        return JSONResponse(
            {"error": ERROR_CONFIGURATION, "detail": MISSING_TOKEN_DETAIL},
            503,
        )
    return JSONResponse(
        {
            "status": "ok",
            "upstream": "replicate",
            "version": SERVICE_VERSION,
            "timestamp": now(),
        }
    )


@router.get("/metrics")
async def metrics() -> Response:
    """Return Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
