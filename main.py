"""FastAPI entry point for the text-to-video relay."""

from __future__ import annotations

import asyncio
import importlib
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, cast

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import state
from client import ClientFactory, default_client_factory, open_client
from constants import ERROR_CONFIGURATION, ERROR_PROXY, ERROR_UNKNOWN_MODEL
from errors import ConfigurationError, TransportError, UnknownModel
from gateway import ProxyGateway
from logging_config import logger
from middleware import (
    prometheus_middleware,
    request_id_middleware,
    request_size_limit_middleware,
)
from routes import health_router, models_router, proxy_router, version_router
from state import SERVICE_VERSION

try:
    UVLOOP = importlib.import_module("uvloop")
except ModuleNotFoundError:
    UVLOOP = None


def install_uvloop() -> bool:
    """Install uvloop if available for faster event loops."""
    if UVLOOP is not None and not os.getenv("DISABLE_UVLOOP"):
        try:
            UVLOOP.install()
            logger.info("uvloop enabled")
            return True
        except (RuntimeError, ValueError):
            return False
    return False


async def _close_client(client: httpx.AsyncClient) -> None:
    """Gracefully close the client respecting the configured timeout."""
    try:
        timeout = state.settings.http_timeout or 5.0
        await asyncio.wait_for(client.aclose(), timeout=timeout)
    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Error closing HTTP client")


@asynccontextmanager
async def lifespan(
    fastapi_app: FastAPI,
    client_factory: Optional[ClientFactory] = None,
) -> AsyncGenerator[None, None]:
    """Build the upstream client and gateway, and tear them down on shutdown."""
    try:
        client = await open_client(
            client_factory or getattr(fastapi_app.state, "client_factory", None),
            lambda: default_client_factory(state.settings),
        )
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Failed to create HTTP client", exc_info=True)
        raise RuntimeError("Failed to start relay") from exc

    fastapi_app.state.client = client
    fastapi_app.state.gateway = ProxyGateway(
        client,
        upstream_base=state.settings.upstream_base,
        api_token=state.settings.api_token,
        prefix=state.settings.proxy_prefix,
    )
    logger.info("Relay started", extra={"version": SERVICE_VERSION})
    logger.info("Upstream base: %s", state.settings.upstream_base)
    try:
        yield
    finally:
        state.SHUTDOWN_IN_PROGRESS = True
        await _close_client(client)


async def configuration_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Return the fixed configuration-error response.

    Kept distinct from upstream failures so clients can tell a broken relay
    from a rejected prediction.
    """
    return JSONResponse({"error": ERROR_CONFIGURATION, "detail": str(exc)}, status_code=500)


async def transport_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Return a 500 wrapping an upstream transport failure."""
    return JSONResponse({"error": ERROR_PROXY, "detail": str(exc)}, status_code=500)


async def unknown_model_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Return a 404 for identifiers outside the backend registry."""
    return JSONResponse({"error": ERROR_UNKNOWN_MODEL, "detail": str(exc)}, status_code=404)


def create_app() -> FastAPI:
    """Factory that builds the FastAPI instance with all routers & middleware."""
    fastapi_app = FastAPI(
        title="Text-to-Video Relay",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=state.settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    fastapi_app.middleware("http")(request_size_limit_middleware)
    fastapi_app.middleware("http")(request_id_middleware)
    fastapi_app.middleware("http")(prometheus_middleware)

    fastapi_app.include_router(version_router)
    fastapi_app.include_router(health_router)
    fastapi_app.include_router(models_router)
    fastapi_app.include_router(proxy_router)

    fastapi_app.add_exception_handler(ConfigurationError, configuration_error_handler)
    fastapi_app.add_exception_handler(TransportError, transport_error_handler)
    fastapi_app.add_exception_handler(UnknownModel, unknown_model_handler)

    return fastapi_app


app = create_app()


def run() -> None:
    """Start the Uvicorn server for the relay."""
    try:
        use_uvloop = install_uvloop()
        workers = state.settings.workers or 1
        app_target: Any = "main:app" if workers > 1 else app
        uvicorn.run(
            app_target,
            host=state.settings.host,
            port=state.settings.port,
            timeout_graceful_shutdown=cast(int | None, 1),
            workers=workers,
            loop="uvloop" if use_uvloop else "asyncio",
        )
    except KeyboardInterrupt:
        pass


__all__ = ["app", "create_app", "lifespan", "run"]


if __name__ == "__main__":
    run()
