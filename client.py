"""HTTP client factories for the relay and the orchestrator."""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable, Optional, Union

import httpx

from config import Settings
from logging_config import logger


def _timeout(settings: Settings) -> Optional[httpx.Timeout]:
    return httpx.Timeout(settings.http_timeout) if settings.http_timeout is not None else None


def _limits(settings: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_keepalive_connections=settings.max_keepalive_connections or None,
        max_connections=settings.max_connections or None,
    )


def default_client_factory(settings: Settings) -> httpx.AsyncClient:
    """Create the shared upstream client used by the proxy gateway.

    Pool limits and TLS settings live on the transport; httpx ignores the
    client-level copies once a transport is supplied.
    """
    transport = httpx.AsyncHTTPTransport(
        verify=settings.verify_ssl,
        http2=True,
        limits=_limits(settings),
    )
    return httpx.AsyncClient(timeout=_timeout(settings), transport=transport)


def proxy_client_factory(settings: Settings) -> httpx.AsyncClient:
    """Create a client that talks to the proxy gateway on the orchestrator side."""
    return httpx.AsyncClient(
        base_url=settings.proxy_base,
        timeout=_timeout(settings),
        limits=_limits(settings),
        headers={"Content-Type": "application/json"},
    )


ClientFactory = Callable[[], Union[httpx.AsyncClient, Awaitable[httpx.AsyncClient]]]


async def open_client(
    factory: Optional[ClientFactory],
    default_factory: Callable[[], httpx.AsyncClient],
) -> httpx.AsyncClient:
    """Build a client from an optional (possibly async) factory override."""
    if not callable(factory):
        return default_factory()
    result = factory()
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, httpx.AsyncClient):
        logger.error("client_factory returned %s", type(result).__name__)
        raise TypeError("client_factory must return httpx.AsyncClient")
    return result
