"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import cast

from fastapi import Request

from gateway import ProxyGateway


def get_gateway(request: Request) -> ProxyGateway:
    """Return the proxy gateway built at startup."""
    return cast(ProxyGateway, request.app.state.gateway)
