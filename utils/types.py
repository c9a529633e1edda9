"""Shared typing helpers."""

from __future__ import annotations

from typing import Any, AsyncContextManager, Mapping, Optional, Protocol

import httpx


class UpstreamLike(Protocol):
    """Protocol for HTTP clients used by the gateway and the media download."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        content: Optional[bytes] = None,
        json: Any | None = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """Perform a generic request."""

    def stream(
        self,
        method: str,
        url: str,
        *,
        follow_redirects: bool = False,
    ) -> AsyncContextManager[httpx.Response]:
        """Open a streaming response context."""
