"""Credential-injecting relay in front of the upstream prediction API."""

from __future__ import annotations

from typing import Optional

import httpx

from constants import BODY_METHODS, DEFAULT_PROXY_PREFIX, UPSTREAM_AUTH_SCHEME
from errors import ConfigurationError, TransportError
from logging_config import get_logger, request_id_ctx
from utils.types import UpstreamLike

logger = get_logger("gateway")

MISSING_TOKEN_DETAIL = "Server configuration error: Missing API Token"


class ProxyGateway:
    """Forward requests to the upstream API with the server-side token attached.

    The gateway is the only holder of the upstream credential. Requests are
    relayed as-is: the prefix is stripped from the path, the body is passed
    through for methods that carry one, and the upstream response is handed
    back without interpretation. It never retries.
    """

    def __init__(
        self,
        client: UpstreamLike,
        *,
        upstream_base: str,
        api_token: Optional[str],
        prefix: str = DEFAULT_PROXY_PREFIX,
    ) -> None:
        self._client = client
        self._upstream_base = upstream_base.rstrip("/")
        self._api_token = api_token or None
        self._prefix = prefix.rstrip("/")
        if self._api_token is None:
            logger.error("Missing upstream API token; proxy requests will fail")

    @property
    def configured(self) -> bool:
        """Return True when an upstream credential is available."""
        return self._api_token is not None

    def upstream_url(self, path: str, query: str = "") -> str:
        """Map an incoming request path onto the upstream API."""
        target = path
        if self._prefix and (path == self._prefix or path.startswith(self._prefix + "/")):
            target = path[len(self._prefix):]
        url = f"{self._upstream_base}{target}"
        if query:
            url = f"{url}?{query}"
        return url

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"{UPSTREAM_AUTH_SCHEME} {self._api_token}",
        }

    async def forward(
        self,
        method: str,
        path: str,
        *,
        query: str = "",
        body: Optional[bytes] = None,
    ) -> httpx.Response:
        """Relay one request upstream and return the raw upstream response."""
        if self._api_token is None:
            raise ConfigurationError(MISSING_TOKEN_DETAIL)

        method = method.upper()
        url = self.upstream_url(path, query)
        content = body if method in BODY_METHODS and body else None
        logger.info(
            "Proxying request to: %s [%s]",
            url,
            method,
            extra={"request_id_ctx": request_id_ctx.get("-")},
        )
        try:
            response = await self._client.request(
                method,
                url,
                content=content,
                headers=self._headers(),
            )
        except httpx.RequestError as exc:
            logger.error(
                "Proxy error",
                extra={"url": url, "request_id_ctx": request_id_ctx.get("-")},
                exc_info=True,
            )
            raise TransportError(f"Failed to proxy request: {exc}") from exc

        if response.is_error:
            logger.warning(
                "Upstream returned %s for %s",
                response.status_code,
                url,
            )
        return response
