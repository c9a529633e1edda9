"""Configuration for the text-to-video relay."""

from __future__ import annotations

from typing import Annotated, Any, List, Optional

import httpx
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROXY_BASE,
    DEFAULT_PROXY_PREFIX,
    DEFAULT_UPSTREAM_BASE,
)


def _validate_base_url(value: str, name: str) -> str:
    """Validate an absolute base URL."""
    try:
        url = httpx.URL(value)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise ValueError(f"{name} is not a valid URL: {value}") from exc
    if not url.scheme or not url.host:
        raise ValueError(f"{name} must include scheme and host: {value}")
    return value


def _optional_positive(value: Any, name: str, cast: type) -> Any:
    if value is None or value == "":
        return None
    try:
        parsed = cast(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be > 0")
    return parsed


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    All environment variables are expected to be prefixed with ``T2V_``.
    The upstream credential is also accepted as ``REPLICATE_API_TOKEN`` so
    existing deployments keep working.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix="T2V_",
        populate_by_name=True,
    )

    api_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("T2V_API_TOKEN", "REPLICATE_API_TOKEN"),
    )
    upstream_base: str = DEFAULT_UPSTREAM_BASE
    proxy_prefix: str = DEFAULT_PROXY_PREFIX
    proxy_base: str = DEFAULT_PROXY_BASE

    http_timeout: Optional[float] = 60.0
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL
    max_poll_attempts: Optional[int] = None
    max_poll_seconds: Optional[float] = None

    debug: bool = False
    allowed_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])
    host: str = "0.0.0.0"
    port: int = 8000
    workers: Optional[int] = None

    max_connections: int = 50
    max_keepalive_connections: int = 20
    verify_ssl: bool = True
    max_request_bytes: Optional[int] = None
    download_dir: str = "."

    @field_validator("api_token", mode="before")
    @classmethod
    def _normalize_token(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        token = str(value).strip()
        return token or None

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_origins(cls, value: Any) -> List[str]:
        if value is None or value == "":
            return []
        if isinstance(value, list):
            return [origin.strip() for origin in value if str(origin).strip()]
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        raise ValueError("ALLOWED_ORIGINS must be a comma-separated string")

    @field_validator("http_timeout", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return 60.0
        try:
            parsed = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("HTTP_TIMEOUT must be a number") from exc
        if parsed == 0:
            return None
        if parsed < 0.1:
            raise ValueError("HTTP_TIMEOUT must be >= 0.1 or 0 for no limit")
        return parsed

    @field_validator("poll_interval_seconds", mode="before")
    @classmethod
    def _validate_poll_interval(cls, value: Any) -> float:
        if value is None or value == "":
            return DEFAULT_POLL_INTERVAL
        try:
            parsed = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("POLL_INTERVAL_SECONDS must be a number") from exc
        if parsed < 0:
            raise ValueError("POLL_INTERVAL_SECONDS must be >= 0")
        return parsed

    @field_validator("max_poll_attempts", mode="before")
    @classmethod
    def _validate_max_attempts(cls, value: Any) -> Optional[int]:
        return _optional_positive(value, "MAX_POLL_ATTEMPTS", int)

    @field_validator("max_poll_seconds", mode="before")
    @classmethod
    def _validate_max_seconds(cls, value: Any) -> Optional[float]:
        return _optional_positive(value, "MAX_POLL_SECONDS", float)

    @field_validator("max_request_bytes", mode="before")
    @classmethod
    def _normalize_max_request_bytes(cls, value: Any) -> Optional[int]:
        return _optional_positive(value, "MAX_REQUEST_BYTES", int)

    @field_validator("debug", mode="before")
    @classmethod
    def _parse_debug(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "y", "on"}
        return False

    @field_validator("proxy_prefix", mode="before")
    @classmethod
    def _normalize_prefix(cls, value: Any) -> str:
        if value is None or value == "":
            return DEFAULT_PROXY_PREFIX
        prefix = "/" + str(value).strip().strip("/")
        return prefix

    @field_validator("port", mode="before")
    @classmethod
    def _normalize_port(cls, value: Any) -> int:
        if value is None or value == "":
            return 8000
        try:
            parsed = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("PORT must be an integer") from exc
        if parsed <= 0:
            raise ValueError("PORT must be > 0")
        return parsed

    @field_validator("max_connections", "max_keepalive_connections", mode="before")
    @classmethod
    def _normalize_connection_limits(cls, value: Any) -> int:
        if value is None or value == "":
            return 0
        try:
            parsed = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("Connection limits must be integers") from exc
        if parsed < 0:
            raise ValueError("Connection limits must be >= 0")
        return parsed

    @model_validator(mode="after")
    def _finalize_bases(self) -> "Settings":
        self.upstream_base = _validate_base_url(
            self.upstream_base.rstrip("/"), "T2V_UPSTREAM_BASE"
        )
        self.proxy_base = _validate_base_url(self.proxy_base.rstrip("/"), "T2V_PROXY_BASE")
        return self
