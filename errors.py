"""Error taxonomy shared by the gateway, registry and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class GenerationError(Exception):
    """Base class for every user-facing generation failure."""


class ValidationError(GenerationError):
    """Raised before any network call when the request is unusable."""


class UnknownModel(GenerationError):
    """Raised when a model identifier is outside the registered set."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


class ConfigurationError(GenerationError):
    """Raised when the proxy has no upstream credential configured."""


class TransportError(GenerationError):
    """Raised on network-level failures reaching the proxy or the upstream."""


@dataclass
class UpstreamRejection(GenerationError):
    """Non-2xx answer from the upstream API at submission or poll time."""

    status_code: int
    detail: str

    def __str__(self) -> str:
        return self.detail


class MalformedResult(GenerationError):
    """Raised when a job succeeded but carries no usable output."""


class GenerationFailed(GenerationError):
    """Raised when the upstream reports a failed or canceled job."""

    def __init__(self, status: str, reason: Optional[str] = None) -> None:
        super().__init__(f"Generation failed with status: {status}")
        self.status = status
        self.reason = reason


class PollTimeout(GenerationError):
    """Raised when the poll loop exceeds its configured bounds."""


class InvalidTransition(RuntimeError):
    """Raised when the orchestrator is asked for an illegal state change."""
