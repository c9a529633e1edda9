"""Registry of video-generation backends and their payload builders.

Every backend-specific detail (endpoint, pinned version, fixed inputs and
which tuning options are honored) lives here. Callers only hand over a
model identifier, a prompt and :class:`TuningOptions`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from errors import UnknownModel

ASPECT_RATIO = "16:9"
NEGATIVE_PROMPT = "low quality, worst quality, deformed, distorted, watermark"

GUIDANCE_MIN = 1.0
GUIDANCE_MAX = 10.0


class ModelId(str, Enum):
    """Closed set of supported backends."""

    LTX_VIDEO = "ltx-video"
    WAN_2_5 = "wan-2.5"


class Tuning(str, Enum):
    """Tuning options a backend may honor."""

    GUIDANCE_SCALE = "guidance_scale"
    PROMPT_ENHANCEMENT = "prompt_enhancement"


class TuningOptions(BaseModel):
    """User-adjustable generation parameters."""

    model_config = ConfigDict(frozen=True)

    guidance_scale: float = Field(default=3.0, ge=GUIDANCE_MIN, le=GUIDANCE_MAX)
    enhance_prompt: bool = True


PayloadBuilder = Callable[[str, Optional[str], TuningOptions], Dict[str, Any]]


@dataclass(frozen=True)
class BackendConfig:  # pylint: disable=too-many-instance-attributes
    """Submission contract for a single backend."""

    id: ModelId
    name: str
    description: str
    endpoint: str
    default_guidance: float
    supports: FrozenSet[Tuning]
    builder: PayloadBuilder
    version: Optional[str] = None

    def honors(self, option: Tuning) -> bool:
        """Return True if this backend reads the given tuning option."""
        return option in self.supports

    def default_options(self) -> TuningOptions:
        """Return tuning options seeded with this backend's defaults."""
        return TuningOptions(guidance_scale=self.default_guidance)


def _base_input(prompt: str) -> Dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": ASPECT_RATIO,
        "negative_prompt": NEGATIVE_PROMPT,
    }


def _ltx_payload(prompt: str, version: Optional[str], options: TuningOptions) -> Dict[str, Any]:
    return {
        "version": version,
        "input": {**_base_input(prompt), "guidance_scale": options.guidance_scale},
    }


def _wan_payload(prompt: str, _version: Optional[str], options: TuningOptions) -> Dict[str, Any]:
    return {
        "input": {
            **_base_input(prompt),
            "guidance_scale": options.guidance_scale,
            "enable_prompt_expansion": options.enhance_prompt,
        }
    }


BACKENDS: Mapping[ModelId, BackendConfig] = {
    ModelId.LTX_VIDEO: BackendConfig(
        id=ModelId.LTX_VIDEO,
        name="Lightricks LTX Video",
        description="Fast, high-quality video generation",
        version="8c47da666861d081eeb4d1261853087de23923a268a69b63febdf5dc1dee08e4",
        endpoint="/predictions",
        default_guidance=3.0,
        supports=frozenset({Tuning.GUIDANCE_SCALE}),
        builder=_ltx_payload,
    ),
    ModelId.WAN_2_5: BackendConfig(
        id=ModelId.WAN_2_5,
        name="Wan 2.5 (Alibaba)",
        description="Advanced Chinese/English T2V model",
        endpoint="/models/wan-video/wan-2.5-t2v/predictions",
        default_guidance=5.0,
        supports=frozenset({Tuning.GUIDANCE_SCALE, Tuning.PROMPT_ENHANCEMENT}),
        builder=_wan_payload,
    ),
}


def resolve(model_id: Union[str, ModelId]) -> BackendConfig:
    """Return the backend registered under ``model_id``."""
    try:
        key = ModelId(model_id)
    except ValueError as exc:
        raise UnknownModel(str(model_id)) from exc
    return BACKENDS[key]


def list_backends() -> Tuple[BackendConfig, ...]:
    """Return every registered backend in registration order."""
    return tuple(BACKENDS.values())


def build_payload(
    model_id: Union[str, ModelId],
    prompt: str,
    options: Optional[TuningOptions] = None,
) -> Dict[str, Any]:
    """Translate a prompt and tuning options into the backend request body.

    Options the backend does not honor are dropped from the body rather than
    rejected, and the pinned version is only sent when the backend has one.
    """
    config = resolve(model_id)
    resolved = options if options is not None else config.default_options()
    payload = config.builder(prompt, config.version, resolved)
    if config.version is None:
        payload.pop("version", None)
    inputs = payload.get("input", {})
    if not config.honors(Tuning.PROMPT_ENHANCEMENT):
        inputs.pop("enable_prompt_expansion", None)
    if not config.honors(Tuning.GUIDANCE_SCALE):
        inputs.pop("guidance_scale", None)
    return payload


def describe(config: BackendConfig) -> Dict[str, Any]:
    """Return the public catalogue entry for a backend."""
    return {
        "id": config.id.value,
        "name": config.name,
        "description": config.description,
        "default_guidance": config.default_guidance,
        "supports_prompt_enhancement": config.honors(Tuning.PROMPT_ENHANCEMENT),
    }


__all__ = [
    "BACKENDS",
    "BackendConfig",
    "ModelId",
    "Tuning",
    "TuningOptions",
    "build_payload",
    "describe",
    "list_backends",
    "resolve",
]
