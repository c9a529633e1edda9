"""Backend catalogue endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from backends import describe, list_backends, resolve

router = APIRouter()


@router.get("/api/models")
async def models() -> dict:
    """Return display metadata and tuning defaults for every backend."""
    return {"models": [describe(config) for config in list_backends()]}


@router.get("/api/models/{model_id}")
async def model_detail(model_id: str) -> dict:
    """Return one backend's catalogue entry; unknown identifiers are a 404."""
    return describe(resolve(model_id))
