"""Saving generated media to local storage."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

import httpx

from errors import TransportError, UpstreamRejection
from logging_config import get_logger
from utils.types import UpstreamLike

logger = get_logger("media")

CHUNK_SIZE = 1024 * 256


def default_filename(model_id: str) -> str:
    """Return the file name the UI offers when saving a video."""
    return f"generated-{model_id}.mp4"


def _resolve_target(url: str, destination: Union[str, Path], filename: Optional[str]) -> Path:
    raw = os.fspath(destination)
    target = Path(raw)
    if target.is_dir() or raw.endswith(("/", os.sep)):
        target = target / (filename or Path(httpx.URL(url).path).name or "video.mp4")
    return target


async def _write_body(response: httpx.Response, target: Path) -> int:
    written = 0
    try:
        with open(target, "wb") as handle:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                handle.write(chunk)
                written += len(chunk)
    except BaseException:
        target.unlink(missing_ok=True)
        raise
    return written


async def download_media(
    client: UpstreamLike,
    url: str,
    destination: Union[str, Path],
    *,
    filename: Optional[str] = None,
) -> Path:
    """Stream ``url`` to disk and return the written path.

    ``destination`` may be a directory, existing or spelled with a trailing
    separator (``filename`` or the URL's last path segment is appended), or a
    full file path. A partial file is removed whatever interrupts the write.
    """
    target = _resolve_target(url, destination, filename)
    target.parent.mkdir(parents=True, exist_ok=True)

    try:
        async with client.stream("GET", url, follow_redirects=True) as response:
            if response.is_error:
                await response.aread()
                raise UpstreamRejection(
                    status_code=response.status_code,
                    detail=f"Download failed with status {response.status_code}",
                )
            written = await _write_body(response, target)
    except httpx.RequestError as exc:
        raise TransportError(f"Failed to download media: {exc}") from exc

    logger.info("Video downloaded: %s (%.1f MB)", target, written / 1024 / 1024)
    return target
