"""Application state shared across routers."""

from __future__ import annotations

import logging

from dotenv import load_dotenv

from config import Settings
from constants import SERVICE_VERSION as DEFAULT_SERVICE_VERSION
from logging_config import logger, setup_logging

load_dotenv()

try:
    settings = Settings()
except ValueError as exc:
    logging.basicConfig(level=logging.ERROR, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("t2v").error("Invalid configuration: %s", exc)
    raise

setup_logging(settings.debug, secrets=[settings.api_token or ""])

SHUTDOWN_IN_PROGRESS = False

SERVICE_VERSION = DEFAULT_SERVICE_VERSION

__all__ = ["SERVICE_VERSION", "SHUTDOWN_IN_PROGRESS", "logger", "settings"]
