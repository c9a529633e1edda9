"""Logging for the relay: request ids, credential redaction and quiet shutdowns."""

import asyncio
import logging
import re
from contextvars import ContextVar
from typing import Iterable

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

logger = logging.getLogger("t2v")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"
REDACTED = "***"

_AUTH_VALUE = re.compile(r"\b((?:Token|Bearer)\s+)[^\s'\",]+")
_SHUTDOWN_NOISE = ("timeout graceful shutdown exceeded", "CancelledError")


def get_logger(name: str) -> logging.Logger:
    """Return a child of the ``t2v`` logger so one level covers every module."""
    return logger.getChild(name)


class RedactCredentials(logging.Filter):  # pylint: disable=too-few-public-methods
    """Mask the upstream token and any ``Token``/``Bearer`` values in messages."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self.secrets = tuple(secret for secret in secrets if secret)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _AUTH_VALUE.sub(lambda match: match.group(1) + REDACTED, message)
        for secret in self.secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class SuppressShutdownErrors(logging.Filter):  # pylint: disable=too-few-public-methods
    """Drop the cancellation noise uvicorn emits while the relay shuts down."""

    def filter(self, record: logging.LogRecord) -> bool:
        exc = record.exc_info[1] if record.exc_info else None
        if isinstance(exc, asyncio.CancelledError):
            return False
        message = record.getMessage()
        return not any(fragment in message for fragment in _SHUTDOWN_NOISE)


def _install_request_id_factory() -> None:
    base_factory = logging.getLogRecordFactory()
    if getattr(base_factory, "stamps_request_id", False):
        return

    def _with_request_id(*args, **kwargs) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        record.request_id = request_id_ctx.get()
        return record

    _with_request_id.stamps_request_id = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(_with_request_id)


def setup_logging(debug: bool, secrets: Iterable[str] = ()) -> None:
    """Configure root logging; safe to call again, e.g. when ``--debug`` is passed."""
    _install_request_id_factory()
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    redact = RedactCredentials(secrets)
    for handler in logging.getLogger().handlers:
        for existing in [f for f in handler.filters if isinstance(f, RedactCredentials)]:
            handler.removeFilter(existing)
        handler.addFilter(redact)

    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    uvicorn_error = logging.getLogger("uvicorn.error")
    if not any(isinstance(f, SuppressShutdownErrors) for f in uvicorn_error.filters):
        uvicorn_error.addFilter(SuppressShutdownErrors())
