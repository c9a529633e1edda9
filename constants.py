"""Shared constants for the text-to-video relay."""

DEFAULT_UPSTREAM_BASE = "https://api.replicate.com/v1"
DEFAULT_PROXY_PREFIX = "/api/replicate"
DEFAULT_PROXY_BASE = "http://127.0.0.1:8000/api/replicate"
SERVICE_VERSION = "1.0.0"
UPSTREAM_AUTH_SCHEME = "Token"
DEFAULT_POLL_INTERVAL = 2.0
POLL_PATH = "/predictions/{job_id}"
NOT_SUBMITTED = "not_submitted"
TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
ERROR_CONFIGURATION = "configuration_error"
ERROR_PROXY = "proxy_error"
ERROR_UNKNOWN_MODEL = "unknown_model"
