"""Routes module for the text-to-video relay."""

from routes.health import router as health_router
from routes.models import router as models_router
from routes.proxy import router as proxy_router
from routes.version import router as version_router

__all__ = ["health_router", "models_router", "proxy_router", "version_router"]
