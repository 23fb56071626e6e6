# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for the media asset lifecycle
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the media lifecycle service.
"""

from .asset_routes import router as asset_router, set_asset_services
from .webhook_routes import router as webhook_router, set_webhook_services
from .health_routes import health_router, set_health_dependencies
from .errors import register_error_handlers
from .middleware import RequestTimeoutMiddleware

__all__ = [
    "asset_router",
    "set_asset_services",
    "webhook_router",
    "set_webhook_services",
    "health_router",
    "set_health_dependencies",
    "register_error_handlers",
    "RequestTimeoutMiddleware",
]
