"""API route handlers.

This package contains the route handlers for the Uniclass Match Gateway.
"""

from uniclass_gateway.api.routes.health import router as health_router
from uniclass_gateway.api.routes.match import router as match_router

__all__ = [
    "health_router",
    "match_router",
]
