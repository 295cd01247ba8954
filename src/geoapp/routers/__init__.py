"""API routers."""

from geoapp.routers.interaction import router as interaction_router
from geoapp.routers.layers import router as layers_router
from geoapp.routers.proxy import router as proxy_router
from geoapp.routers.sources import router as sources_router

__all__ = ["interaction_router", "layers_router", "proxy_router", "sources_router"]
