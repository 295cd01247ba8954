"""GeoWorkbench - geospatial layer workbench.

Main FastAPI application. The lifespan owns one shared httpx.AsyncClient
and one Workbench; routers reach both through ``app.state``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from geoapp.config import settings
from geoapp.routers import interaction_router, layers_router, proxy_router, sources_router
from geoengine import __version__
from geoengine.interaction.surface import RecordingSurface
from geoengine.workbench import Workbench


def create_app(
    workbench: Workbench | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        workbench: Pre-built workbench (tests); one is created at startup
            otherwise.
        http_client: Shared client for the proxy and the remote sources.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.app_name} v{__version__} - starting")
        client = http_client or httpx.AsyncClient(timeout=settings.http_timeout)
        app.state.http_client = client
        app.state.workbench = workbench or Workbench(
            settings, client=client, surface=RecordingSurface()
        )
        logger.info(
            f"Display CRS {settings.display_crs}, relay {settings.proxy_url}, "
            f"catalog {settings.stac_search_url}"
        )

        yield

        if http_client is None:
            await client.aclose()
        logger.info(f"{settings.app_name} shutting down...")

    app = FastAPI(
        title=settings.app_name,
        description="Geospatial layer and interaction workbench",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(proxy_router)
    app.include_router(layers_router)
    app.include_router(sources_router)
    app.include_router(interaction_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("geoapp.main:app", host=settings.host, port=settings.port, reload=settings.debug)
