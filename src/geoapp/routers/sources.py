"""Remote source API: OSM categories, map server layers, catalog and place search."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from geoapp.routers.common import get_workbench, respond
from geoengine.sources import OverpassFetcher

router = APIRouter(prefix="/api/sources", tags=["sources"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class OSMFetchRequest(BaseModel):
    """Categories to fetch inside the last drawn polygon."""
    categories: list[str] = Field(..., min_length=1)


class DiscoverRequest(BaseModel):
    url: str


class RemoteLayerRequest(BaseModel):
    """A layer advertised by the connected map server."""
    name: str


class CatalogSearchRequest(BaseModel):
    """Visible extent in the display CRS: [minx, miny, maxx, maxy]."""
    extent: list[float] = Field(..., min_length=4, max_length=4)


# ---------------------------------------------------------------------------
# OpenStreetMap
# ---------------------------------------------------------------------------

@router.get("/osm/categories")
async def osm_categories():
    return OverpassFetcher.categories()


@router.post("/osm")
async def fetch_osm(request: Request, body: OSMFetchRequest):
    """Fetch the selected categories inside the last drawn polygon."""
    outcome = await get_workbench(request).fetch_osm(body.categories)
    return respond(outcome, {"counts": outcome.value or {}})


# ---------------------------------------------------------------------------
# Map server (WMS / WFS)
# ---------------------------------------------------------------------------

@router.post("/capabilities")
async def discover(request: Request, body: DiscoverRequest):
    """List the layers a map server publishes."""
    outcome = await get_workbench(request).discover(body.url)
    return respond(outcome, {"discovered": [asdict(item) for item in outcome.value or []]})


@router.get("/capabilities")
async def discovered(request: Request):
    """Layers from the last discovery, with their added flags."""
    capabilities = get_workbench(request).capabilities
    return {
        "base_url": capabilities.base_url,
        "discovered": [asdict(item) for item in capabilities.discovered],
    }


@router.post("/wms")
async def add_wms(request: Request, body: RemoteLayerRequest):
    return respond(get_workbench(request).add_wms(body.name))


@router.post("/wfs")
async def add_wfs(request: Request, body: RemoteLayerRequest):
    return respond(await get_workbench(request).add_wfs(body.name))


# ---------------------------------------------------------------------------
# STAC catalog
# ---------------------------------------------------------------------------

@router.post("/stac")
async def search_catalog(request: Request, body: CatalogSearchRequest):
    """Show catalog item footprints intersecting the visible extent."""
    return respond(await get_workbench(request).search_catalog(tuple(body.extent)))


# ---------------------------------------------------------------------------
# Place search
# ---------------------------------------------------------------------------

@router.get("/geocode")
async def search_location(request: Request, q: str = Query(..., description="Free-text place name")):
    """Places matching ``q`` with their display-CRS center and extent."""
    outcome = await get_workbench(request).search_location(q)
    return respond(outcome, {"places": [asdict(place) for place in outcome.value or []]})
