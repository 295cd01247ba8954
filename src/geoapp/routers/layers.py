"""Layer registry API: list, import, update, remove and export layers."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field

from geoapp.routers.common import get_workbench, respond
from geoengine.errors import WorkbenchError
from geoengine.layers.codec import ImportSource

router = APIRouter(prefix="/api/layers", tags=["layers"])

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class LayerUpdate(BaseModel):
    """Partial update of a layer's display state."""
    visible: Optional[bool] = None
    opacity: Optional[float] = Field(None, ge=0.0, le=1.0)
    position: Optional[int] = Field(None, ge=0)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("")
async def list_layers(request: Request):
    """All layers in render order (bottom first)."""
    return [layer.summary() for layer in get_workbench(request).registry.list_layers()]


@router.post("/import")
async def import_layer(request: Request, files: list[UploadFile] = File(...)):
    """Import one file, or a .shp/.dbf (+ sidecars) selection, as a new layer."""
    sources = [ImportSource(f.filename or "upload", await f.read()) for f in files]
    return respond(get_workbench(request).import_files(sources))


@router.get("/export")
async def export_layers(
    request: Request,
    ids: list[str] = Query(..., description="Layer ids, repeated or comma separated"),
    format: str = Query("geojson", description="geojson, kml or shp"),
):
    """Download the selected layers as GeoJSON, KML or zipped shapefiles."""
    layer_ids = [part for value in ids for part in value.split(",") if part]
    outcome = get_workbench(request).export(layer_ids, format)
    if not outcome.ok:
        return respond(outcome)
    artifact = outcome.value
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.patch("/{layer_id}")
async def update_layer(request: Request, layer_id: str, body: LayerUpdate):
    """Change visibility, opacity or render position of a layer."""
    registry = get_workbench(request).registry
    if layer_id not in registry:
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    if body.visible is not None:
        registry.set_visible(layer_id, body.visible)
    if body.opacity is not None:
        registry.set_opacity(layer_id, body.opacity)
    if body.position is not None:
        registry.move(layer_id, body.position)
    return registry.get(layer_id).summary()


@router.delete("/{layer_id}")
async def delete_layer(request: Request, layer_id: str):
    """Remove a layer from the map."""
    return respond(get_workbench(request).remove_layer(layer_id))


@router.get("/{layer_id}/features")
async def layer_features(request: Request, layer_id: str):
    """Attribute table of a vector layer."""
    query = get_workbench(request).query
    try:
        result = query.query_layer(layer_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    except WorkbenchError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {
        "outcome": result.outcome.value,
        "layer_name": result.layer_name,
        "attributes": result.attributes,
    }


@router.post("/{layer_id}/extract")
async def extract_layer(request: Request, layer_id: str):
    """Copy the features intersecting the last drawn polygon into a new layer."""
    return respond(get_workbench(request).extract_by_polygon(layer_id))
