"""Interaction API: draw/inspect commands, pointer input and drawings.

Pointer events arrive from the host renderer in the display CRS; the
responses carry the resulting state, drawn feature or query result.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from geoapp.routers.common import get_workbench, respond
from geoengine.interaction import DrawKind, PointerEvent
from geoengine.interaction.states import describe
from geoengine.layers.layer import LayerFeature
from geoengine.query import QueryResult, Viewport

router = APIRouter(prefix="/api/interaction", tags=["interaction"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class DrawRequest(BaseModel):
    kind: DrawKind


class ViewportModel(BaseModel):
    extent: list[float] = Field(..., min_length=4, max_length=4)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class PointerRequest(BaseModel):
    """One pointer event from the renderer."""
    kind: str
    pixel: Optional[list[float]] = Field(None, min_length=2, max_length=2)
    modifier: bool = False
    extent: Optional[list[float]] = Field(None, min_length=4, max_length=4)
    geometry: Optional[dict] = None
    viewport: Optional[ViewportModel] = None
    properties: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("")
async def get_state(request: Request):
    return describe(get_workbench(request).machine.state)


@router.post("/draw")
async def start_draw(request: Request, body: DrawRequest):
    """Start drawing; the active kind again stops it."""
    return describe(get_workbench(request).machine.start_draw(body.kind))


@router.post("/stop")
async def stop_draw(request: Request):
    return describe(get_workbench(request).machine.stop_draw())


@router.post("/inspect")
async def toggle_inspect(request: Request):
    return describe(get_workbench(request).machine.toggle_inspect())


@router.post("/pointer")
async def pointer(request: Request, body: PointerRequest):
    """Feed a click, box or draw-end event to the interaction machine."""
    machine = get_workbench(request).machine
    viewport = None
    if body.viewport is not None:
        viewport = Viewport(tuple(body.viewport.extent), body.viewport.width, body.viewport.height)
    event = PointerEvent(
        kind=body.kind,
        pixel=tuple(body.pixel) if body.pixel else None,
        modifier=body.modifier,
        extent=tuple(body.extent) if body.extent else None,
        geometry=body.geometry,
        viewport=viewport,
        properties=body.properties,
    )
    result = machine.handle_pointer(event)

    response: dict = {**describe(machine.state), "handled": result is not None}
    if isinstance(result, LayerFeature):
        response["feature"] = result.to_geojson()
    elif isinstance(result, QueryResult):
        response["query"] = {
            "outcome": result.outcome.value,
            "message": result.message(),
            "layer_name": result.layer_name,
            "attributes": result.attributes,
        }
    return response


@router.get("/drawings/export")
async def export_drawings(request: Request):
    """Drawn features as a KML download."""
    outcome = get_workbench(request).export_drawings()
    if not outcome.ok:
        return respond(outcome)
    artifact = outcome.value
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.delete("/drawings")
async def clear_drawings(request: Request):
    cleared = get_workbench(request).machine.clear_drawings()
    return {"cleared": cleared}
