"""InteractionMachine: draw and inspect modes on top of a render surface.

Exactly one of Idle, Drawing(kind) or Inspecting(mode) is active. Entering
a state attaches its interaction handles to the surface; leaving it
detaches exactly those handles, so no capture leaks across transitions.
Inspecting also suspends the surface's drag-zoom and restores the previous
setting on exit.
"""

from __future__ import annotations

from loguru import logger

from geoengine import events
from geoengine.errors import EmptyResult
from geoengine.geo.transform import DISPLAY, GEOGRAPHIC
from geoengine.interaction import surface as pointer
from geoengine.interaction.states import (
    Command,
    DrawKind,
    Drawing,
    Idle,
    InspectMode,
    Inspecting,
    InteractionState,
    SetInspectMode,
    StartDraw,
    StopDraw,
    ToggleInspect,
    describe,
    next_state,
)
from geoengine.interaction.surface import (
    BoxProbe,
    ClickProbe,
    DrawCapture,
    Interaction,
    PointerEvent,
    RenderSurface,
)
from geoengine.layers.codec import ExportArtifact, reproject_features
from geoengine.layers.exporters.kml import export_kml
from geoengine.layers.layer import Layer, LayerFeature, Origin, VectorSource, is_valid_geometry
from geoengine.layers.registry import LayerRegistry
from geoengine.query import FeatureQuery, QueryResult

SCRATCH_LAYER_ID = "scratch"
SCRATCH_LAYER_NAME = "Drawings"


class InteractionMachine:
    """Owns the interaction state and the scratch layer drawings land in."""

    def __init__(
        self,
        registry: LayerRegistry,
        query: FeatureQuery | None = None,
        surface: RenderSurface | None = None,
        display_crs: str = DISPLAY,
    ) -> None:
        self.registry = registry
        self.bus = registry.bus
        self.query = query or FeatureQuery(registry)
        self.surface = surface
        self.display_crs = display_crs
        self._state: InteractionState = Idle()
        self._attached: list[Interaction] = []
        self._saved_drag_zoom: bool | None = None
        self._drawn = 0
        self._ensure_scratch_layer()

    # -- State ---------------------------------------------------------------

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def attached(self) -> list[Interaction]:
        """Handles currently installed on the surface by this machine."""
        return list(self._attached)

    @property
    def scratch_layer(self) -> Layer:
        return self._ensure_scratch_layer()

    def attach_surface(self, surface: RenderSurface) -> None:
        """Bind a surface. Handles for the current state are installed on it."""
        if self.surface is surface:
            return
        self._exit(self._state)
        self.surface = surface
        if self._ready():
            self._enter(self._state)

    # -- Commands ------------------------------------------------------------

    def start_draw(self, kind: DrawKind | str) -> InteractionState:
        """Enter Drawing(kind); the same kind again returns to Idle."""
        return self._dispatch(StartDraw(DrawKind(kind)))

    def stop_draw(self) -> InteractionState:
        return self._dispatch(StopDraw())

    def toggle_inspect(self) -> InteractionState:
        """Enter or leave Inspecting. Entering from Drawing stops the drawing."""
        return self._dispatch(ToggleInspect())

    def _dispatch(self, command: Command) -> InteractionState:
        if not self._ready():
            self.bus.publish(
                events.INTERACTION_NOT_READY,
                {"command": type(command).__name__, **describe(self._state)},
            )
            logger.debug(f"Surface not ready, ignoring {type(command).__name__}")
            return self._state
        self._apply(next_state(self._state, command))
        return self._state

    def _apply(self, new: InteractionState) -> None:
        old = self._state
        if new == old:
            return
        if isinstance(old, Inspecting) and isinstance(new, Inspecting):
            # Click/box switch keeps the same handles attached
            self._state = new
        else:
            self._exit(old)
            self._state = new
            self._enter(new)
        self.bus.publish(events.INTERACTION_CHANGED, describe(new))
        logger.debug(f"Interaction {describe(old)} -> {describe(new)}")

    def _ready(self) -> bool:
        return self.surface is not None and bool(self.surface.is_ready)

    def _enter(self, state: InteractionState) -> None:
        if self.surface is None:
            return
        if isinstance(state, Drawing):
            self._attach(DrawCapture(kind=state.kind, target_layer_id=SCRATCH_LAYER_ID))
        elif isinstance(state, Inspecting):
            self._saved_drag_zoom = self.surface.drag_zoom_active
            self.surface.drag_zoom_active = False
            self._attach(ClickProbe())
            self._attach(BoxProbe())

    def _exit(self, state: InteractionState) -> None:
        if self.surface is None:
            return
        for interaction in self._attached:
            self.surface.remove_interaction(interaction)
        self._attached = []
        if isinstance(state, Inspecting) and self._saved_drag_zoom is not None:
            self.surface.drag_zoom_active = self._saved_drag_zoom
            self._saved_drag_zoom = None

    def _attach(self, interaction: Interaction) -> None:
        self.surface.add_interaction(interaction)
        self._attached.append(interaction)

    # -- Pointer input -------------------------------------------------------

    def handle_pointer(self, event: PointerEvent) -> QueryResult | LayerFeature | None:
        """Route one pointer event according to the current state.

        Returns the drawn feature for a completed drawing, a QueryResult for
        a finished click or box query, and None when the event is ignored.
        """
        state = self._state

        if event.kind == pointer.DRAW_END:
            if isinstance(state, Drawing) and event.geometry:
                return self._complete_drawing(state, event)
            return None

        if not isinstance(state, Inspecting):
            return None

        if event.kind == pointer.CLICK and state.mode == InspectMode.CLICK:
            if event.pixel is None or event.viewport is None:
                return None
            return self._report(self.query.query_at_point(event.pixel, event.viewport))

        if event.kind == pointer.BOX_START:
            if event.modifier:
                self._apply(next_state(state, SetInspectMode(InspectMode.BOX)))
            return None

        if event.kind == pointer.BOX_END and state.mode == InspectMode.BOX:
            self._apply(next_state(state, SetInspectMode(InspectMode.CLICK)))
            if event.extent is None:
                return None
            return self._report(self.query.query_in_extent(event.extent))

        return None

    def _complete_drawing(self, state: Drawing, event: PointerEvent) -> LayerFeature | None:
        geometry_type = event.geometry.get("type")
        coordinates = event.geometry.get("coordinates")
        if geometry_type != state.kind.value or not coordinates:
            logger.debug(f"Ignoring {geometry_type} drawing while drawing {state.kind.value}")
            return None
        if not is_valid_geometry(geometry_type, coordinates):
            logger.debug(f"Ignoring degenerate {geometry_type} drawing")
            self.bus.notify(
                "draw.rejected", f"{geometry_type} has too few positions to be drawn.", level="warning"
            )
            return None

        self._drawn += 1
        feature = LayerFeature(
            feature_id=f"drawn-{self._drawn}",
            geometry_type=geometry_type,
            coordinates=coordinates,
            properties=dict(event.properties),
        )
        self.scratch_layer.features.append(feature)
        self.bus.publish(
            events.DRAW_COMPLETED,
            {"id": feature.feature_id, "type": geometry_type, "coordinates": coordinates},
        )
        self.bus.notify("draw.completed", f"{geometry_type} drawn.")
        return feature

    def _report(self, result: QueryResult) -> QueryResult:
        self.bus.publish(
            events.QUERY_RESULT,
            {
                "outcome": result.outcome.value,
                "layer_name": result.layer_name,
                "attributes": result.attributes,
            },
        )
        if not result.found:
            self.bus.notify(f"query.{result.outcome.value}", result.message())
        return result

    # -- Drawings ------------------------------------------------------------

    @property
    def drawings(self) -> list[LayerFeature]:
        return list(self.scratch_layer.features)

    @property
    def last_polygon(self) -> LayerFeature | None:
        for feature in reversed(self.scratch_layer.features):
            if feature.geometry_type == "Polygon":
                return feature
        return None

    def clear_drawings(self) -> int:
        """Remove every drawn feature; returns how many were removed."""
        features = self.scratch_layer.features
        count = len(features)
        features.clear()
        if count:
            self.bus.notify("draw.cleared", f"{count} drawing(s) cleared.")
        return count

    def export_drawings_kml(self) -> ExportArtifact:
        """Drawn features as a KML download, in lon/lat.

        Raises:
            EmptyResult: When nothing has been drawn.
        """
        if not self.scratch_layer.features:
            raise EmptyResult("There are no drawings to export.")
        features = reproject_features(self.scratch_layer.features, self.display_crs, GEOGRAPHIC)
        text = export_kml(features, name=SCRATCH_LAYER_NAME)
        return ExportArtifact(
            "drawings.kml",
            "application/vnd.google-earth.kml+xml;charset=utf-8",
            text.encode("utf-8"),
        )

    def _ensure_scratch_layer(self) -> Layer:
        layer = self.registry.scratch
        if layer is None:
            layer = Layer(
                layer_id=SCRATCH_LAYER_ID,
                name=SCRATCH_LAYER_NAME,
                source=VectorSource(),
                origin=Origin.SCRATCH,
            )
            self.registry.add(layer)
        return layer

