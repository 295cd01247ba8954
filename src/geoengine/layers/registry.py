"""LayerRegistry: ordered registry of map layers.

Owns the authoritative layer list: add, remove, visibility, opacity,
explicit reordering, and the diff the external renderer must apply to
catch up with the registry. The registry never calls the renderer; it
only describes what changed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from geoengine import events
from geoengine.errors import EmptyResult, ErrorKind, InvalidGeometryForOperation
from geoengine.events import EventBus
from geoengine.layers.layer import Layer, Origin

# The draw surface always renders above every other layer.
SCRATCH_Z_INDEX = 1_000_000


@dataclass(frozen=True)
class RendererLayerState:
    """What the renderer currently shows for one attached layer."""

    z_index: int
    visible: bool
    opacity: float


@dataclass
class LayerDiff:
    """Changes the renderer must apply to match the registry."""

    added: list[Layer] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    reordered: list[tuple[str, int]] = field(default_factory=list)
    visibility: list[tuple[str, bool]] = field(default_factory=list)
    opacity: list[tuple[str, float]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.added or self.removed or self.reordered or self.visibility or self.opacity
        )


class LayerRegistry:
    """Registry of active map layers."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self._layers: dict[str, Layer] = {}
        self._attached: dict[str, RendererLayerState] = {}
        self.bus = bus or EventBus()

    # -- Queries ------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer_id: str) -> bool:
        return layer_id in self._layers

    def get(self, layer_id: str) -> Layer | None:
        """Get a layer by ID, None if it is not registered."""
        return self._layers.get(layer_id)

    def list_layers(self) -> list[Layer]:
        """All layers in render order (bottom first, scratch layer last)."""
        return sorted(self._layers.values(), key=lambda l: l.z_index)

    @property
    def scratch(self) -> Layer | None:
        for layer in self._layers.values():
            if layer.origin == Origin.SCRATCH:
                return layer
        return None

    def find_by_remote(self, remote_name: str, origin: Origin) -> Layer | None:
        for layer in self._layers.values():
            if layer.origin == origin and layer.remote_name == remote_name:
                return layer
        return None

    def layer_extent(self, layer_id: str):
        """Extent of a vector layer in the display CRS.

        Raises:
            KeyError: If the layer_id is not found.
            InvalidGeometryForOperation: For tile-backed layers.
            EmptyResult: When the layer holds no features.
        """
        layer = self._require(layer_id)
        if not layer.has_vector_source:
            raise InvalidGeometryForOperation(
                f'Layer "{layer.name}" is tile-backed and has no feature extent.'
            )
        extent = layer.source.extent
        if extent is None:
            raise EmptyResult(f'Layer "{layer.name}" contains no features.')
        return extent

    # -- Mutation -----------------------------------------------------------

    def add(self, layer: Layer) -> bool:
        """Add a layer to the registry.

        A duplicate id (or a second scratch layer) is a no-op reported as a
        notice. Returns True when the layer was added.
        """
        if layer.layer_id in self._layers:
            self.bus.notify(
                ErrorKind.DUPLICATE_LAYER.value,
                f'Layer "{layer.name}" is already on the map.',
            )
            logger.debug(f"Duplicate layer ignored: {layer.layer_id}")
            return False

        if layer.origin == Origin.SCRATCH:
            if self.scratch is not None:
                self.bus.notify(
                    ErrorKind.DUPLICATE_LAYER.value,
                    "A drawing layer is already registered.",
                )
                return False
            layer.z_index = SCRATCH_Z_INDEX
        else:
            layer.z_index = self._next_z_index()

        layer.opacity = _clamp(layer.opacity)
        self._layers[layer.layer_id] = layer
        self.bus.publish(events.LAYER_ADDED, layer.summary())
        if layer.origin in (Origin.WMS, Origin.WFS) and layer.remote_name:
            self._publish_state(layer, added=True)
        logger.info(f"Layer added: {layer.name} ({layer.layer_id}, z={layer.z_index})")
        return True

    def remove(self, layer_id: str) -> Layer | None:
        """Remove a layer from the registry.

        Returns:
            The removed Layer, or None if it didn't exist.
        """
        layer = self._layers.pop(layer_id, None)
        if layer is None:
            return None
        self.bus.publish(events.LAYER_REMOVED, {"id": layer_id, "name": layer.name})
        if layer.origin in (Origin.WMS, Origin.WFS) and layer.remote_name:
            self._publish_state(layer, added=False)
        self.bus.notify("layer.removed", f'Layer "{layer.name}" removed from the map.')
        return layer

    def set_visible(self, layer_id: str, visible: bool) -> None:
        """Set the visibility of a layer.

        Raises:
            KeyError: If the layer_id is not found.
        """
        self._require(layer_id).visible = bool(visible)

    def toggle_visible(self, layer_id: str) -> bool:
        layer = self._require(layer_id)
        layer.visible = not layer.visible
        return layer.visible

    def set_opacity(self, layer_id: str, opacity: float) -> None:
        """Set the opacity of a layer, clamped to [0, 1]."""
        self._require(layer_id).opacity = _clamp(opacity)

    def move(self, layer_id: str, position: int) -> None:
        """Move a layer to ``position`` in render order (0 = bottom).

        The scratch layer cannot be moved; it stays on top.
        """
        layer = self._require(layer_id)
        if layer.origin == Origin.SCRATCH:
            return
        ordered = [l for l in self.list_layers() if l.origin != Origin.SCRATCH]
        ordered.remove(layer)
        position = max(0, min(position, len(ordered)))
        ordered.insert(position, layer)
        for z, item in enumerate(ordered):
            item.z_index = z

    # -- Renderer reconciliation -------------------------------------------

    def reconcile_with_renderer(
        self, attached: dict[str, RendererLayerState] | None = None
    ) -> LayerDiff:
        """Compute what the renderer must change to match the registry.

        Args:
            attached: The renderer's current layer state. Defaults to the
                state committed by the previous reconciliation.

        Returns:
            LayerDiff of added, removed, reordered, visibility and opacity
            changes. The registry's current state is committed as attached.
        """
        previous = self._attached if attached is None else attached
        diff = LayerDiff()

        for layer in self.list_layers():
            state = previous.get(layer.layer_id)
            if state is None:
                diff.added.append(layer)
                continue
            if state.z_index != layer.z_index:
                diff.reordered.append((layer.layer_id, layer.z_index))
            if state.visible != layer.visible:
                diff.visibility.append((layer.layer_id, layer.visible))
            if state.opacity != layer.opacity:
                diff.opacity.append((layer.layer_id, layer.opacity))

        diff.removed = [lid for lid in previous if lid not in self._layers]

        self._attached = {
            layer.layer_id: RendererLayerState(layer.z_index, layer.visible, layer.opacity)
            for layer in self._layers.values()
        }
        return diff

    # -- Internals ----------------------------------------------------------

    def _require(self, layer_id: str) -> Layer:
        layer = self._layers.get(layer_id)
        if layer is None:
            raise KeyError(f"Layer not found: {layer_id}")
        return layer

    def _next_z_index(self) -> int:
        existing = [l.z_index for l in self._layers.values() if l.origin != Origin.SCRATCH]
        return max(existing, default=-1) + 1

    def _publish_state(self, layer: Layer, added: bool) -> None:
        self.bus.publish(
            events.LAYER_STATE_CHANGED,
            {
                "remote_name": layer.remote_name,
                "service": layer.origin.value,
                "added": added,
                "layer_id": layer.layer_id,
            },
        )


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))
