"""Feature queries against the layer registry.

Point hit-tests and extent (box) queries across every visible vector layer
plus the scratch layer. Tile-backed layers are never hit-tested. Results
carry the attributes of each matching feature; features whose only
content is geometry do not count as results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from shapely.geometry import Point

from geoengine.errors import InvalidGeometryForOperation
from geoengine.geo.transform import Extent, extents_intersect
from geoengine.layers.layer import Layer, LayerFeature, Origin
from geoengine.layers.registry import LayerRegistry

DEFAULT_HIT_TOLERANCE_PX = 5.0


class QueryOutcome(str, Enum):
    FOUND = "found"
    NO_FEATURES = "no_features"
    NO_ATTRIBUTES = "no_attributes"


@dataclass(frozen=True)
class Viewport:
    """Visible display-CRS extent mapped onto a ``width`` x ``height`` pixel canvas."""

    extent: Extent
    width: int
    height: int

    @property
    def resolution(self) -> float:
        """Map units per pixel (largest of both axes)."""
        minx, miny, maxx, maxy = self.extent
        return max((maxx - minx) / self.width, (maxy - miny) / self.height)

    def to_coordinate(self, pixel: tuple[float, float]) -> tuple[float, float]:
        """Pixel (origin top-left) -> display CRS coordinate."""
        minx, miny, maxx, maxy = self.extent
        px, py = pixel
        x = minx + px * (maxx - minx) / self.width
        y = maxy - py * (maxy - miny) / self.height
        return x, y


@dataclass(frozen=True)
class QueryHit:
    layer_id: str
    layer_name: str
    feature: LayerFeature


@dataclass
class QueryResult:
    outcome: QueryOutcome
    hits: list[QueryHit] = field(default_factory=list)
    attributes: list[dict] = field(default_factory=list)
    layer_name: str | None = None

    @property
    def found(self) -> bool:
        return self.outcome == QueryOutcome.FOUND

    def message(self) -> str:
        if self.outcome == QueryOutcome.NO_FEATURES:
            return "No feature found to inspect."
        if self.outcome == QueryOutcome.NO_ATTRIBUTES:
            return "The selected feature(s) have no visible attributes."
        return f"{len(self.attributes)} feature(s) selected."


class FeatureQuery:
    """Point and extent queries over the registry."""

    def __init__(self, registry: LayerRegistry, hit_tolerance_px: float = DEFAULT_HIT_TOLERANCE_PX) -> None:
        self.registry = registry
        self.hit_tolerance_px = hit_tolerance_px

    def _queryable_layers(self) -> list[Layer]:
        """Visible vector layers and the scratch layer, topmost first."""
        return [
            layer
            for layer in reversed(self.registry.list_layers())
            if layer.has_vector_source and (layer.visible or layer.origin == Origin.SCRATCH)
        ]

    def query_at_point(self, pixel: tuple[float, float], viewport: Viewport) -> QueryResult:
        """Features under ``pixel``, topmost registry layer first."""
        x, y = viewport.to_coordinate(pixel)
        tolerance = self.hit_tolerance_px * viewport.resolution
        probe = Point(x, y)
        search = (x - tolerance, y - tolerance, x + tolerance, y + tolerance)

        hits = []
        for layer in self._queryable_layers():
            for feature in layer.features:
                extent = feature.extent
                if extent is None or not extents_intersect(extent, search):
                    continue
                if feature.to_shape().distance(probe) <= tolerance:
                    hits.append(QueryHit(layer.layer_id, layer.name, feature))
        return summarize(hits)

    def query_in_extent(self, extent: Extent) -> QueryResult:
        """Features whose bounding box intersects ``extent``."""
        hits = []
        for layer in self._queryable_layers():
            for feature in layer.features:
                feature_extent = feature.extent
                if feature_extent is not None and extents_intersect(feature_extent, extent):
                    hits.append(QueryHit(layer.layer_id, layer.name, feature))
        return summarize(hits)

    def query_layer(self, layer_id: str) -> QueryResult:
        """Every feature of one vector layer (attribute table view).

        Raises:
            KeyError: If the layer_id is not found.
            InvalidGeometryForOperation: For tile-backed layers.
        """
        layer = self.registry.get(layer_id)
        if layer is None:
            raise KeyError(f"Layer not found: {layer_id}")
        if not layer.has_vector_source:
            raise InvalidGeometryForOperation(
                f'Layer "{layer.name}" is not a vector layer; no attribute table available.'
            )
        return summarize([QueryHit(layer.layer_id, layer.name, f) for f in layer.features])


def summarize(hits: list[QueryHit]) -> QueryResult:
    """Drop attribute-less hits and name the layer when only one is involved."""
    if not hits:
        return QueryResult(QueryOutcome.NO_FEATURES)

    kept = []
    attributes = []
    for hit in hits:
        attrs = hit.feature.attributes()
        if attrs:
            kept.append(hit)
            attributes.append(attrs)

    if not kept:
        return QueryResult(QueryOutcome.NO_ATTRIBUTES)

    layer_ids = {hit.layer_id for hit in kept}
    layer_name = kept[0].layer_name if len(layer_ids) == 1 else None
    return QueryResult(QueryOutcome.FOUND, kept, attributes, layer_name)
