"""Layer, LayerFeature and source dataclasses for the map layer registry.

Feature coordinates are GeoJSON-style nested arrays. While a feature is
resident in the registry they are expressed in the display CRS; the
geographic CRS only appears at codec and network boundaries.

A layer's source is one of a closed set of variants: ``VectorSource``
(features held in memory) or ``RasterSource`` (tile-backed, rendered by the
external engine). Use ``Layer.has_vector_source`` rather than isinstance
checks at call sites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from shapely.errors import ShapelyError
from shapely.geometry import shape

from geoengine.geo.transform import geometry_extent, merge_extents


class Origin(str, Enum):
    FILE = "file"
    WMS = "wms"
    WFS = "wfs"
    OSM = "osm"
    STAC = "stac"
    SCRATCH = "scratch"
    EXTRACTION = "extraction"


class GeometryKind(str, Enum):
    VECTOR = "vector"
    RASTER = "raster"


POINT_TYPES = ("Point", "MultiPoint")
LINE_TYPES = ("LineString", "MultiLineString")
POLYGON_TYPES = ("Polygon", "MultiPolygon")


def build_shape(geometry_type: str, coordinates):
    """Shapely geometry for GeoJSON-style ``coordinates``.

    Raises:
        ValueError: If the coordinates do not form a non-empty geometry of
            that type (a one-position line, a ring under four positions).
    """
    try:
        geom = shape({"type": geometry_type, "coordinates": coordinates})
    except (ShapelyError, TypeError, IndexError, ValueError) as e:
        raise ValueError(f"Invalid {geometry_type} coordinates: {e}") from e
    if geom.is_empty:
        raise ValueError(f"Empty {geometry_type} geometry")
    return geom


def is_valid_geometry(geometry_type: str, coordinates) -> bool:
    try:
        build_shape(geometry_type, coordinates)
    except ValueError:
        return False
    return True


@dataclass
class LayerFeature:
    """A single feature (point, line, polygon or Multi- variant) within a layer.

    Attributes:
        feature_id: Identifier of the feature inside its layer.
        geometry_type: GeoJSON geometry type name.
        coordinates: GeoJSON-style coordinate arrays.
        properties: Scalar attributes of the feature.
        style: Optional rendering hints (color, lineWidth, fillColor).
        geometry_name: Name under which the geometry may also appear in
            ``properties``; it is never reported as an attribute.
    """

    feature_id: str
    geometry_type: str
    coordinates: list
    properties: dict
    style: dict | None = None
    geometry_name: str = "geometry"

    def attributes(self) -> dict:
        """Properties without the geometry field or its alias."""
        return {
            key: value
            for key, value in self.properties.items()
            if key not in ("geometry", self.geometry_name)
        }

    @property
    def extent(self):
        return geometry_extent(self.coordinates)

    def to_shape(self):
        return build_shape(self.geometry_type, self.coordinates)

    def to_geojson(self) -> dict:
        return {
            "type": "Feature",
            "id": self.feature_id,
            "geometry": {"type": self.geometry_type, "coordinates": self.coordinates},
            "properties": self.attributes(),
        }


@dataclass
class VectorSource:
    """In-memory feature collection."""

    features: list[LayerFeature] = field(default_factory=list)

    @property
    def extent(self):
        return merge_extents(f.extent for f in self.features)


@dataclass
class RasterSource:
    """Tile-backed source; the renderer fetches tiles from ``url`` with ``params``."""

    url: str
    params: dict = field(default_factory=dict)
    service: str = "WMS"


LayerSource = Union[VectorSource, RasterSource]


@dataclass
class Layer:
    """A named entry of the layer registry.

    Attributes:
        layer_id: Unique identifier for this layer.
        name: Human-readable display name.
        source: VectorSource or RasterSource.
        origin: Where the layer came from (file, wms, wfs, osm, ...).
        visible: Whether the layer is currently rendered.
        opacity: Rendering opacity (0.0 to 1.0).
        z_index: Draw order (higher = on top); assigned by the registry.
        style: Layer-wide rendering hints (OSM categories carry one).
        remote_name: Remote layer name for WMS/WFS layers.
        metadata: Arbitrary key-value metadata about the layer.
    """

    layer_id: str
    name: str
    source: LayerSource
    origin: Origin = Origin.FILE
    visible: bool = True
    opacity: float = 1.0
    z_index: int = 0
    style: dict | None = None
    remote_name: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def geometry_kind(self) -> GeometryKind:
        return GeometryKind.VECTOR if self.has_vector_source else GeometryKind.RASTER

    @property
    def has_vector_source(self) -> bool:
        return isinstance(self.source, VectorSource)

    @property
    def features(self) -> list[LayerFeature]:
        """Features of a vector layer; empty for tile layers."""
        if isinstance(self.source, VectorSource):
            return self.source.features
        return []

    def summary(self) -> dict:
        return {
            "id": self.layer_id,
            "name": self.name,
            "geometryKind": self.geometry_kind.value,
            "origin": self.origin.value,
            "visible": self.visible,
            "opacity": self.opacity,
            "zIndex": self.z_index,
            "featureCount": len(self.features),
            "remoteName": self.remote_name,
        }


@dataclass
class DiscoveredLayer:
    """A remote layer advertised by a capabilities document."""

    remote_name: str
    title: str
    wms_added: bool = False
    wfs_added: bool = False
