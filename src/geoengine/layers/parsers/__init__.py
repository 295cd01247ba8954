"""Format parsers: KML, GeoJSON, shapefile pairs and Overpass JSON.

Parsers return features in the geographic CRS exactly as the source
declares them. Reprojection into the display CRS is the codec's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from geoengine.layers.layer import LayerFeature


@dataclass
class FeatureCollection:
    """Decoded features plus the collection name found in the source, if any.

    ``skipped`` counts features dropped for degenerate geometry.
    """

    name: str = ""
    features: list[LayerFeature] = field(default_factory=list)
    crs: str | None = None
    skipped: int = 0
