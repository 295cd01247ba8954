"""Map layer system: registry, layer model and the import/export codec.

Imports KML, KMZ, GeoJSON and shapefiles (loose or zipped); exports GeoJSON,
KML and zipped shapefiles.
"""

from geoengine.layers.layer import DiscoveredLayer, Layer, LayerFeature, Origin, RasterSource, VectorSource
from geoengine.layers.registry import LayerDiff, LayerRegistry

__all__ = [
    "DiscoveredLayer",
    "Layer",
    "LayerDiff",
    "LayerFeature",
    "LayerRegistry",
    "Origin",
    "RasterSource",
    "VectorSource",
]
