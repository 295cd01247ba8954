"""Export features to a GeoJSON FeatureCollection dict (RFC 7946).

Uses only stdlib json. Geometry aliases never appear in the properties.
"""

from __future__ import annotations

from geoengine.layers.layer import LayerFeature


def export_geojson(features: list[LayerFeature], name: str | None = None) -> dict:
    """Export features to a GeoJSON FeatureCollection dict.

    Args:
        features: Features in lon/lat.
        name: Optional collection name (a common, non-standard member).

    Returns:
        Dict representing a valid GeoJSON FeatureCollection.
    """
    collection: dict = {
        "type": "FeatureCollection",
        "features": [feature.to_geojson() for feature in features],
    }
    if name:
        collection["name"] = name
    return collection
