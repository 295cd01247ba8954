"""Parse GeoJSON (RFC 7946) into features using stdlib json.

Handles FeatureCollection, Feature and bare geometry objects with
Point/LineString/Polygon geometries and their Multi- variants.
Passes through the properties dict. A legacy ``crs`` member, when present,
is reported so the codec can reproject from it instead of lon/lat.
Features whose coordinates do not form a geometry are skipped and counted.
"""

from __future__ import annotations

import json

from geoengine.geo.transform import GEOMETRY_TYPES
from geoengine.layers.layer import LayerFeature, is_valid_geometry
from geoengine.layers.parsers import FeatureCollection


def parse_geojson(geojson: str | bytes | dict) -> FeatureCollection:
    """Parse GeoJSON text (or an already-decoded dict).

    Raises:
        ValueError: If the content is not JSON or not a GeoJSON object.
    """
    if isinstance(geojson, dict):
        data = geojson
    else:
        try:
            data = json.loads(geojson)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            raise ValueError(f"Invalid GeoJSON: {e}") from e

    if not isinstance(data, dict) or "type" not in data:
        raise ValueError("Invalid GeoJSON: top-level object has no 'type'")

    gj_type = data.get("type")
    if gj_type == "FeatureCollection":
        raw_features = data.get("features")
        if not isinstance(raw_features, list):
            raise ValueError("Invalid GeoJSON: FeatureCollection without a features array")
    elif gj_type == "Feature":
        raw_features = [data]
    elif gj_type in GEOMETRY_TYPES:
        raw_features = [{"type": "Feature", "geometry": data, "properties": {}}]
    else:
        raise ValueError(f"Invalid GeoJSON: unsupported type {gj_type!r}")

    features: list[LayerFeature] = []
    skipped = 0
    for idx, raw in enumerate(raw_features):
        feature = _parse_feature(raw, idx)
        if feature is None:
            continue
        if is_valid_geometry(feature.geometry_type, feature.coordinates):
            features.append(feature)
        else:
            skipped += 1

    name = data.get("name", "")
    return FeatureCollection(
        name=name if isinstance(name, str) else "",
        features=features,
        crs=_declared_crs(data),
        skipped=skipped,
    )


def _parse_feature(raw: dict, idx: int) -> LayerFeature | None:
    """Parse a single GeoJSON Feature dict into a LayerFeature."""
    if not isinstance(raw, dict):
        return None

    geometry = raw.get("geometry")
    if not isinstance(geometry, dict):
        return None

    geom_type = geometry.get("type", "")
    coordinates = geometry.get("coordinates")

    if geom_type not in GEOMETRY_TYPES or not coordinates:
        return None

    properties = raw.get("properties") or {}
    if not isinstance(properties, dict):
        properties = {}

    feature_id = raw.get("id", f"geojson-{idx}")
    if not isinstance(feature_id, str):
        feature_id = str(feature_id)

    return LayerFeature(
        feature_id=feature_id,
        geometry_type=geom_type,
        coordinates=coordinates,
        properties=dict(properties),
    )


def _declared_crs(data: dict) -> str | None:
    """EPSG code from a legacy ``crs`` member, e.g. urn:ogc:def:crs:EPSG::3857."""
    crs = data.get("crs")
    if not isinstance(crs, dict):
        return None
    name = (crs.get("properties") or {}).get("name", "")
    if not isinstance(name, str) or not name:
        return None
    if "CRS84" in name.upper():
        return "EPSG:4326"
    code = name.rsplit(":", 1)[-1]
    if code.isdigit():
        return f"EPSG:{code}"
    return None
