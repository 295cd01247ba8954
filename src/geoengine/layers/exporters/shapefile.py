"""Export features to a ZIP archive of ESRI shapefiles.

A shapefile dataset holds a single geometry type, so each source layer is
partitioned into points, lines and polygons, and every non-empty partition
becomes its own dataset (``<layer>_points.shp`` ...) inside the archive.

DBF field names are limited to 10 characters: attribute keys are reduced to
``[A-Za-z0-9_]{1,10}`` and collisions get a numeric suffix.
"""

from __future__ import annotations

import io
import json
import re
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

import geopandas as gpd
from loguru import logger

from geoengine.errors import EmptyResult
from geoengine.layers.layer import LINE_TYPES, POINT_TYPES, POLYGON_TYPES, LayerFeature

FIELD_NAME_LIMIT = 10
DBF_TEXT_LIMIT = 254
ARCHIVE_FOLDER = "shapefiles"

_PARTITIONS = (
    ("points", POINT_TYPES),
    ("lines", LINE_TYPES),
    ("polygons", POLYGON_TYPES),
)


@dataclass
class ShapefilePartition:
    """Geometry-homogeneous slice of one source layer."""

    member: str
    kind: str
    features: list[LayerFeature] = field(default_factory=list)


def sanitize_layer_name(name: str, limit: int = 50) -> str:
    cleaned = re.sub(r"[^\w-]", "_", name or "").strip("_")
    return (cleaned or "layer")[:limit]


def sanitize_field_names(keys) -> dict[str, str]:
    """Map attribute keys to unique DBF-safe field names, in first-seen order."""
    mapping: dict[str, str] = {}
    used: set[str] = set()
    fallback = 0
    for key in keys:
        if key in mapping:
            continue
        candidate = re.sub(r"[^A-Za-z0-9_]", "", str(key))[:FIELD_NAME_LIMIT]
        if not candidate:
            candidate = f"prop{fallback}"
            fallback += 1
        base = candidate
        counter = 0
        while candidate.lower() in used:
            counter += 1
            suffix = str(counter)
            candidate = f"{base[:FIELD_NAME_LIMIT - len(suffix)]}{suffix}"
        used.add(candidate.lower())
        mapping[key] = candidate
    return mapping


def partition_features(layer_name: str, features: list[LayerFeature]) -> list[ShapefilePartition]:
    """Split one layer's features by geometry kind, dropping empty partitions."""
    base = sanitize_layer_name(layer_name)
    partitions = []
    for kind, types in _PARTITIONS:
        members = [f for f in features if f.geometry_type in types and f.coordinates]
        if members:
            partitions.append(ShapefilePartition(f"{base}_{kind}", kind, members))
    return partitions


def export_shapefile_zip(layers: list[tuple[str, list[LayerFeature]]]) -> bytes:
    """Write every (layer name, lon/lat features) pair as zipped shapefiles.

    Raises:
        EmptyResult: If no partition holds a feature; nothing is written.
    """
    partitions: list[ShapefilePartition] = []
    seen: set[str] = set()
    for layer_name, features in layers:
        for part in partition_features(layer_name, features):
            member = part.member
            n = 1
            while member in seen:
                n += 1
                member = f"{part.member}_{n}"
            part.member = member
            seen.add(member)
            partitions.append(part)

    if not partitions:
        raise EmptyResult("No valid features to export as shapefile.")

    buffer = io.BytesIO()
    with tempfile.TemporaryDirectory(prefix="shp-export-") as tmp, zipfile.ZipFile(
        buffer, "w", zipfile.ZIP_DEFLATED
    ) as archive:
        for part in partitions:
            _to_geodataframe(part).to_file(
                Path(tmp) / f"{part.member}.shp",
                driver="ESRI Shapefile",
                engine="pyogrio",
                encoding="UTF-8",
            )
            for path in sorted(Path(tmp).glob(f"{part.member}.*")):
                archive.write(path, f"{ARCHIVE_FOLDER}/{path.name}")
            logger.debug(f"Shapefile member {part.member}: {len(part.features)} features")

    return buffer.getvalue()


def _to_geodataframe(part: ShapefilePartition) -> gpd.GeoDataFrame:
    keys: list[str] = []
    for feature in part.features:
        keys.extend(feature.attributes().keys())
    mapping = sanitize_field_names(keys)

    columns: dict[str, list] = {name: [] for name in mapping.values()}
    for feature in part.features:
        attrs = feature.attributes()
        for key, name in mapping.items():
            columns[name].append(_dbf_value(attrs.get(key)))

    data = {name: _column(values) for name, values in columns.items()}
    geometries = [f.to_shape() for f in part.features]
    return gpd.GeoDataFrame(data, geometry=geometries, crs="EPSG:4326")


def _dbf_value(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "T" if value else "F"
    if isinstance(value, (dict, list, tuple)):
        try:
            value = json.dumps(value)
        except (TypeError, ValueError):
            value = "SerializationError"
    if isinstance(value, (int, float)):
        return value
    text = str(value)
    return text[:DBF_TEXT_LIMIT]


def _column(values: list) -> list:
    """Keep numeric columns numeric; anything mixed is written as text."""
    non_empty = [v for v in values if v != ""]
    if non_empty and all(isinstance(v, (int, float)) for v in non_empty):
        return [None if v == "" else v for v in values]
    return ["" if v == "" else str(v) for v in values]
