"""Coordinate transforms between the geographic CRS and the display CRS.

Pure functions. Coordinates follow the GeoJSON convention: [x, y] or
[x, y, z], i.e. [lng, lat] on the geographic side. The optional third
ordinate passes through untouched.

Extents are (minx, miny, maxx, maxy) in either CRS.
"""

from __future__ import annotations

import math
from functools import lru_cache

from pyproj import Transformer

GEOGRAPHIC = "EPSG:4326"
DISPLAY = "EPSG:3857"

Extent = tuple[float, float, float, float]


@lru_cache(maxsize=16)
def _transformer(src: str, dst: str) -> Transformer:
    return Transformer.from_crs(src, dst, always_xy=True)


def transform_point(x: float, y: float, src: str, dst: str) -> tuple[float, float]:
    if src == dst:
        return x, y
    tx, ty = _transformer(src, dst).transform(x, y)
    return float(tx), float(ty)


def to_display(lng: float, lat: float, display_crs: str = DISPLAY) -> tuple[float, float]:
    """lon/lat -> display CRS."""
    return transform_point(lng, lat, GEOGRAPHIC, display_crs)


def to_geographic(x: float, y: float, display_crs: str = DISPLAY) -> tuple[float, float]:
    """Display CRS -> lon/lat."""
    return transform_point(x, y, display_crs, GEOGRAPHIC)


def transform_extent(extent: Extent, src: str, dst: str) -> Extent:
    """Transform an extent, densifying its edges so curved borders are covered."""
    if src == dst:
        return tuple(float(v) for v in extent)  # type: ignore[return-value]
    minx, miny, maxx, maxy = _transformer(src, dst).transform_bounds(
        *extent, densify_pts=21
    )
    return float(minx), float(miny), float(maxx), float(maxy)


def _is_position(value) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and isinstance(value[0], (int, float))
        and isinstance(value[1], (int, float))
    )


def transform_coordinates(coordinates, src: str, dst: str):
    """Recursively transform a GeoJSON-style nested coordinate array."""
    if src == dst:
        return coordinates
    transformer = _transformer(src, dst)

    def _walk(node):
        if _is_position(node):
            x, y = transformer.transform(node[0], node[1])
            return [float(x), float(y), *node[2:]]
        return [_walk(child) for child in node]

    return _walk(coordinates)


def transform_geometry(geometry_type: str, coordinates, src: str, dst: str):
    """Transform the coordinates of one geometry. Returns the new coordinates."""
    if geometry_type not in GEOMETRY_TYPES:
        raise ValueError(f"Unsupported geometry type: {geometry_type}")
    return transform_coordinates(coordinates, src, dst)


GEOMETRY_TYPES = (
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
)


def iter_positions(coordinates):
    """Yield every [x, y, ...] position of a nested coordinate array."""
    if _is_position(coordinates):
        yield coordinates
        return
    for child in coordinates or []:
        yield from iter_positions(child)


def geometry_extent(coordinates) -> Extent | None:
    """Bounding box of a nested coordinate array, None when it holds no positions."""
    minx = miny = math.inf
    maxx = maxy = -math.inf
    found = False
    for pos in iter_positions(coordinates):
        found = True
        minx = min(minx, pos[0])
        miny = min(miny, pos[1])
        maxx = max(maxx, pos[0])
        maxy = max(maxy, pos[1])
    if not found:
        return None
    return minx, miny, maxx, maxy


def merge_extents(extents) -> Extent | None:
    merged: Extent | None = None
    for ext in extents:
        if ext is None:
            continue
        if merged is None:
            merged = ext
        else:
            merged = (
                min(merged[0], ext[0]),
                min(merged[1], ext[1]),
                max(merged[2], ext[2]),
                max(merged[3], ext[3]),
            )
    return merged


def extents_intersect(a: Extent, b: Extent) -> bool:
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def is_finite_extent(extent) -> bool:
    return extent is not None and all(math.isfinite(v) for v in extent)
