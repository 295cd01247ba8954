"""Coordinate reference system helpers."""

from geoengine.geo.transform import (
    DISPLAY,
    GEOGRAPHIC,
    geometry_extent,
    to_display,
    to_geographic,
    transform_extent,
    transform_geometry,
)

__all__ = [
    "DISPLAY",
    "GEOGRAPHIC",
    "geometry_extent",
    "to_display",
    "to_geographic",
    "transform_extent",
    "transform_geometry",
]
