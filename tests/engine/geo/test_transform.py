"""Tests for CRS helpers (pyproj)."""

import math

import pytest

from geoengine.geo.transform import (
    DISPLAY,
    GEOGRAPHIC,
    extents_intersect,
    geometry_extent,
    is_finite_extent,
    merge_extents,
    to_display,
    to_geographic,
    transform_extent,
    transform_geometry,
)

HALF_WORLD = 20037508.342789244


@pytest.mark.unit
class TestPointTransforms:
    def test_origin_maps_to_origin(self):
        x, y = to_display(0.0, 0.0)
        assert abs(x) < 1e-6 and abs(y) < 1e-6

    def test_antimeridian_x(self):
        x, _ = to_display(180.0, 0.0)
        assert x == pytest.approx(HALF_WORLD, rel=1e-9)

    def test_round_trip(self):
        lng, lat = to_geographic(*to_display(-122.4194, 37.7749))
        assert lng == pytest.approx(-122.4194, abs=1e-9)
        assert lat == pytest.approx(37.7749, abs=1e-9)


@pytest.mark.unit
class TestGeometryTransforms:
    def test_polygon_keeps_structure(self):
        coords = [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 0.0]]]
        out = transform_geometry("Polygon", coords, GEOGRAPHIC, DISPLAY)
        assert len(out) == 1 and len(out[0]) == 4
        assert out[0][1][0] == pytest.approx(111319.49, rel=1e-6)

    def test_altitude_preserved(self):
        out = transform_geometry("Point", [10.0, 20.0, 55.0], GEOGRAPHIC, DISPLAY)
        assert out[2] == 55.0

    def test_same_crs_is_identity(self):
        coords = [[1.0, 2.0], [3.0, 4.0]]
        assert transform_geometry("LineString", coords, DISPLAY, DISPLAY) is coords

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            transform_geometry("Circle", [0, 0], GEOGRAPHIC, DISPLAY)


@pytest.mark.unit
class TestExtents:
    def test_transform_extent_round_trip(self):
        ext = transform_extent((10.0, 5.0, 20.0, 15.0), GEOGRAPHIC, DISPLAY)
        back = transform_extent(ext, DISPLAY, GEOGRAPHIC)
        for a, b in zip(back, (10.0, 5.0, 20.0, 15.0)):
            assert a == pytest.approx(b, abs=1e-6)

    def test_geometry_extent_empty(self):
        assert geometry_extent([]) is None

    def test_merge_and_intersect(self):
        merged = merge_extents([(0, 0, 1, 1), None, (2, -1, 3, 0.5)])
        assert merged == (0, -1, 3, 1)
        assert extents_intersect((0, 0, 1, 1), (1, 1, 2, 2))
        assert not extents_intersect((0, 0, 1, 1), (1.1, 0, 2, 1))

    def test_is_finite_extent(self):
        assert is_finite_extent((0, 0, 1, 1))
        assert not is_finite_extent((0, math.inf, 1, 1))
        assert not is_finite_extent(None)
