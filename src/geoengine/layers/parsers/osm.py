"""Convert Overpass API JSON (``out geom``) into GeoJSON features.

  - node -> Point
  - way  -> Polygon when closed and tagged as an area, LineString otherwise
  - multipolygon relation -> MultiPolygon built from its closed outer/inner members
  - any other relation with way members -> MultiLineString

Feature properties are the OSM tags plus ``@id`` ("node/123", "way/45").
Elements without tags and without geometry (bare member nodes) are skipped.
"""

from __future__ import annotations

from geoengine.layers.layer import LayerFeature
from geoengine.layers.parsers import FeatureCollection

# Tags whose presence makes a closed way an area (osmtogeojson polygon rules, abridged)
_AREA_KEYS = {
    "building", "landuse", "leisure", "natural", "amenity", "area", "boundary",
    "place", "shop", "tourism", "historic", "water", "wetland", "military",
    "aeroway", "office", "craft", "man_made", "public_transport",
}
# Closed ways with these tags stay linear
_LINEAR_TAGS = {
    ("natural", "coastline"), ("natural", "cliff"), ("natural", "ridge"),
    ("natural", "tree_row"), ("man_made", "embankment"), ("man_made", "pipeline"),
    ("leisure", "track"), ("area", "no"),
}
_AREA_HIGHWAY = {"pedestrian", "rest_area", "services"}


def overpass_to_features(data: dict) -> FeatureCollection:
    """Decode an Overpass JSON response.

    Raises:
        ValueError: If ``data`` has no ``elements`` array.
    """
    elements = data.get("elements") if isinstance(data, dict) else None
    if not isinstance(elements, list):
        raise ValueError("Overpass response has no 'elements' array")

    features: list[LayerFeature] = []
    for el in elements:
        el_type = el.get("type")
        tags = el.get("tags") or {}
        feature = None
        if el_type == "node":
            if tags:
                feature = _node_feature(el, tags)
        elif el_type == "way":
            feature = _way_feature(el, tags)
        elif el_type == "relation":
            if tags:
                feature = _relation_feature(el, tags)
        if feature is not None:
            features.append(feature)

    return FeatureCollection(name="OpenStreetMap", features=features, crs="EPSG:4326")


def _properties(el: dict, tags: dict) -> dict:
    props = dict(tags)
    props["@id"] = f"{el.get('type')}/{el.get('id')}"
    return props


def _node_feature(el: dict, tags: dict) -> LayerFeature | None:
    lat = el.get("lat")
    lon = el.get("lon")
    if lat is None or lon is None:
        return None
    return LayerFeature(
        feature_id=f"node/{el.get('id')}",
        geometry_type="Point",
        coordinates=[lon, lat],
        properties=_properties(el, tags),
    )


def _way_coords(geometry) -> list[list[float]]:
    return [
        [pt["lon"], pt["lat"]]
        for pt in geometry or []
        if pt and pt.get("lat") is not None and pt.get("lon") is not None
    ]


def _is_area(tags: dict) -> bool:
    if any((k, v) in _LINEAR_TAGS for k, v in tags.items()):
        return False
    if tags.get("highway") in _AREA_HIGHWAY or tags.get("area") == "yes":
        return True
    return any(key in _AREA_KEYS for key in tags)


def _way_feature(el: dict, tags: dict) -> LayerFeature | None:
    if not tags:
        return None
    coords = _way_coords(el.get("geometry"))
    if len(coords) < 2:
        return None

    closed = len(coords) >= 4 and coords[0] == coords[-1]
    if closed and _is_area(tags):
        return LayerFeature(
            feature_id=f"way/{el.get('id')}",
            geometry_type="Polygon",
            coordinates=[coords],
            properties=_properties(el, tags),
        )
    return LayerFeature(
        feature_id=f"way/{el.get('id')}",
        geometry_type="LineString",
        coordinates=coords,
        properties=_properties(el, tags),
    )


def _relation_feature(el: dict, tags: dict) -> LayerFeature | None:
    ways = [
        (m.get("role") or "", _way_coords(m.get("geometry")))
        for m in el.get("members") or []
        if m.get("type") == "way"
    ]
    ways = [(role, coords) for role, coords in ways if len(coords) >= 2]
    if not ways:
        return None

    if tags.get("type") == "multipolygon":
        outers = [_close(c) for role, c in _join_rings(ways, "outer")]
        inners = [_close(c) for role, c in _join_rings(ways, "inner")]
        outers = [ring for ring in outers if len(ring) >= 4]
        if outers:
            polygons = [[ring] for ring in outers]
            # Holes go to the first outer ring; exact containment is not resolved
            polygons[0].extend(ring for ring in inners if len(ring) >= 4)
            return LayerFeature(
                feature_id=f"relation/{el.get('id')}",
                geometry_type="MultiPolygon",
                coordinates=polygons,
                properties=_properties(el, tags),
            )

    return LayerFeature(
        feature_id=f"relation/{el.get('id')}",
        geometry_type="MultiLineString",
        coordinates=[coords for _, coords in ways],
        properties=_properties(el, tags),
    )


def _close(coords: list[list[float]]) -> list[list[float]]:
    if coords and coords[0] != coords[-1]:
        return coords + [coords[0]]
    return coords


def _join_rings(ways, role: str):
    """Join way segments sharing endpoints into rings for one member role."""
    pending = [list(coords) for r, coords in ways if (r or "outer") == role]
    rings = []
    while pending:
        current = pending.pop(0)
        extended = True
        while current[0] != current[-1] and extended:
            extended = False
            for i, seg in enumerate(pending):
                if seg[0] == current[-1]:
                    current.extend(seg[1:])
                elif seg[-1] == current[-1]:
                    current.extend(list(reversed(seg))[1:])
                elif seg[-1] == current[0]:
                    current[:0] = seg[:-1]
                elif seg[0] == current[0]:
                    current[:0] = list(reversed(seg))[:-1]
                else:
                    continue
                pending.pop(i)
                extended = True
                break
        rings.append((role, current))
    return rings
