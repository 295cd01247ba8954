"""Parse KML 2.2 XML into features using xml.etree.ElementTree.

Handles Placemark/Point, LineString, Polygon and MultiGeometry.
Placemarks with degenerate geometry (a ring under four positions) are skipped.
Extracts name, description, ExtendedData and inline styles
(IconStyle/color, LineStyle/width, PolyStyle/color).
KML coordinate format: "lng,lat,alt lng,lat,alt" (longitude first).
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

from geoengine.layers.layer import LayerFeature, is_valid_geometry
from geoengine.layers.parsers import FeatureCollection

_SINGLE_TO_MULTI = {
    "Point": "MultiPoint",
    "LineString": "MultiLineString",
    "Polygon": "MultiPolygon",
}


def parse_kml(kml_string: str | bytes) -> FeatureCollection:
    """Parse a KML document.

    Args:
        kml_string: Raw KML XML content.

    Returns:
        FeatureCollection with lon/lat features.

    Raises:
        ValueError: If the text is not well-formed XML or has no kml root.
    """
    try:
        root = ET.fromstring(kml_string)
    except ET.ParseError as e:
        raise ValueError(f"Invalid KML: {e}") from e

    ns = _detect_namespace(root)
    if _local(root.tag) not in ("kml", "Document", "Folder", "Placemark"):
        raise ValueError(f"Invalid KML: unexpected root element <{_local(root.tag)}>")

    doc_name = ""
    doc = root.find(f"{ns}Document")
    if doc is not None:
        doc_name = _get_direct_text(doc, "name", ns)

    features: list[LayerFeature] = []
    skipped = 0
    for idx, pm in enumerate(root.iter(f"{ns}Placemark")):
        feature = _parse_placemark(pm, ns, idx)
        if feature is None:
            continue
        if is_valid_geometry(feature.geometry_type, feature.coordinates):
            features.append(feature)
        else:
            skipped += 1

    return FeatureCollection(name=doc_name, features=features, skipped=skipped)


def _detect_namespace(root: ET.Element) -> str:
    """Detect KML namespace from root element tag."""
    tag = root.tag
    if "{" in tag:
        return tag.split("}")[0] + "}"
    return ""


def _local(tag: str) -> str:
    return tag.split("}")[-1]


def _parse_placemark(pm: ET.Element, ns: str, idx: int) -> LayerFeature | None:
    """Parse a single Placemark element into a LayerFeature."""
    properties: dict = {}
    name = _get_direct_text(pm, "name", ns)
    if name:
        properties["name"] = name
    description = _get_direct_text(pm, "description", ns)
    if description:
        properties["description"] = description
    properties.update(_parse_extended_data(pm, ns))

    geometry = _parse_geometry_container(pm, ns)
    if geometry is None:
        return None
    geometry_type, coordinates = geometry

    style = _parse_style(pm, ns)
    feature_id = pm.get("id") or f"kml-{idx}"
    return LayerFeature(
        feature_id=feature_id,
        geometry_type=geometry_type,
        coordinates=coordinates,
        properties=properties,
        style=style or None,
    )


def _parse_geometry_container(parent: ET.Element, ns: str):
    """First geometry child of a Placemark as (geometry_type, coordinates)."""
    for child in parent:
        kind = _local(child.tag)
        if kind == "Point":
            coords = _parse_coordinates(child, ns)
            if coords:
                return "Point", coords[0]
        elif kind == "LineString":
            coords = _parse_coordinates(child, ns)
            if len(coords) >= 2:
                return "LineString", coords
        elif kind == "Polygon":
            rings = _parse_polygon_rings(child, ns)
            if rings:
                return "Polygon", rings
        elif kind == "MultiGeometry":
            return _parse_multi_geometry(child, ns)
    return None


def _parse_multi_geometry(multi: ET.Element, ns: str):
    """Collapse MultiGeometry members into one Multi- geometry.

    Members of a different kind than the first one are dropped.
    """
    members = []
    for child in multi:
        parsed = _parse_geometry_container_single(child, ns)
        if parsed is not None:
            members.append(parsed)
    if not members:
        return None
    first_kind = members[0][0]
    if first_kind.startswith("Multi"):
        first_kind = first_kind[len("Multi"):]
    parts = []
    for kind, coords in members:
        if kind == first_kind:
            parts.append(coords)
        elif kind == _SINGLE_TO_MULTI.get(first_kind):
            parts.extend(coords)
    return _SINGLE_TO_MULTI[first_kind], parts


def _parse_geometry_container_single(elem: ET.Element, ns: str):
    wrapper = ET.Element("wrapper")
    wrapper.append(elem)
    return _parse_geometry_container(wrapper, ns)


def _get_direct_text(parent: ET.Element, tag: str, ns: str) -> str:
    elem = parent.find(f"{ns}{tag}")
    if elem is not None and elem.text:
        return elem.text.strip()
    return ""


def _get_text(parent: ET.Element, tag: str, ns: str) -> str:
    elem = parent.find(f".//{ns}{tag}")
    if elem is not None and elem.text:
        return elem.text.strip()
    return ""


def _parse_extended_data(pm: ET.Element, ns: str) -> dict:
    """<Data name><value> and <SchemaData><SimpleData name> pairs."""
    props: dict = {}
    ext = pm.find(f"{ns}ExtendedData")
    if ext is None:
        return props
    for data in ext.iter(f"{ns}Data"):
        key = data.get("name")
        if key:
            props[key] = _get_direct_text(data, "value", ns)
    for simple in ext.iter(f"{ns}SimpleData"):
        key = simple.get("name")
        if key:
            props[key] = (simple.text or "").strip()
    return props


def _parse_coordinate_string(coord_str: str) -> list[list[float]]:
    """Parse KML coordinate string: 'lng,lat,alt lng,lat,alt ...'

    Returns list of [lng, lat] or [lng, lat, alt] arrays.
    """
    coords = []
    for token in coord_str.strip().split():
        parts = token.strip().split(",")
        if len(parts) >= 2:
            try:
                position = [float(parts[0]), float(parts[1])]
                if len(parts) >= 3 and parts[2] != "":
                    position.append(float(parts[2]))
                coords.append(position)
            except ValueError:
                continue
    return coords


def _parse_coordinates(geom_elem: ET.Element, ns: str) -> list[list[float]]:
    coord_elem = geom_elem.find(f".//{ns}coordinates")
    if coord_elem is None or not coord_elem.text:
        return []
    return _parse_coordinate_string(coord_elem.text)


def _parse_polygon_rings(polygon_elem: ET.Element, ns: str) -> list[list[list[float]]]:
    """Parse polygon rings (outer boundary + optional inner boundaries)."""
    rings = []

    outer = polygon_elem.find(f"{ns}outerBoundaryIs")
    if outer is not None:
        coords = _parse_coordinates(outer, ns)
        if coords:
            rings.append(coords)
    if not rings:
        return []

    for inner in polygon_elem.findall(f"{ns}innerBoundaryIs"):
        coords = _parse_coordinates(inner, ns)
        if coords:
            rings.append(coords)

    return rings


def _parse_style(pm: ET.Element, ns: str) -> dict:
    """Parse inline Style element from a Placemark."""
    style_elem = pm.find(f"{ns}Style")
    if style_elem is None:
        return {}

    style: dict = {}

    icon_style = style_elem.find(f"{ns}IconStyle")
    if icon_style is not None:
        color = _get_text(icon_style, "color", ns)
        if color:
            style["color"] = color

    line_style = style_elem.find(f"{ns}LineStyle")
    if line_style is not None:
        width_str = _get_text(line_style, "width", ns)
        if width_str:
            try:
                style["lineWidth"] = float(width_str)
            except ValueError:
                pass

    poly_style = style_elem.find(f"{ns}PolyStyle")
    if poly_style is not None:
        color = _get_text(poly_style, "color", ns)
        if color:
            style["fillColor"] = color

    return style
