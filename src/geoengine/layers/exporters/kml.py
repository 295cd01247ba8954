"""Export features to a KML 2.2 XML string.

Uses only xml.etree.ElementTree (stdlib).
KML coordinates are in "lng,lat,alt" order (longitude first).
Attributes other than name/description are written as ExtendedData.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET

from geoengine.layers.layer import LayerFeature

KML_NS = "http://www.opengis.net/kml/2.2"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def export_kml(features: list[LayerFeature], name: str = "") -> str:
    """Export features to a KML XML string.

    Args:
        features: Features in lon/lat.
        name: Document name.

    Returns:
        KML XML string.
    """
    kml = ET.Element("kml")
    kml.set("xmlns", KML_NS)

    doc = ET.SubElement(kml, "Document")
    if name:
        ET.SubElement(doc, "name").text = name

    for feature in features:
        pm = ET.SubElement(doc, "Placemark")
        _write_placemark(pm, feature)

    return XML_DECLARATION + ET.tostring(kml, encoding="unicode")


def _write_placemark(pm: ET.Element, feature: LayerFeature) -> None:
    """Write a LayerFeature as a KML Placemark element."""
    attributes = feature.attributes()

    feat_name = attributes.get("name")
    if feat_name not in (None, ""):
        ET.SubElement(pm, "name").text = str(feat_name)

    desc = attributes.get("description")
    if desc:
        ET.SubElement(pm, "description").text = str(desc)

    extra = {k: v for k, v in attributes.items() if k not in ("name", "description")}
    if extra:
        ext = ET.SubElement(pm, "ExtendedData")
        for key, value in extra.items():
            data = ET.SubElement(ext, "Data", name=str(key))
            ET.SubElement(data, "value").text = _value_text(value)

    if feature.style:
        _write_style(pm, feature.style)

    _write_geometry(pm, feature.geometry_type, feature.coordinates)


def _value_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _write_style(pm: ET.Element, style: dict) -> None:
    """Write a Style element from a style dict."""
    style_elem = ET.SubElement(pm, "Style")

    if "color" in style:
        icon_style = ET.SubElement(style_elem, "IconStyle")
        ET.SubElement(icon_style, "color").text = str(style["color"])

    if "lineWidth" in style:
        line_style = ET.SubElement(style_elem, "LineStyle")
        ET.SubElement(line_style, "width").text = str(style["lineWidth"])

    if "fillColor" in style:
        poly_style = ET.SubElement(style_elem, "PolyStyle")
        ET.SubElement(poly_style, "color").text = str(style["fillColor"])


def _coords_to_string(coord: list[float]) -> str:
    """Convert a single [lng, lat, alt] or [lng, lat] to 'lng,lat[,alt]'."""
    return ",".join(repr(float(v)) for v in coord[:3])


def _write_geometry(parent: ET.Element, geometry_type: str, coordinates) -> None:
    if geometry_type == "Point":
        point = ET.SubElement(parent, "Point")
        ET.SubElement(point, "coordinates").text = _coords_to_string(coordinates)
    elif geometry_type == "LineString":
        ls = ET.SubElement(parent, "LineString")
        ET.SubElement(ls, "coordinates").text = " ".join(
            _coords_to_string(c) for c in coordinates
        )
    elif geometry_type == "Polygon":
        _write_polygon(parent, coordinates)
    elif geometry_type.startswith("Multi"):
        multi = ET.SubElement(parent, "MultiGeometry")
        member_type = geometry_type[len("Multi"):]
        for part in coordinates:
            _write_geometry(multi, member_type, part)


def _write_polygon(parent: ET.Element, coordinates: list) -> None:
    """Write a Polygon geometry element."""
    polygon = ET.SubElement(parent, "Polygon")
    for idx, ring_coords in enumerate(coordinates):
        boundary = ET.SubElement(
            polygon, "outerBoundaryIs" if idx == 0 else "innerBoundaryIs"
        )
        ring = ET.SubElement(boundary, "LinearRing")
        ET.SubElement(ring, "coordinates").text = " ".join(
            _coords_to_string(c) for c in ring_coords
        )
