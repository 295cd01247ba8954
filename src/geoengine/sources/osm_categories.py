"""Static catalog of OpenStreetMap feature categories.

Each category contributes one or more Overpass statements to the combined
query, a tag matcher used to split the combined response back into
categories, and a fixed style for the resulting layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class OSMCategory:
    category_id: str
    name: str
    statements: tuple[str, ...]
    matcher: Callable[[dict], bool]
    style: dict

    def query_fragment(self, bbox: str) -> str:
        """Overpass statements for this category, bound to ``s,w,n,e``."""
        return "\n".join(f"{statement}({bbox});" for statement in self.statements)

    def matches(self, tags: dict | None) -> bool:
        return bool(tags) and bool(self.matcher(tags))


def _circle(color: str) -> dict:
    return {"circle": {"radius": 6, "fill": color, "stroke": "white", "strokeWidth": 1.5}}


OSM_CATEGORIES: tuple[OSMCategory, ...] = (
    OSMCategory(
        "watercourses",
        "OSM Watercourses",
        ('nwr[waterway~"^(river|stream|canal)$"]',),
        lambda t: t.get("waterway") in ("river", "stream", "canal"),
        {"stroke": "#3a86ff", "strokeWidth": 2},
    ),
    OSMCategory(
        "water_bodies",
        "OSM Water Bodies",
        ('nwr[natural="water"]', 'nwr[landuse="reservoir"]'),
        lambda t: t.get("natural") == "water" or t.get("landuse") == "reservoir",
        {"fill": "rgba(58,134,255,0.4)", "stroke": "#3a86ff", "strokeWidth": 1},
    ),
    OSMCategory(
        "roads_paths",
        "OSM Roads and Paths",
        ("nwr[highway]",),
        lambda t: bool(t.get("highway")),
        {"stroke": "#adb5bd", "strokeWidth": 3},
    ),
    OSMCategory(
        "admin_boundaries",
        "OSM Administrative Boundaries",
        ('nwr[boundary="administrative"][admin_level]',),
        lambda t: t.get("boundary") == "administrative" and bool(t.get("admin_level")),
        {"stroke": "#ff006e", "strokeWidth": 2, "lineDash": [4, 8]},
    ),
    OSMCategory(
        "green_areas",
        "OSM Green Areas",
        ('nwr[leisure="park"]', 'nwr[landuse="forest"]', 'nwr[natural="wood"]'),
        lambda t: (
            t.get("leisure") == "park"
            or t.get("landuse") == "forest"
            or t.get("natural") == "wood"
        ),
        {"fill": "rgba(13,166,75,0.4)", "stroke": "#0da64b", "strokeWidth": 1},
    ),
    OSMCategory(
        "health_centers",
        "OSM Health Centers",
        ('nwr[amenity~"^(hospital|clinic|doctors|pharmacy)$"]',),
        lambda t: t.get("amenity") in ("hospital", "clinic", "doctors", "pharmacy"),
        _circle("#d90429"),
    ),
    OSMCategory(
        "educational",
        "OSM Educational",
        ('nwr[amenity~"^(school|university|college|kindergarten)$"]',),
        lambda t: t.get("amenity") in ("school", "university", "college", "kindergarten"),
        _circle("#8338ec"),
    ),
    OSMCategory(
        "social_institutions",
        "OSM Social Institutions",
        (
            'nwr[amenity~"^(community_centre|social_facility|place_of_worship)$"]',
            'nwr[office="ngo"]',
            'nwr[leisure="club"]',
        ),
        lambda t: (
            t.get("amenity") in ("community_centre", "social_facility", "place_of_worship")
            or t.get("office") == "ngo"
            or t.get("leisure") == "club"
        ),
        _circle("#ff6b6b"),
    ),
    OSMCategory(
        "cultural_heritage",
        "OSM Cultural Heritage",
        (
            "nwr[historic]",
            'nwr[tourism="museum"]',
            'nwr[tourism="artwork"]',
            'nwr[amenity="place_of_worship"][historic]',
            'nwr[amenity="place_of_worship"][heritage]',
        ),
        lambda t: (
            bool(t.get("historic"))
            or t.get("tourism") in ("museum", "artwork")
            or (t.get("amenity") == "place_of_worship" and bool(t.get("heritage")))
        ),
        _circle("#8d6e63"),
    ),
)

CATEGORIES_BY_ID: dict[str, OSMCategory] = {c.category_id: c for c in OSM_CATEGORIES}
