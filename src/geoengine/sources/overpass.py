"""Category-based OpenStreetMap fetch through the Overpass API.

A drawn polygon's bounding box is sent as one combined Overpass query built
from every selected category. The response is split back into categories
by tag matcher and each non-empty category becomes its own styled layer.
"""

from __future__ import annotations

import itertools
import json
from dataclasses import dataclass, field

import httpx
from loguru import logger

from geoengine.errors import (
    EmptyResult,
    InvalidBoundingBox,
    InvalidGeometryForOperation,
    RemoteServiceException,
)
from geoengine.geo.transform import DISPLAY, GEOGRAPHIC, is_finite_extent, transform_extent
from geoengine.layers.codec import reproject_features
from geoengine.layers.layer import Layer, LayerFeature, Origin, VectorSource
from geoengine.layers.parsers.osm import overpass_to_features
from geoengine.layers.registry import LayerRegistry
from geoengine.sources.base import SourceAdapter, raise_for_status
from geoengine.sources.osm_categories import CATEGORIES_BY_ID, OSM_CATEGORIES, OSMCategory

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_QUERY_TIMEOUT = 90


@dataclass
class CategoryFetchResult:
    """Layers registered by one fetch and the feature count per category."""

    layers: list[Layer] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def validate_bbox(west: float, south: float, east: float, north: float) -> None:
    """Reject malformed geographic boxes.

    E < W is accepted only when the span is at least 180 degrees, which is
    read as a box crossing the antimeridian.

    Raises:
        InvalidBoundingBox: On a non-finite value, N < S, or E < W.
    """
    bbox = (west, south, east, north)
    if not is_finite_extent(bbox):
        raise InvalidBoundingBox(f"Bounding box has non-finite values: {bbox}", bbox=bbox)
    if north < south:
        raise InvalidBoundingBox(
            f"Invalid bounding box (N < S): north {north} is less than south {south}.",
            bbox=bbox,
        )
    if east < west and abs(east - west) < 180:
        raise InvalidBoundingBox(
            f"Invalid bounding box (E < W): east {east} is less than west {west} "
            f"without crossing the antimeridian.",
            bbox=bbox,
        )


def bbox_string(west: float, south: float, east: float, north: float) -> str:
    """Overpass ``(s,w,n,e)`` filter string."""
    return f"{south:.6f},{west:.6f},{north:.6f},{east:.6f}"


def build_query(categories: list[OSMCategory], bbox: str, timeout: int = DEFAULT_QUERY_TIMEOUT) -> str:
    parts = "\n".join(category.query_fragment(bbox) for category in categories)
    return f"[out:json][timeout:{timeout}];\n(\n{parts}\n);\nout geom;"


class OverpassFetcher(SourceAdapter):
    """Fetch OSM categories inside a drawn polygon's bounding box."""

    service = "Overpass API"

    def __init__(
        self,
        registry: LayerRegistry,
        client: httpx.AsyncClient | None = None,
        url: str = DEFAULT_OVERPASS_URL,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
        display_crs: str = DISPLAY,
        **kwargs,
    ) -> None:
        super().__init__(registry, client, **kwargs)
        self.url = url
        self.query_timeout = query_timeout
        self.display_crs = display_crs
        self._layer_seq = itertools.count(1)

    @staticmethod
    def categories() -> list[dict]:
        return [{"id": c.category_id, "name": c.name} for c in OSM_CATEGORIES]

    async def fetch_categories(
        self, polygon: LayerFeature | None, category_ids: list[str]
    ) -> CategoryFetchResult | None:
        """Fetch the selected categories inside ``polygon``'s bounding box.

        Args:
            polygon: A drawn feature in the display CRS. Must be a Polygon.
            category_ids: Ids from the OSM category catalog.

        Returns:
            The registered layers, or None when another fetch is running.

        Raises:
            InvalidGeometryForOperation: No polygon, or a non-Polygon geometry.
            InvalidBoundingBox: The box fails the sanity checks.
            EmptyResult: No known category selected, or nothing matched.
            TransportFailure: Network or HTTP failure.
            RemoteServiceException: Overpass reported a query error.
        """
        if polygon is None or polygon.geometry_type != "Polygon":
            raise InvalidGeometryForOperation(
                "Fetching OpenStreetMap data requires a drawn polygon."
            )
        extent = polygon.extent
        if not is_finite_extent(extent) or extent[0] == extent[2] or extent[1] == extent[3]:
            raise InvalidBoundingBox(f"Drawn area has an invalid extent: {extent}", bbox=extent or ())
        west, south, east, north = (
            round(v, 6) for v in transform_extent(extent, self.display_crs, GEOGRAPHIC)
        )
        return await self.fetch_bbox((west, south, east, north), category_ids)

    async def fetch_bbox(
        self, bbox: tuple[float, float, float, float], category_ids: list[str]
    ) -> CategoryFetchResult | None:
        """Fetch the selected categories inside a geographic ``(w, s, e, n)`` box."""
        categories = [CATEGORIES_BY_ID[c] for c in category_ids if c in CATEGORIES_BY_ID]
        if not categories:
            raise EmptyResult("Select at least one OSM category to fetch.")
        validate_bbox(*bbox)

        if not self._claim():
            return None
        try:
            query = build_query(categories, bbox_string(*bbox), self.query_timeout)
            logger.debug(f"Overpass query for {len(categories)} categories, bbox={bbox}")
            response = await self._send("POST", self.url, data={"data": query})
            raise_for_status(response, self.service)
            collection = overpass_to_features(self._decode(response))
        finally:
            self._release()

        features = reproject_features(collection.features, GEOGRAPHIC, self.display_crs)
        result = CategoryFetchResult()
        for category in categories:
            matched = [f for f in features if category.matches(f.properties)]
            if not matched:
                continue
            layer = Layer(
                layer_id=f"osm-{category.category_id}-{next(self._layer_seq)}",
                name=f"{category.name} ({len(matched)})",
                source=VectorSource(matched),
                origin=Origin.OSM,
                style=dict(category.style),
                metadata={"category": category.category_id, "bbox": list(bbox)},
            )
            if self.registry.add(layer):
                result.layers.append(layer)
                result.counts[category.category_id] = len(matched)

        if not result.layers:
            raise EmptyResult("No OpenStreetMap features matched the selected categories in this area.")

        logger.info(f"Overpass fetch added {result.total} features in {len(result.layers)} layers")
        self.bus.notify("osm.fetched", f"{result.total} OSM features added to the map.")
        return result

    def _decode(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise RemoteServiceException(
                f"Overpass API returned a non-JSON response: {response.text[:200]}"
            ) from e
        if not isinstance(data, dict):
            raise RemoteServiceException("Overpass API returned an unexpected payload.")
        remark = data.get("remark") or ""
        if not data.get("elements") and "error" in remark.lower():
            raise RemoteServiceException(f"Overpass API error: {remark}")
        if not isinstance(data.get("elements"), list):
            data["elements"] = []
        return data
