"""STAC catalog search: scene footprints intersecting the current view."""

from __future__ import annotations

import json

import httpx
from loguru import logger

from geoengine.errors import InvalidBoundingBox, RemoteServiceException
from geoengine.geo.transform import DISPLAY, GEOGRAPHIC, Extent, is_finite_extent, transform_extent
from geoengine.layers.codec import reproject_features
from geoengine.layers.layer import Layer, Origin, VectorSource
from geoengine.layers.parsers.geojson import parse_geojson
from geoengine.layers.registry import LayerRegistry
from geoengine.sources.base import SourceAdapter, raise_for_status

DEFAULT_SEARCH_URL = "https://earth-search.aws.element84.com/v1/search"
DEFAULT_COLLECTIONS = ("sentinel-2-l2a",)
FOOTPRINTS_LAYER_ID = "stac-footprints"
FOOTPRINTS_STYLE = {"fill": "rgba(255,190,11,0.15)", "stroke": "#ffbe0b", "strokeWidth": 1.5}

# Item members worth keeping as footprint attributes
_ITEM_FIELDS = ("collection",)


class CatalogSearch(SourceAdapter):
    """Search a STAC API and show matching item footprints as one layer."""

    service = "STAC catalog"

    def __init__(
        self,
        registry: LayerRegistry,
        client: httpx.AsyncClient | None = None,
        url: str = DEFAULT_SEARCH_URL,
        collections: list[str] | tuple[str, ...] = DEFAULT_COLLECTIONS,
        limit: int = 50,
        display_crs: str = DISPLAY,
        **kwargs,
    ) -> None:
        super().__init__(registry, client, **kwargs)
        self.url = url
        self.collections = list(collections)
        self.limit = limit
        self.display_crs = display_crs

    def search_body(self, bbox: Extent) -> dict:
        return {
            "bbox": [round(v, 6) for v in bbox],
            "collections": self.collections,
            "limit": self.limit,
        }

    async def search(self, view_extent: Extent) -> Layer | None:
        """Register (or replace) the footprints layer for ``view_extent``.

        Args:
            view_extent: Visible extent in the display CRS.

        Returns:
            The footprints layer, or None when nothing matched or another
            search is running.

        Raises:
            InvalidBoundingBox: Non-finite or degenerate view extent.
            RemoteServiceException: The catalog answered with an unreadable body.
            TransportFailure: Network or HTTP failure.
        """
        if not is_finite_extent(view_extent):
            raise InvalidBoundingBox(f"View extent is not finite: {view_extent}", bbox=tuple(view_extent or ()))
        bbox = transform_extent(view_extent, self.display_crs, GEOGRAPHIC)

        if not self._claim():
            return None
        try:
            response = await self._send("POST", self.url, json=self.search_body(bbox))
            raise_for_status(response, self.service)
            try:
                payload = response.json()
                collection = parse_geojson(payload)
            except (json.JSONDecodeError, ValueError) as e:
                raise RemoteServiceException(f"STAC search returned an unreadable response: {e}") from e
        finally:
            self._release()

        if not collection.features:
            self.bus.notify("stac.empty", "No catalog items found in the current view.")
            return None

        items = {str(item.get("id")): item for item in payload.get("features", []) if isinstance(item, dict)}
        for feature in collection.features:
            item = items.get(feature.feature_id, {})
            for key in _ITEM_FIELDS:
                if key in item:
                    feature.properties.setdefault(key, item[key])

        features = reproject_features(collection.features, GEOGRAPHIC, self.display_crs)
        if FOOTPRINTS_LAYER_ID in self.registry:
            self.registry.remove(FOOTPRINTS_LAYER_ID)
        layer = Layer(
            layer_id=FOOTPRINTS_LAYER_ID,
            name=f"Catalog footprints ({len(features)})",
            source=VectorSource(features),
            origin=Origin.STAC,
            style=dict(FOOTPRINTS_STYLE),
            metadata={"collections": list(self.collections), "bbox": list(bbox)},
        )
        self.registry.add(layer)
        logger.info(f"STAC search: {len(features)} items in {bbox}")
        self.bus.notify("stac.found", f"{len(features)} catalog items found.")
        return layer
