"""Place-name search against a Nominatim geocoder.

Results carry their point and bounding box in the display CRS so the host
can center or fit the view on a chosen place. Nothing is registered as a
layer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import httpx
from loguru import logger

from geoengine.errors import RemoteServiceException
from geoengine.geo.transform import (
    DISPLAY,
    GEOGRAPHIC,
    Extent,
    is_finite_extent,
    transform_extent,
    transform_point,
)
from geoengine.layers.registry import LayerRegistry
from geoengine.sources.base import SourceAdapter, raise_for_status

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/search"
MIN_QUERY_LENGTH = 3
DEFAULT_RESULT_LIMIT = 10


@dataclass
class Place:
    """One geocoder match.

    Attributes:
        name: First component of ``display_name``, for a short label.
        display_name: Full address line as the geocoder formats it.
        category: ``class/type`` pair, e.g. ``boundary/administrative``.
        lon: Longitude of the match.
        lat: Latitude of the match.
        center: ``(x, y)`` in the display CRS.
        extent: Bounding box in the display CRS, None when the geocoder
            gives none or it cannot be projected.
    """

    name: str
    display_name: str
    category: str
    lon: float
    lat: float
    center: tuple[float, float]
    extent: Extent | None = None


class LocationSearch(SourceAdapter):
    """Free-text place search.

    Queries shorter than ``MIN_QUERY_LENGTH`` characters are not sent.
    """

    service = "geocoder"

    def __init__(
        self,
        registry: LayerRegistry,
        client: httpx.AsyncClient | None = None,
        url: str = DEFAULT_GEOCODER_URL,
        limit: int = DEFAULT_RESULT_LIMIT,
        display_crs: str = DISPLAY,
        **kwargs,
    ) -> None:
        super().__init__(registry, client, **kwargs)
        self.url = url
        self.limit = limit
        self.display_crs = display_crs

    def search_params(self, query: str) -> dict:
        return {"format": "json", "q": query.strip(), "limit": self.limit, "addressdetails": 1}

    async def search(self, query: str) -> list[Place] | None:
        """Places matching ``query``, best match first.

        Returns:
            The matches (empty for a short query or no match), or None when
            another search is running.

        Raises:
            RemoteServiceException: The geocoder answered with something
                other than a JSON array.
            TransportFailure: Network or HTTP failure.
        """
        if len((query or "").strip()) < MIN_QUERY_LENGTH:
            return []

        if not self._claim():
            return None
        try:
            response = await self._send("GET", self.url, params=self.search_params(query))
            raise_for_status(response, self.service)
            try:
                payload = response.json()
            except json.JSONDecodeError as e:
                raise RemoteServiceException(f"Geocoder returned an unreadable response: {e}") from e
        finally:
            self._release()

        if not isinstance(payload, list):
            raise RemoteServiceException("Geocoder response is not a list of places.")

        places = [place for place in (self._place(item) for item in payload) if place is not None]
        if not places:
            self.bus.notify("geocode.empty", f'No places found for "{query.strip()}".')
        logger.info(f"Geocoder: {len(places)} places for {query.strip()!r}")
        return places

    def _place(self, item) -> Place | None:
        if not isinstance(item, dict):
            return None
        try:
            lon = float(item["lon"])
            lat = float(item["lat"])
        except (KeyError, TypeError, ValueError):
            return None

        display_name = str(item.get("display_name") or "")
        category = "/".join(str(item[key]) for key in ("class", "type") if item.get(key))
        return Place(
            name=display_name.split(",")[0].strip(),
            display_name=display_name,
            category=category,
            lon=lon,
            lat=lat,
            center=transform_point(lon, lat, GEOGRAPHIC, self.display_crs),
            extent=self._extent(item.get("boundingbox")),
        )

    def _extent(self, bbox) -> Extent | None:
        """Nominatim ``[south, north, west, east]`` strings to a display extent."""
        if not isinstance(bbox, list) or len(bbox) != 4:
            return None
        try:
            south, north, west, east = (float(v) for v in bbox)
        except (TypeError, ValueError):
            return None
        extent = transform_extent((west, south, east, north), GEOGRAPHIC, self.display_crs)
        return extent if is_finite_extent(extent) else None
