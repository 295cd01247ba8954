"""Remote sources: Overpass categories, OGC servers, STAC catalogs and place search."""

from geoengine.sources.capabilities import CapabilitiesClient, normalize_base_url
from geoengine.sources.geocode import LocationSearch, Place
from geoengine.sources.osm_categories import OSM_CATEGORIES, OSMCategory
from geoengine.sources.overpass import CategoryFetchResult, OverpassFetcher
from geoengine.sources.stac import CatalogSearch

__all__ = [
    "CapabilitiesClient",
    "CatalogSearch",
    "CategoryFetchResult",
    "LocationSearch",
    "OSMCategory",
    "OSM_CATEGORIES",
    "OverpassFetcher",
    "Place",
    "normalize_base_url",
]
