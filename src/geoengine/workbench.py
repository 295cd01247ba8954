"""Workbench: the single entry point the service shell talks to.

Wires the registry, interaction machine, query engine, codec and remote
sources together. Every codec and network operation is wrapped so that a
WorkbenchError becomes exactly one notice on the bus and an ``Outcome``
returned to the caller; the registry and interaction state are left as
they were.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from geoengine.errors import EmptyResult, InvalidGeometryForOperation, WorkbenchError
from geoengine.events import EventBus
from geoengine.interaction.machine import InteractionMachine
from geoengine.interaction.surface import RenderSurface
from geoengine.layers import codec
from geoengine.layers.exporters.shapefile import sanitize_layer_name
from geoengine.layers.layer import Layer, LayerFeature, Origin, VectorSource
from geoengine.layers.registry import LayerRegistry
from geoengine.query import FeatureQuery
from geoengine.sources.capabilities import CapabilitiesClient
from geoengine.sources.geocode import LocationSearch
from geoengine.sources.overpass import OverpassFetcher
from geoengine.sources.stac import CatalogSearch


@dataclass
class Outcome:
    """Result of a workbench operation.

    Attributes:
        ok: True when the operation completed.
        kind: Machine-readable error kind on failure, empty on success.
        message: Human-readable summary.
        layers: Layers the operation registered.
        value: Operation-specific payload (export artifact, discovered
            layers, ...).
    """

    ok: bool
    kind: str = ""
    message: str = ""
    layers: list[Layer] = field(default_factory=list)
    value: Any = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "kind": self.kind,
            "message": self.message,
            "layers": [layer.summary() for layer in self.layers],
        }


class Workbench:
    """Facade over the engine components.

    Args:
        settings: Object exposing the application settings. Defaults to the
            module-level ``geoapp.config.settings``.
        client: Shared httpx.AsyncClient for every remote source.
        surface: Render surface for the interaction machine.
        bus: Event bus; a new one is created when omitted.
    """

    def __init__(
        self,
        settings=None,
        client: httpx.AsyncClient | None = None,
        surface: RenderSurface | None = None,
        bus: EventBus | None = None,
    ) -> None:
        if settings is None:
            from geoapp.config import settings as app_settings

            settings = app_settings
        self.settings = settings
        self.display_crs = settings.display_crs
        self.bus = bus or EventBus()
        self.registry = LayerRegistry(self.bus)
        self.query = FeatureQuery(self.registry, hit_tolerance_px=settings.hit_tolerance_px)
        self.machine = InteractionMachine(
            self.registry, self.query, surface=surface, display_crs=self.display_crs
        )

        http = {"user_agent": settings.user_agent, "timeout": settings.http_timeout}
        self.overpass = OverpassFetcher(
            self.registry,
            client,
            url=settings.overpass_url,
            query_timeout=settings.overpass_timeout,
            display_crs=self.display_crs,
            **http,
        )
        self.capabilities = CapabilitiesClient(
            self.registry,
            client,
            proxy_url=settings.proxy_url,
            display_crs=self.display_crs,
            **http,
        )
        self.catalog = CatalogSearch(
            self.registry,
            client,
            url=settings.stac_search_url,
            collections=settings.stac_collections,
            limit=settings.stac_limit,
            display_crs=self.display_crs,
            **http,
        )
        self.geocoder = LocationSearch(
            self.registry,
            client,
            url=settings.geocoder_url,
            limit=settings.geocoder_limit,
            display_crs=self.display_crs,
            **http,
        )
        self._file_seq = itertools.count(1)
        self._extraction_seq = itertools.count(1)

    # -- Error boundary ------------------------------------------------------

    def _fail(self, error: WorkbenchError) -> Outcome:
        level = "info" if error.soft else "error"
        if not error.soft:
            logger.warning(f"{error.kind.value}: {error.message}")
        self.bus.notify(error.kind.value, error.message, level=level)
        return Outcome(False, error.kind.value, error.message)

    def _guard(self, operation: Callable[[], Outcome]) -> Outcome:
        try:
            return operation()
        except WorkbenchError as e:
            return self._fail(e)

    async def _guard_async(self, operation: Callable[[], Awaitable[Outcome]]) -> Outcome:
        try:
            return await operation()
        except WorkbenchError as e:
            return self._fail(e)

    # -- Files ---------------------------------------------------------------

    def import_files(self, sources: list[codec.ImportSource]) -> Outcome:
        """Decode one file (or a shapefile selection) into a new layer."""

        def run() -> Outcome:
            result = codec.import_files(sources, display_crs=self.display_crs)
            layer = Layer(
                layer_id=f"file-{next(self._file_seq)}-{sanitize_layer_name(result.name)}",
                name=result.name,
                source=VectorSource(result.features),
                origin=Origin.FILE,
                metadata={"format": result.source_format},
            )
            self.registry.add(layer)
            message = f'Layer "{layer.name}" loaded with {len(result.features)} features.'
            self.bus.notify("layer.imported", message)
            return Outcome(True, message=message, layers=[layer])

        return self._guard(run)

    def export(self, layer_ids: list[str], fmt: str) -> Outcome:
        """Serialize the given layers; the artifact is in ``Outcome.value``."""

        def run() -> Outcome:
            layers = [self.registry.get(i) for i in layer_ids]
            layers = [layer for layer in layers if layer is not None]
            if not layers:
                raise EmptyResult("No layers selected for export.")
            artifact = codec.export_layers(layers, fmt, display_crs=self.display_crs)
            logger.info(f"Exported {len(layers)} layers as {artifact.filename}")
            return Outcome(True, message=f"Exported {artifact.filename}.", value=artifact)

        return self._guard(run)

    def export_drawings(self) -> Outcome:
        return self._guard(
            lambda: Outcome(True, message="Drawings exported.", value=self.machine.export_drawings_kml())
        )

    def remove_layer(self, layer_id: str) -> Outcome:
        layer = self.registry.remove(layer_id)
        if layer is None:
            return Outcome(False, "not_found", f"Layer not found: {layer_id}")
        return Outcome(True, message=f'Layer "{layer.name}" removed.')

    # -- Remote sources ------------------------------------------------------

    async def fetch_osm(self, category_ids: list[str]) -> Outcome:
        """Fetch OSM categories inside the most recent drawn polygon."""

        async def run() -> Outcome:
            drawings = self.machine.drawings
            polygon = drawings[-1] if drawings else None
            result = await self.overpass.fetch_categories(polygon, category_ids)
            if result is None:
                return Outcome(False, "busy", "An OpenStreetMap fetch is already in progress.")
            return Outcome(
                True,
                message=f"{result.total} OSM features added to the map.",
                layers=result.layers,
                value=result.counts,
            )

        return await self._guard_async(run)

    async def discover(self, url: str) -> Outcome:
        async def run() -> Outcome:
            discovered = await self.capabilities.discover(url)
            return Outcome(True, message=f"{len(discovered)} layers found.", value=discovered)

        return await self._guard_async(run)

    def add_wms(self, remote_name: str) -> Outcome:
        def run() -> Outcome:
            layer = self.capabilities.add_as_wms(remote_name)
            return Outcome(True, message=f'Layer "{layer.name}" added.', layers=[layer])

        return self._guard(run)

    async def add_wfs(self, remote_name: str) -> Outcome:
        async def run() -> Outcome:
            layer = await self.capabilities.add_as_wfs(remote_name)
            if layer is None:
                return Outcome(False, "busy", "A map server request is already in progress.")
            return Outcome(True, message=f'Layer "{layer.name}" added.', layers=[layer])

        return await self._guard_async(run)

    async def search_catalog(self, view_extent) -> Outcome:
        async def run() -> Outcome:
            busy = self.catalog.busy
            layer = await self.catalog.search(view_extent)
            if layer is None:
                if busy:
                    return Outcome(False, "busy", "A catalog search is already in progress.")
                return Outcome(True, message="No catalog items found in the current view.")
            return Outcome(True, message=f'Layer "{layer.name}" updated.', layers=[layer])

        return await self._guard_async(run)

    async def search_location(self, query: str) -> Outcome:
        """Geocode ``query``; the places are the outcome's ``value``."""

        async def run() -> Outcome:
            places = await self.geocoder.search(query)
            if places is None:
                return Outcome(False, "busy", "A place search is already in progress.")
            return Outcome(True, message=f"{len(places)} places found.", value=places)

        return await self._guard_async(run)

    # -- Extraction ----------------------------------------------------------

    def extract_by_polygon(self, layer_id: str) -> Outcome:
        """Copy the features of ``layer_id`` intersecting the last drawn polygon."""
        return self._guard(lambda: self._extract(layer_id))

    def _extract(self, layer_id: str) -> Outcome:
        polygon = self.machine.last_polygon
        if polygon is None:
            raise InvalidGeometryForOperation("Draw a polygon before extracting features.")
        layer = self.registry.get(layer_id)
        if layer is None:
            raise EmptyResult(f"Layer not found: {layer_id}")
        if not layer.has_vector_source or layer.origin == Origin.SCRATCH:
            raise InvalidGeometryForOperation(
                f'Layer "{layer.name}" has no features to extract from.'
            )

        clip = polygon.to_shape()
        extracted = [
            _copy_feature(feature)
            for feature in layer.features
            if feature.to_shape().intersects(clip)
        ]
        if not extracted:
            raise EmptyResult(f'No features of "{layer.name}" intersect the drawn polygon.')

        result = Layer(
            layer_id=f"extraction-{next(self._extraction_seq)}",
            name=f"{layer.name} (extracted)",
            source=VectorSource(extracted),
            origin=Origin.EXTRACTION,
            style=dict(layer.style) if layer.style else None,
            metadata={"source_layer": layer.layer_id},
        )
        self.registry.add(result)
        message = f"{len(extracted)} features extracted from \"{layer.name}\"."
        self.bus.notify("layer.extracted", message)
        return Outcome(True, message=message, layers=[result])


def _copy_feature(feature: LayerFeature) -> LayerFeature:
    return LayerFeature(
        feature_id=feature.feature_id,
        geometry_type=feature.geometry_type,
        coordinates=feature.coordinates,
        properties=dict(feature.properties),
        style=dict(feature.style) if feature.style else None,
        geometry_name=feature.geometry_name,
    )
