"""OGC server discovery: WMS capabilities, tile layers and WFS feature layers.

Every request goes through the same-origin relay (``proxy_url?url=...``)
so browsers hosting the renderer never talk to the map server directly.
Discovered layers stay in ``client.discovered``; their ``wms_added`` and
``wfs_added`` flags follow the registry through ``layer.state_changed``.
"""

from __future__ import annotations

import json
import re
import xml.etree.ElementTree as ET

import httpx
from loguru import logger

from geoengine import events
from geoengine.errors import DuplicateLayer, EmptyResult, RemoteServiceException, TransportFailure
from geoengine.geo.transform import DISPLAY, GEOGRAPHIC
from geoengine.layers.codec import reproject_features
from geoengine.layers.layer import DiscoveredLayer, Layer, Origin, RasterSource, VectorSource
from geoengine.layers.parsers.geojson import parse_geojson
from geoengine.layers.registry import LayerRegistry
from geoengine.sources.base import SourceAdapter

WMS_VERSION = "1.3.0"
WFS_VERSION = "1.0.0"
_EXCEPTION_TAGS = ("ServiceException", "ExceptionText")


def normalize_base_url(url: str) -> str:
    """Server root from whatever the user typed.

    Adds ``http://`` when no scheme is given and strips a trailing slash and
    a trailing ``/web`` (the admin UI path).
    """
    url = (url or "").strip()
    if not url:
        return ""
    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"http://{url}"
    url = url.rstrip("/")
    if url.lower().endswith("/web"):
        url = url[: -len("/web")]
    return url


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].split(":")[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child_text(element: ET.Element, name: str) -> str:
    for child in _children(element, name):
        if child.text and child.text.strip():
            return child.text.strip()
    return ""


def find_exception_text(root: ET.Element) -> str | None:
    """Text of the first ServiceException / ExceptionText node, if any."""
    for element in root.iter():
        if _local(element.tag) in _EXCEPTION_TAGS:
            text = "".join(element.itertext()).strip()
            return text or "Unknown error in the server's XML response."
    return None


def parse_capabilities(xml_text: str | bytes) -> list[DiscoveredLayer]:
    """Collect ``(name, title)`` pairs from a WMS capabilities document.

    Nested ``Capability > Layer > Layer`` entries are preferred; the
    top-level ``Capability > Layer`` entries are used when none exist.

    Raises:
        RemoteServiceException: The document carries an exception node or
            is not XML. No layers are returned in that case.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise RemoteServiceException(f"Capabilities response is not valid XML: {e}") from e

    exception = find_exception_text(root)
    if exception is not None:
        raise RemoteServiceException(f"Server error: {exception}")

    capability = next((e for e in root.iter() if _local(e.tag) == "Capability"), None)
    if capability is None:
        return []

    top = _children(capability, "Layer")
    nested = [layer for parent in top for layer in _children(parent, "Layer")]

    discovered = []
    for node in nested or top:
        name = _child_text(node, "Name")
        if name:
            discovered.append(DiscoveredLayer(name, _child_text(node, "Title") or name))
    return discovered


def describe_error_body(response: httpx.Response) -> str:
    """Best-effort single message out of an error response body."""
    text = response.text or ""
    stripped = text.lstrip()
    if stripped.startswith("<"):
        try:
            message = find_exception_text(ET.fromstring(stripped))
        except ET.ParseError:
            message = None
        if message:
            return message
    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("error", "message", "details"):
            value = data.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return str(value)
    excerpt = " ".join(text.split())[:200]
    return excerpt or f"HTTP {response.status_code}"


class CapabilitiesClient(SourceAdapter):
    """Discover a map server's layers and add them as tile or feature layers."""

    service = "map server"

    def __init__(
        self,
        registry: LayerRegistry,
        client: httpx.AsyncClient | None = None,
        proxy_url: str | None = None,
        display_crs: str = DISPLAY,
        **kwargs,
    ) -> None:
        super().__init__(registry, client, **kwargs)
        self.proxy_url = proxy_url
        self.display_crs = display_crs
        self.base_url = ""
        self.discovered: list[DiscoveredLayer] = []
        self.bus.add_listener(events.LAYER_STATE_CHANGED, self._on_layer_state)

    # -- Discovery -----------------------------------------------------------

    def capabilities_url(self, base_url: str) -> str:
        return f"{base_url}/wms?service=WMS&version={WMS_VERSION}&request=GetCapabilities"

    async def discover(self, url: str) -> list[DiscoveredLayer]:
        """Fetch and parse the server's capabilities.

        Raises:
            RemoteServiceException: Exception node or unreadable document.
            TransportFailure: Relay or network failure.
        """
        base_url = normalize_base_url(url)
        if not base_url:
            self.bus.notify("capabilities.missing_url", "Enter the map server URL.")
            return []
        if not self._claim():
            return list(self.discovered)
        try:
            response = await self._fetch(self.capabilities_url(base_url))
            if not response.is_success:
                raise TransportFailure(
                    f"Capabilities request failed: {describe_error_body(response)}",
                    status_code=response.status_code,
                )
            discovered = parse_capabilities(response.content)
        finally:
            self._release()

        self.base_url = base_url
        for item in discovered:
            item.wms_added = self.registry.find_by_remote(item.remote_name, Origin.WMS) is not None
            item.wfs_added = self.registry.find_by_remote(item.remote_name, Origin.WFS) is not None
        self.discovered = discovered

        if discovered:
            logger.info(f"Discovered {len(discovered)} layers at {base_url}")
            self.bus.notify("capabilities.found", f"{len(discovered)} layers found on the server.")
        else:
            self.bus.notify(
                "capabilities.empty",
                "No published layers found, or the capabilities document has an unexpected structure.",
            )
        return list(discovered)

    def find_discovered(self, remote_name: str) -> DiscoveredLayer | None:
        for item in self.discovered:
            if item.remote_name == remote_name:
                return item
        return None

    # -- Tile layers ---------------------------------------------------------

    def wms_url(self) -> str:
        base = self._require_base()
        return base if base.lower().endswith("/wms") else f"{base}/wms"

    def add_as_wms(self, remote_name: str, title: str | None = None) -> Layer:
        """Register ``remote_name`` as a tile layer.

        Raises:
            DuplicateLayer: The remote layer is already on the map as WMS.
        """
        layer_id = f"wms-{remote_name}"
        title = title or self._title(remote_name)
        if layer_id in self.registry or self.registry.find_by_remote(remote_name, Origin.WMS):
            raise DuplicateLayer(f'Layer "{title}" is already on the map.', layer_id=layer_id)

        layer = Layer(
            layer_id=layer_id,
            name=title,
            source=RasterSource(
                url=self.wms_url(),
                params={"LAYERS": remote_name, "TILED": True},
                service="WMS",
            ),
            origin=Origin.WMS,
            remote_name=remote_name,
        )
        self.registry.add(layer)
        self.bus.notify("wms.added", f'Layer "{title}" added to the map.')
        return layer

    # -- Feature layers ------------------------------------------------------

    def wfs_url(self, remote_name: str) -> str:
        """GetFeature URL; ``workspace:layer`` names use the workspace endpoint."""
        base = self._require_base()
        if ":" in remote_name:
            workspace = remote_name.split(":", 1)[0]
            endpoint = f"{base}/{workspace}/ows"
        else:
            endpoint = f"{base}/wfs"
        query = httpx.QueryParams(
            {
                "service": "WFS",
                "version": WFS_VERSION,
                "request": "GetFeature",
                "typeName": remote_name,
                "outputFormat": "application/json",
                "srsName": GEOGRAPHIC,
            }
        )
        return f"{endpoint}?{query}"

    async def add_as_wfs(self, remote_name: str, title: str | None = None) -> Layer | None:
        """Fetch ``remote_name`` as GeoJSON and register it as a vector layer.

        Returns None when another request is running.

        Raises:
            DuplicateLayer: Already on the map as WFS.
            RemoteServiceException: Non-JSON or exception-bearing response.
            TransportFailure: Relay or network failure.
            EmptyResult: The server returned no features.
        """
        layer_id = f"wfs-{remote_name}"
        title = title or self._title(remote_name)
        if layer_id in self.registry or self.registry.find_by_remote(remote_name, Origin.WFS):
            raise DuplicateLayer(f'Layer "{title}" is already on the map as WFS.', layer_id=layer_id)

        url = self.wfs_url(remote_name)
        if not self._claim():
            return None
        try:
            response = await self._fetch(url)
        finally:
            self._release()

        if not response.is_success:
            raise TransportFailure(
                f'Loading WFS layer "{title}" failed: {describe_error_body(response)}',
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type.lower():
            raise RemoteServiceException(
                f'WFS layer "{title}" did not return JSON: {describe_error_body(response)}'
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteServiceException(f'WFS layer "{title}" returned invalid JSON: {e}') from e
        if isinstance(payload, dict) and "type" not in payload:
            # Exception reports come back as 200 JSON without a GeoJSON type
            raise RemoteServiceException(
                f'WFS layer "{title}" returned an error: {describe_error_body(response)}'
            )
        try:
            collection = parse_geojson(payload)
        except ValueError as e:
            raise RemoteServiceException(f'WFS layer "{title}" returned invalid GeoJSON: {e}') from e

        features = reproject_features(
            collection.features, collection.crs or GEOGRAPHIC, self.display_crs
        )
        if not features:
            raise EmptyResult(f'WFS layer "{title}" returned no features.')

        layer = Layer(
            layer_id=layer_id,
            name=f"{title} (WFS)",
            source=VectorSource(features),
            origin=Origin.WFS,
            remote_name=remote_name,
        )
        self.registry.add(layer)
        logger.info(f"WFS layer {remote_name}: {len(features)} features")
        self.bus.notify("wfs.added", f'WFS layer "{title}" added with {len(features)} features.')
        return layer

    # -- Internals -----------------------------------------------------------

    async def _fetch(self, url: str) -> httpx.Response:
        if self.proxy_url:
            return await self._send("GET", self.proxy_url, params={"url": url})
        return await self._send("GET", url)

    def _require_base(self) -> str:
        if not self.base_url:
            raise RemoteServiceException("No map server connected. Discover its layers first.")
        return self.base_url

    def _title(self, remote_name: str) -> str:
        item = self.find_discovered(remote_name)
        return item.title if item else remote_name

    def _on_layer_state(self, data: dict) -> None:
        item = self.find_discovered(data.get("remote_name") or "")
        if item is None:
            return
        if data.get("service") == Origin.WMS.value:
            item.wms_added = bool(data.get("added"))
        elif data.get("service") == Origin.WFS.value:
            item.wfs_added = bool(data.get("added"))
