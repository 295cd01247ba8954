"""Tests for map server discovery and WMS/WFS layer creation."""

import asyncio
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from geoengine.errors import DuplicateLayer, EmptyResult, RemoteServiceException, TransportFailure
from geoengine.events import EventBus
from geoengine.geo.transform import to_display
from geoengine.layers import LayerRegistry, Origin, RasterSource
from geoengine.sources import CapabilitiesClient, normalize_base_url
from geoengine.sources.capabilities import describe_error_body, parse_capabilities

PROXY = "http://relay.test/api/geoserver-proxy"
BASE = "http://maps.test/geoserver"

NESTED = b"""<?xml version="1.0"?>
<WMS_Capabilities xmlns="http://www.opengis.net/wms" version="1.3.0">
  <Service><Name>WMS</Name></Service>
  <Capability>
    <Layer>
      <Title>Root</Title>
      <Layer><Name>topp:states</Name><Title>USA States</Title></Layer>
      <Layer><Name>roads</Name></Layer>
    </Layer>
  </Capability>
</WMS_Capabilities>"""

FLAT = b"""<WMT_MS_Capabilities><Capability>
  <Layer><Name>only</Name><Title>Only layer</Title></Layer>
</Capability></WMT_MS_Capabilities>"""

EXCEPTION = b"""<ServiceExceptionReport>
  <ServiceException code="LayerNotDefined">Unknown workspace</ServiceException>
  <Capability><Layer><Layer><Name>ghost</Name></Layer></Layer></Capability>
</ServiceExceptionReport>"""

FEATURES = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "id": "states.1", "geometry": {"type": "Point", "coordinates": [-100.0, 40.0]},
         "properties": {"STATE_NAME": "Kansas"}},
    ],
}


class Server:
    """Relay stand-in answering by the target url's ``request`` parameter."""

    def __init__(self, capabilities=NESTED, features=None, feature_status=200, content_type="application/json"):
        self.capabilities = capabilities
        self.features = FEATURES if features is None else features
        self.feature_status = feature_status
        self.content_type = content_type
        self.targets: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        target = request.url.params["url"]
        self.targets.append(target)
        params = {k.lower(): v for k, v in parse_qs(urlsplit(target).query).items()}
        if params["request"][0] == "GetCapabilities":
            return httpx.Response(200, content=self.capabilities, headers={"content-type": "application/xml"})
        if isinstance(self.features, dict):
            return httpx.Response(self.feature_status, json=self.features)
        return httpx.Response(
            self.feature_status, content=self.features, headers={"content-type": self.content_type}
        )


@pytest.fixture
def registry():
    return LayerRegistry(EventBus())


def _client(server, registry):
    http = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return CapabilitiesClient(registry, http, proxy_url=PROXY)


@pytest.mark.unit
class TestNormalize:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("maps.test/geoserver", "http://maps.test/geoserver"),
            ("https://maps.test/geoserver/", "https://maps.test/geoserver"),
            ("http://maps.test/geoserver/web", "http://maps.test/geoserver"),
            ("http://maps.test/geoserver/web/", "http://maps.test/geoserver"),
            ("  ", ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_base_url(raw) == expected


@pytest.mark.unit
class TestParse:
    def test_nested_layers_preferred(self):
        layers = parse_capabilities(NESTED)
        assert [(l.remote_name, l.title) for l in layers] == [
            ("topp:states", "USA States"),
            ("roads", "roads"),
        ]

    def test_top_level_fallback(self):
        assert [l.remote_name for l in parse_capabilities(FLAT)] == ["only"]

    def test_exception_wins_over_layers(self):
        with pytest.raises(RemoteServiceException) as exc:
            parse_capabilities(EXCEPTION)
        assert "Unknown workspace" in exc.value.message

    def test_not_xml(self):
        with pytest.raises(RemoteServiceException):
            parse_capabilities(b"<html")

    def test_error_body_from_json(self):
        response = httpx.Response(500, json={"error": {"message": "boom"}})
        assert describe_error_body(response) == "boom"

    def test_error_body_from_xml(self):
        response = httpx.Response(400, content=EXCEPTION)
        assert describe_error_body(response) == "Unknown workspace"


@pytest.mark.unit
class TestDiscover:
    def test_goes_through_relay(self, registry):
        server = Server()
        client = _client(server, registry)
        layers = asyncio.run(client.discover("maps.test/geoserver/web/"))
        assert [l.remote_name for l in layers] == ["topp:states", "roads"]
        assert client.base_url == BASE
        assert server.targets[0] == f"{BASE}/wms?service=WMS&version=1.3.0&request=GetCapabilities"

    def test_exception_leaves_state_untouched(self, registry):
        client = _client(Server(capabilities=EXCEPTION), registry)
        with pytest.raises(RemoteServiceException):
            asyncio.run(client.discover(BASE))
        assert client.discovered == []
        assert client.base_url == ""

    def test_empty_url_is_a_notice(self, registry):
        server = Server()
        assert asyncio.run(_client(server, registry).discover("")) == []
        assert server.targets == []


@pytest.fixture
def discovered(registry):
    client = _client(Server(), registry)
    asyncio.run(client.discover(BASE))
    return client


@pytest.mark.unit
class TestWms:
    def test_add_as_wms(self, discovered, registry):
        layer = discovered.add_as_wms("topp:states")
        assert layer.layer_id == "wms-topp:states"
        assert layer.name == "USA States"
        assert isinstance(layer.source, RasterSource)
        assert layer.source.url == f"{BASE}/wms"
        assert layer.source.params == {"LAYERS": "topp:states", "TILED": True}
        assert discovered.find_discovered("topp:states").wms_added is True

    def test_duplicate(self, discovered, registry):
        discovered.add_as_wms("roads")
        with pytest.raises(DuplicateLayer):
            discovered.add_as_wms("roads")
        assert len([l for l in registry.list_layers() if l.origin == Origin.WMS]) == 1

    def test_flag_follows_removal(self, discovered, registry):
        discovered.add_as_wms("roads")
        registry.remove("wms-roads")
        assert discovered.find_discovered("roads").wms_added is False

    def test_base_already_ending_in_wms(self, registry):
        client = _client(Server(), registry)
        client.base_url = "http://maps.test/geoserver/wms"
        assert client.wms_url() == "http://maps.test/geoserver/wms"

    def test_requires_discovery(self, registry):
        with pytest.raises(RemoteServiceException):
            _client(Server(), registry).add_as_wms("roads")


@pytest.mark.unit
class TestWfs:
    def test_workspace_endpoint(self, discovered):
        url = discovered.wfs_url("topp:states")
        parts = urlsplit(url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == f"{BASE}/topp/ows"
        params = parse_qs(parts.query)
        assert params["typeName"] == ["topp:states"]
        assert params["outputFormat"] == ["application/json"]
        assert params["srsName"] == ["EPSG:4326"]
        assert params["version"] == ["1.0.0"]

    def test_plain_endpoint(self, discovered):
        assert urlsplit(discovered.wfs_url("roads")).path == "/geoserver/wfs"

    def test_add_as_wfs(self, registry):
        server = Server()
        client = _client(server, registry)
        asyncio.run(client.discover(BASE))
        layer = asyncio.run(client.add_as_wfs("topp:states"))
        assert layer.layer_id == "wfs-topp:states"
        assert layer.name == "USA States (WFS)"
        assert layer.origin == Origin.WFS
        x, y = layer.features[0].coordinates
        ex, ey = to_display(-100.0, 40.0)
        assert x == pytest.approx(ex) and y == pytest.approx(ey)
        assert client.find_discovered("topp:states").wfs_added is True
        assert "/topp/ows?" in server.targets[-1]

    def test_xml_answer_is_remote_exception(self, registry):
        server = Server(features=EXCEPTION, content_type="text/xml")
        client = _client(server, registry)
        asyncio.run(client.discover(BASE))
        with pytest.raises(RemoteServiceException) as exc:
            asyncio.run(client.add_as_wfs("roads"))
        assert "Unknown workspace" in exc.value.message
        assert "wfs-roads" not in registry

    def test_json_error_object_is_remote_exception(self, registry):
        server = Server(features={"error": {"message": "Feature type roads unknown"}})
        client = _client(server, registry)
        asyncio.run(client.discover(BASE))
        with pytest.raises(RemoteServiceException) as exc:
            asyncio.run(client.add_as_wfs("roads"))
        assert "Feature type roads unknown" in exc.value.message
        assert "no 'type'" not in exc.value.message
        assert "wfs-roads" not in registry

    def test_error_status(self, registry):
        server = Server(features={"message": "layer disabled"}, feature_status=503)
        client = _client(server, registry)
        asyncio.run(client.discover(BASE))
        with pytest.raises(TransportFailure) as exc:
            asyncio.run(client.add_as_wfs("roads"))
        assert exc.value.status_code == 503
        assert "layer disabled" in exc.value.message

    def test_zero_features(self, registry):
        server = Server(features={"type": "FeatureCollection", "features": []})
        client = _client(server, registry)
        asyncio.run(client.discover(BASE))
        with pytest.raises(EmptyResult):
            asyncio.run(client.add_as_wfs("roads"))

    def test_duplicate_before_request(self, registry):
        server = Server()
        client = _client(server, registry)
        asyncio.run(client.discover(BASE))
        asyncio.run(client.add_as_wfs("roads"))
        requests = len(server.targets)
        with pytest.raises(DuplicateLayer):
            asyncio.run(client.add_as_wfs("roads"))
        assert len(server.targets) == requests
