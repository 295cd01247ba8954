"""Tests for the Workbench facade: outcomes, notices and extraction."""

import asyncio
import json

import httpx
import pytest

from geoapp.config import Settings
from geoengine import events
from geoengine.events import drain
from geoengine.geo.transform import to_display
from geoengine.interaction import DrawKind, PointerEvent, RecordingSurface
from geoengine.interaction import surface as pointer
from geoengine.layers import Layer, LayerFeature, Origin, RasterSource, VectorSource
from geoengine.layers.codec import ImportSource
from geoengine.workbench import Outcome, Workbench

SITES = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [1.0, 1.0]}, "properties": {"name": "in"}},
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [5.0, 5.0]}, "properties": {"name": "out"}},
    ],
}


@pytest.fixture
def settings():
    return Settings(proxy_url="http://relay.test/api/geoserver-proxy", stac_search_url="https://stac.test/search")


def _workbench(settings, handler=None):
    client = None
    if handler is not None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Workbench(settings, client=client, surface=RecordingSurface())


def _notices(q):
    return [m["data"] for m in drain(q) if m["type"] == events.NOTICE]


def _draw_square(workbench, west, south, east, north):
    workbench.machine.start_draw(DrawKind.POLYGON)
    ring = [to_display(west, south), to_display(east, south), to_display(east, north),
            to_display(west, north), to_display(west, south)]
    workbench.machine.handle_pointer(PointerEvent(
        pointer.DRAW_END, geometry={"type": "Polygon", "coordinates": [[list(p) for p in ring]]},
    ))
    workbench.machine.stop_draw()


@pytest.mark.unit
class TestOutcome:
    def test_to_dict(self):
        layer = Layer("a", "A", VectorSource([]))
        data = Outcome(True, message="done", layers=[layer]).to_dict()
        assert data["ok"] is True
        assert data["layers"][0]["id"] == "a"


@pytest.mark.unit
class TestImportExport:
    def test_import_registers_layer(self, settings):
        workbench = _workbench(settings)
        outcome = workbench.import_files([ImportSource("my sites.geojson", json.dumps(SITES).encode())])
        assert outcome.ok
        layer = outcome.layers[0]
        assert layer.layer_id == "file-1-my_sites"
        assert layer.origin == Origin.FILE
        assert layer.layer_id in workbench.registry

    def test_failure_is_one_notice_and_no_layer(self, settings):
        workbench = _workbench(settings)
        before = [l.layer_id for l in workbench.registry.list_layers()]
        q = workbench.bus.subscribe()
        outcome = workbench.import_files([ImportSource("notes.txt", b"x")])
        assert not outcome.ok
        assert outcome.kind == "unsupported_format"
        notices = _notices(q)
        assert len(notices) == 1
        assert notices[0]["level"] == "error"
        assert [l.layer_id for l in workbench.registry.list_layers()] == before

    def test_soft_failure_level(self, settings):
        workbench = _workbench(settings)
        q = workbench.bus.subscribe()
        outcome = workbench.import_files([
            ImportSource("empty.geojson", b'{"type": "FeatureCollection", "features": []}')
        ])
        assert outcome.kind == "empty_result"
        assert [n["level"] for n in _notices(q)] == ["info"]

    def test_export(self, settings):
        workbench = _workbench(settings)
        layer_id = workbench.import_files([ImportSource("sites.geojson", json.dumps(SITES).encode())]).layers[0].layer_id
        outcome = workbench.export([layer_id], "geojson")
        assert outcome.ok
        assert outcome.value.filename == "sites.geojson"

    def test_export_nothing(self, settings):
        outcome = _workbench(settings).export(["missing"], "geojson")
        assert outcome.kind == "empty_result"

    def test_remove_layer(self, settings):
        workbench = _workbench(settings)
        layer_id = workbench.import_files([ImportSource("sites.geojson", json.dumps(SITES).encode())]).layers[0].layer_id
        assert workbench.remove_layer(layer_id).ok
        assert workbench.remove_layer(layer_id).kind == "not_found"

    def test_export_drawings_without_drawings(self, settings):
        assert _workbench(settings).export_drawings().kind == "empty_result"


@pytest.mark.unit
class TestExtraction:
    def test_extract_by_polygon(self, settings):
        workbench = _workbench(settings)
        source = workbench.import_files([ImportSource("sites.geojson", json.dumps(SITES).encode())]).layers[0]
        _draw_square(workbench, 0.0, 0.0, 2.0, 2.0)

        outcome = workbench.extract_by_polygon(source.layer_id)
        assert outcome.ok
        extracted = outcome.layers[0]
        assert extracted.layer_id == "extraction-1"
        assert extracted.name == "sites (extracted)"
        assert extracted.origin == Origin.EXTRACTION
        assert [f.properties["name"] for f in extracted.features] == ["in"]
        # Copies, not shared references
        extracted.features[0].properties["name"] = "changed"
        assert source.features[0].properties["name"] == "in"

    def test_requires_polygon(self, settings):
        workbench = _workbench(settings)
        source = workbench.import_files([ImportSource("sites.geojson", json.dumps(SITES).encode())]).layers[0]
        assert workbench.extract_by_polygon(source.layer_id).kind == "invalid_geometry_for_operation"

    def test_no_intersection(self, settings):
        workbench = _workbench(settings)
        source = workbench.import_files([ImportSource("sites.geojson", json.dumps(SITES).encode())]).layers[0]
        _draw_square(workbench, 10.0, 10.0, 11.0, 11.0)
        assert workbench.extract_by_polygon(source.layer_id).kind == "empty_result"

    def test_tile_layer(self, settings):
        workbench = _workbench(settings)
        workbench.registry.add(Layer("wms-x", "X", RasterSource("http://h/wms"), origin=Origin.WMS, remote_name="x"))
        _draw_square(workbench, 0.0, 0.0, 2.0, 2.0)
        assert workbench.extract_by_polygon("wms-x").kind == "invalid_geometry_for_operation"


@pytest.mark.unit
class TestRemote:
    def test_fetch_osm_without_drawing(self, settings):
        calls = []
        workbench = _workbench(settings, lambda request: calls.append(request) or httpx.Response(200, json={}))
        outcome = asyncio.run(workbench.fetch_osm(["health_centers"]))
        assert outcome.kind == "invalid_geometry_for_operation"
        assert calls == []

    def test_fetch_osm(self, settings):
        payload = {"elements": [
            {"type": "node", "id": 1, "lat": 1.0, "lon": 1.0, "tags": {"amenity": "clinic"}},
        ]}
        workbench = _workbench(settings, lambda request: httpx.Response(200, json=payload))
        _draw_square(workbench, 0.0, 0.0, 2.0, 2.0)
        outcome = asyncio.run(workbench.fetch_osm(["health_centers"]))
        assert outcome.ok
        assert outcome.value == {"health_centers": 1}
        assert outcome.layers[0].name == "OSM Health Centers (1)"

    def test_transport_failure_logged_and_notified(self, settings):
        def refuse(request):
            raise httpx.ConnectError("refused")

        workbench = _workbench(settings, refuse)
        q = workbench.bus.subscribe()
        outcome = asyncio.run(workbench.discover("maps.test/geoserver"))
        assert outcome.kind == "transport_failure"
        notices = _notices(q)
        assert len(notices) == 1 and notices[0]["level"] == "error"

    def test_duplicate_wms_single_notice(self, settings):
        capabilities = b"<WMS_Capabilities><Capability><Layer><Layer><Name>roads</Name></Layer></Layer></Capability></WMS_Capabilities>"
        workbench = _workbench(settings, lambda request: httpx.Response(200, content=capabilities))
        asyncio.run(workbench.discover("maps.test/geoserver"))
        assert workbench.add_wms("roads").ok
        q = workbench.bus.subscribe()
        outcome = workbench.add_wms("roads")
        assert outcome.kind == "duplicate_layer"
        assert [n["kind"] for n in _notices(q)] == ["duplicate_layer"]

    def test_catalog_search_empty(self, settings):
        workbench = _workbench(
            settings, lambda request: httpx.Response(200, json={"type": "FeatureCollection", "features": []})
        )
        outcome = asyncio.run(workbench.search_catalog((0.0, 0.0, 1000.0, 1000.0)))
        assert outcome.ok
        assert outcome.layers == []

    def test_busy_adapter(self, settings):
        workbench = _workbench(settings, lambda request: httpx.Response(200, json={}))
        workbench.catalog.busy = True
        outcome = asyncio.run(workbench.search_catalog((0.0, 0.0, 1000.0, 1000.0)))
        assert outcome.kind == "busy"

    def test_location_search(self, settings):
        place = {"lat": "-34.6037", "lon": "-58.3816", "display_name": "Buenos Aires, Argentina",
                 "boundingbox": ["-34.71", "-34.52", "-58.53", "-58.33"]}
        workbench = _workbench(settings, lambda request: httpx.Response(200, json=[place]))
        outcome = asyncio.run(workbench.search_location("Buenos Aires"))
        assert outcome.ok
        assert [p.name for p in outcome.value] == ["Buenos Aires"]

    def test_location_search_failure_single_notice(self, settings):
        workbench = _workbench(settings, lambda request: httpx.Response(502))
        q = workbench.bus.subscribe()
        outcome = asyncio.run(workbench.search_location("Buenos Aires"))
        assert outcome.kind == "transport_failure"
        assert len(_notices(q)) == 1
