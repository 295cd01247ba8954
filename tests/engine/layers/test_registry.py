"""Tests for LayerRegistry: ids, z-order, scratch layer, renderer diff, events."""

import pytest

from geoengine import events
from geoengine.errors import EmptyResult, InvalidGeometryForOperation
from geoengine.events import EventBus, drain
from geoengine.layers import Layer, LayerFeature, LayerRegistry, Origin, RasterSource, VectorSource
from geoengine.layers.registry import SCRATCH_Z_INDEX, RendererLayerState


def _vector(layer_id, name=None, features=None, origin=Origin.FILE):
    return Layer(layer_id, name or layer_id, VectorSource(features or []), origin=origin)


def _wms(remote_name):
    return Layer(
        f"wms-{remote_name}",
        remote_name,
        RasterSource("http://example.com/geoserver/wms", {"LAYERS": remote_name, "TILED": True}),
        origin=Origin.WMS,
        remote_name=remote_name,
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def registry(bus):
    return LayerRegistry(bus)


@pytest.mark.unit
class TestRegistryOrdering:
    """Ids stay unique and z-index follows insertion order."""

    def test_z_index_increases_with_insertion(self, registry):
        for name in ("a", "b", "c"):
            assert registry.add(_vector(name)) is True
        z = [l.z_index for l in registry.list_layers()]
        assert z == sorted(z)
        assert len(set(z)) == 3

    def test_ids_unique_across_add_remove_sequences(self, registry):
        ops = ["a", "b", "-a", "c", "a", "b", "-b", "d", "c"]
        for op in ops:
            if op.startswith("-"):
                registry.remove(op[1:])
            else:
                registry.add(_vector(op))
        ids = [l.layer_id for l in registry.list_layers()]
        assert len(ids) == len(set(ids))
        z = [l.z_index for l in registry.list_layers()]
        assert z == sorted(z) and len(set(z)) == len(z)

    def test_readded_layer_goes_on_top(self, registry):
        registry.add(_vector("a"))
        registry.add(_vector("b"))
        registry.remove("a")
        registry.add(_vector("a"))
        assert [l.layer_id for l in registry.list_layers()] == ["b", "a"]

    def test_duplicate_id_is_noop_with_notice(self, registry, bus):
        q = bus.subscribe()
        first = _vector("a", "First")
        assert registry.add(first)
        assert registry.add(_vector("a", "Second")) is False
        assert len(registry) == 1
        assert registry.get("a") is first
        notices = [m["data"] for m in drain(q) if m["type"] == events.NOTICE]
        assert notices[-1]["kind"] == "duplicate_layer"

    def test_move_reorders_explicitly(self, registry):
        for name in ("a", "b", "c"):
            registry.add(_vector(name))
        registry.move("c", 0)
        assert [l.layer_id for l in registry.list_layers()] == ["c", "a", "b"]
        assert [l.z_index for l in registry.list_layers()] == [0, 1, 2]

    def test_missing_layer_raises_key_error(self, registry):
        with pytest.raises(KeyError):
            registry.set_visible("nope", False)
        with pytest.raises(KeyError):
            registry.move("nope", 0)


@pytest.mark.unit
class TestScratchLayer:
    """The draw layer is unique and always on top."""

    def test_scratch_layer_above_everything(self, registry):
        registry.add(_vector("scratch", origin=Origin.SCRATCH))
        registry.add(_vector("a"))
        registry.add(_vector("b"))
        ordered = registry.list_layers()
        assert ordered[-1].layer_id == "scratch"
        assert ordered[-1].z_index == SCRATCH_Z_INDEX
        assert registry.get("b").z_index == 1

    def test_second_scratch_rejected(self, registry):
        registry.add(_vector("scratch", origin=Origin.SCRATCH))
        assert registry.add(_vector("scratch-2", origin=Origin.SCRATCH)) is False
        assert registry.scratch.layer_id == "scratch"

    def test_scratch_layer_cannot_be_moved(self, registry):
        registry.add(_vector("scratch", origin=Origin.SCRATCH))
        registry.add(_vector("a"))
        registry.move("scratch", 0)
        assert registry.list_layers()[-1].layer_id == "scratch"


@pytest.mark.unit
class TestDisplayState:
    """Visibility and opacity."""

    def test_opacity_clamped(self, registry):
        registry.add(_vector("a"))
        registry.set_opacity("a", 1.7)
        assert registry.get("a").opacity == 1.0
        registry.set_opacity("a", -0.2)
        assert registry.get("a").opacity == 0.0

    def test_toggle_visible(self, registry):
        registry.add(_vector("a"))
        assert registry.toggle_visible("a") is False
        assert registry.toggle_visible("a") is True


@pytest.mark.unit
class TestReconcile:
    """The diff the renderer applies to catch up."""

    def test_first_reconcile_adds_everything(self, registry):
        registry.add(_vector("a"))
        registry.add(_vector("b"))
        diff = registry.reconcile_with_renderer()
        assert [l.layer_id for l in diff.added] == ["a", "b"]
        assert registry.reconcile_with_renderer().is_empty

    def test_diff_reports_each_kind_of_change(self, registry):
        for name in ("a", "b", "c"):
            registry.add(_vector(name))
        registry.reconcile_with_renderer()

        registry.remove("a")
        registry.set_visible("b", False)
        registry.set_opacity("c", 0.5)
        registry.move("c", 0)
        registry.add(_vector("d"))

        diff = registry.reconcile_with_renderer()
        assert diff.removed == ["a"]
        assert [l.layer_id for l in diff.added] == ["d"]
        assert ("b", False) in diff.visibility
        assert ("c", 0.5) in diff.opacity
        assert dict(diff.reordered)["c"] == 0

    def test_explicit_renderer_snapshot(self, registry):
        registry.add(_vector("a"))
        diff = registry.reconcile_with_renderer(
            {"a": RendererLayerState(0, True, 1.0), "ghost": RendererLayerState(5, True, 1.0)}
        )
        assert diff.added == []
        assert diff.removed == ["ghost"]


@pytest.mark.unit
class TestRegistryEvents:
    """Registry changes are published on the bus."""

    def test_add_and_remove_publish(self, registry, bus):
        q = bus.subscribe()
        registry.add(_vector("a"))
        registry.remove("a")
        types = [m["type"] for m in drain(q)]
        assert events.LAYER_ADDED in types
        assert events.LAYER_REMOVED in types

    def test_remote_layers_publish_state_changes(self, registry, bus):
        seen = []
        bus.add_listener(events.LAYER_STATE_CHANGED, seen.append)
        registry.add(_wms("topp:states"))
        registry.remove("wms-topp:states")
        assert [(s["remote_name"], s["service"], s["added"]) for s in seen] == [
            ("topp:states", "wms", True),
            ("topp:states", "wms", False),
        ]

    def test_remove_unknown_returns_none(self, registry):
        assert registry.remove("nope") is None


@pytest.mark.unit
class TestLayerExtent:
    def test_extent_of_vector_layer(self, registry):
        registry.add(_vector("a", features=[
            LayerFeature("1", "Point", [1.0, 2.0], {}),
            LayerFeature("2", "LineString", [[3.0, -1.0], [5.0, 4.0]], {}),
        ]))
        assert registry.layer_extent("a") == (1.0, -1.0, 5.0, 4.0)

    def test_empty_layer(self, registry):
        registry.add(_vector("a"))
        with pytest.raises(EmptyResult):
            registry.layer_extent("a")

    def test_tile_layer(self, registry):
        registry.add(_wms("roads"))
        with pytest.raises(InvalidGeometryForOperation):
            registry.layer_extent("wms-roads")
