"""Unit tests for EventBus: pub/sub, listeners, overflow and notices."""
from __future__ import annotations

import queue
import threading

import pytest

from geoengine.events import NOTICE, EventBus, Notice, drain


@pytest.mark.unit
class TestEventBusBasics:
    """Core subscribe/publish/unsubscribe functionality."""

    def test_subscribe_returns_queue(self):
        assert isinstance(EventBus().subscribe(), queue.Queue)

    def test_publish_delivers_to_subscriber(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.publish("layer.added", {"id": "a"})
        msg = q.get_nowait()
        assert msg == {"type": "layer.added", "data": {"id": "a"}}

    def test_publish_without_data(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.publish("ping")
        assert "data" not in q.get_nowait()

    def test_unsubscribe_stops_delivery(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.unsubscribe(q)
        bus.publish("after")
        assert q.empty()

    def test_unsubscribe_unknown_queue_is_safe(self):
        EventBus().unsubscribe(queue.Queue())


@pytest.mark.unit
class TestOverflow:
    def test_drops_oldest(self):
        bus = EventBus(maxsize=3)
        q = bus.subscribe()
        for i in range(5):
            bus.publish("n", {"i": i})
        assert [m["data"]["i"] for m in drain(q)] == [2, 3, 4]


@pytest.mark.unit
class TestListeners:
    def test_listener_called_synchronously(self):
        bus = EventBus()
        seen = []
        bus.add_listener("layer.removed", seen.append)
        bus.publish("layer.removed", {"id": "a"})
        bus.publish("layer.added", {"id": "b"})
        assert seen == [{"id": "a"}]

    def test_remove_listener(self):
        bus = EventBus()
        seen = []
        bus.add_listener("x", seen.append)
        bus.remove_listener("x", seen.append)
        bus.remove_listener("x", seen.append)
        bus.publish("x", {})
        assert seen == []

    def test_listener_may_publish(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.add_listener("first", lambda data: bus.publish("second"))
        bus.publish("first")
        assert [m["type"] for m in drain(q)] == ["first", "second"]


@pytest.mark.unit
class TestNotices:
    def test_notify(self):
        bus = EventBus()
        q = bus.subscribe()
        notice = bus.notify("osm.fetched", "3 features", level="info")
        assert notice == Notice("osm.fetched", "3 features", "info")
        msg = q.get_nowait()
        assert msg["type"] == NOTICE
        assert msg["data"] == {"kind": "osm.fetched", "message": "3 features", "level": "info"}


@pytest.mark.unit
class TestThreadSafety:
    def test_concurrent_publish(self):
        bus = EventBus(maxsize=1000)
        q = bus.subscribe()

        def worker(n):
            for i in range(100):
                bus.publish("t", {"n": n, "i": i})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(drain(q)) == 500
