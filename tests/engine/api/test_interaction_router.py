"""Tests for the interaction API."""

import json

import pytest

SITES = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0.0, 0.0]}, "properties": {"name": "origin"}},
    ],
}

SQUARE = {"type": "Polygon", "coordinates": [[[-1000, -1000], [1000, -1000], [1000, 1000], [-1000, 1000], [-1000, -1000]]]}


@pytest.mark.unit
class TestCommands:
    def test_initial_state(self, client):
        assert client.get("/api/interaction").json() == {"state": "idle"}

    def test_draw_toggle(self, client):
        assert client.post("/api/interaction/draw", json={"kind": "Polygon"}).json() == {
            "state": "drawing", "kind": "Polygon",
        }
        assert client.post("/api/interaction/draw", json={"kind": "Polygon"}).json() == {"state": "idle"}

    def test_invalid_kind(self, client):
        assert client.post("/api/interaction/draw", json={"kind": "Circle"}).status_code == 422

    def test_inspect_stops_drawing(self, client):
        client.post("/api/interaction/draw", json={"kind": "Point"})
        assert client.post("/api/interaction/inspect").json()["state"] == "inspecting"
        assert client.post("/api/interaction/inspect").json() == {"state": "idle"}


@pytest.mark.unit
class TestPointer:
    def test_draw_then_extract(self, client):
        imported = client.post(
            "/api/layers/import", files=[("files", ("sites.geojson", json.dumps(SITES).encode()))]
        ).json()["layers"][0]

        client.post("/api/interaction/draw", json={"kind": "Polygon"})
        drawn = client.post("/api/interaction/pointer", json={"kind": "draw_end", "geometry": SQUARE}).json()
        assert drawn["handled"] is True
        assert drawn["feature"]["id"] == "drawn-1"

        response = client.post(f"/api/layers/{imported['id']}/extract")
        assert response.status_code == 200
        assert response.json()["layers"][0]["name"] == "sites (extracted)"

    def test_click_query(self, client):
        client.post("/api/layers/import", files=[("files", ("sites.geojson", json.dumps(SITES).encode()))])
        client.post("/api/interaction/inspect")
        body = {
            "kind": "click",
            "pixel": [50, 50],
            "viewport": {"extent": [-100, -100, 100, 100], "width": 100, "height": 100},
        }
        data = client.post("/api/interaction/pointer", json=body).json()
        assert data["query"]["outcome"] == "found"
        assert data["query"]["attributes"] == [{"name": "origin"}]

    def test_ignored_event(self, client):
        data = client.post("/api/interaction/pointer", json={"kind": "click", "pixel": [1, 1]}).json()
        assert data == {"state": "idle", "handled": False}


@pytest.mark.unit
class TestDrawings:
    def test_export_and_clear(self, client):
        assert client.get("/api/interaction/drawings/export").status_code == 422

        client.post("/api/interaction/draw", json={"kind": "Polygon"})
        client.post("/api/interaction/pointer", json={"kind": "draw_end", "geometry": SQUARE})
        response = client.get("/api/interaction/drawings/export")
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="drawings.kml"'
        assert b"<Polygon>" in response.content

        assert client.delete("/api/interaction/drawings").json() == {"cleared": 1}
