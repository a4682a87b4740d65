"""
Tests for the FastAPI backend endpoints.
"""

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from core.io import format_map

from conftest import make_graph
from test_observation_loader import HEADER, raw_line


@pytest.fixture
def client():
    return TestClient(api_main.app)


@pytest.fixture
def observation_csv():
    lines = [
        HEADER,
        raw_line(1, "08:00:00", 30, "A"),
        raw_line(1, "08:05:00", 30, "B", lon=153.01),
        raw_line(1, "10:00:00", 30, "B", lon=153.01),
        raw_line(1, "10:05:00", 30, "C", lon=153.02),
        raw_line(2, "09:00:00", 30, "C", lon=153.02),
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")


class TestInfoEndpoints:
    """Tests for the informational endpoints."""

    def test_health(self, client):
        """Health check reports the service."""
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        """Root lists the endpoints."""
        response = client.get("/")
        assert response.status_code == 200
        assert "POST /api/map/transform" in response.json()["endpoints"]

    def test_config(self, client):
        """Config exposes the defaults."""
        config = client.get("/api/config").json()
        assert config["segmentation"]["max_time_gap"] == 1200
        assert "compact" in config["map"]["operations"]


class TestSegmentEndpoint:
    """Tests for POST /api/observations/segment."""

    def test_segment(self, client, observation_csv):
        """Trips, stations, statistics and boundaries are returned."""
        response = client.post(
            "/api/observations/segment",
            files={'file': ('observations.csv', observation_csv, 'text/csv')},
            params={'boundary_extension': 500},
        )
        assert response.status_code == 200
        result = response.json()
        assert len(result["sequences"]) == 2
        assert all(s["observation_count"] >= 2 for s in result["sequences"])
        assert [s["stations"] for s in result["sequences"]] == [['A', 'B'], ['B', 'C']]
        assert sorted(s["station_id"] for s in result["stations"]) == ['A', 'B', 'C']
        assert result["loader_statistics"]["record_count"] == 5
        assert result["segmentation_statistics"]["cut_count"] == 1
        assert result["boundary"]["min_lon"] == 153.0
        assert result["extended_boundary"]["min_lon"] < 153.0

    def test_short_time_gap(self, client, observation_csv):
        """A larger time gap keeps the device in one trip."""
        response = client.post(
            "/api/observations/segment",
            files={'file': ('observations.csv', observation_csv, 'text/csv')},
            params={'max_time_gap': 86400},
        )
        assert response.status_code == 200
        assert len(response.json()["sequences"]) == 1

    def test_invalid_time_gap(self, client, observation_csv):
        """Out of range parameters are a bad request."""
        response = client.post(
            "/api/observations/segment",
            files={'file': ('observations.csv', observation_csv, 'text/csv')},
            params={'max_time_gap': 0},
        )
        assert response.status_code == 400

    def test_malformed_record(self, client):
        """A record with missing fields is a bad request."""
        response = client.post(
            "/api/observations/segment",
            files={'file': ('observations.csv', b"1,2,3\n", 'text/csv')},
        )
        assert response.status_code == 400
        assert "format length" in response.json()["detail"]

    def test_empty_file(self, client):
        """An empty upload is a bad request."""
        response = client.post(
            "/api/observations/segment",
            files={'file': ('observations.csv', b"", 'text/csv')},
        )
        assert response.status_code == 400

    def test_file_too_large(self, client, observation_csv, monkeypatch):
        """Uploads above the size limit are rejected."""
        monkeypatch.setattr(api_main, "MAX_UPLOAD_SIZE_MB", 0)
        response = client.post(
            "/api/observations/segment",
            files={'file': ('observations.csv', observation_csv, 'text/csv')},
        )
        assert response.status_code == 413


class TestMapTransformEndpoint:
    """Tests for POST /api/map/transform."""

    @pytest.fixture
    def map_text(self):
        graph = make_graph(
            {'a': (0, 0), 'b': (10, 0), 'c': (20, 0), 'd': (30, 0)},
            [('1', ['a', 'b']), ('2', ['b', 'c']), ('3', ['c', 'd'])],
        )
        return format_map(graph).encode("utf-8")

    def test_compact(self, client, map_text):
        """The compacted map is summarised and serialised."""
        response = client.post(
            "/api/map/transform",
            files={'file': ('map.txt', map_text, 'text/plain')},
            params={'operation': 'compact'},
        )
        assert response.status_code == 200
        result = response.json()
        assert result["source"]["way_count"] == 3
        assert result["result"]["way_count"] == 1
        assert result["result"]["is_compact_map"]
        assert "W 1,2,3|" in result["map_text"]

    def test_planarity(self, client, map_text):
        """The planarity operation reports the crossing count."""
        response = client.post(
            "/api/map/transform",
            files={'file': ('map.txt', map_text, 'text/plain')},
            params={'operation': 'planarity'},
        )
        assert response.status_code == 200
        assert response.json()["non_planar_count"] == 0
        assert response.json()["is_planar"]

    def test_unknown_operation(self, client, map_text):
        """Unknown operations are a bad request."""
        response = client.post(
            "/api/map/transform",
            files={'file': ('map.txt', map_text, 'text/plain')},
            params={'operation': 'flatten'},
        )
        assert response.status_code == 400

    def test_broken_map(self, client):
        """A way to an unknown node is a bad request."""
        response = client.post(
            "/api/map/transform",
            files={'file': ('map.txt', b"N a 0 0\nW 1||a 0 0,b 1 0\n", 'text/plain')},
        )
        assert response.status_code == 400


class TestLauncher:
    """Tests for the server launcher."""

    def test_arguments_reach_uvicorn(self, monkeypatch):
        """Host, port and reload flag are passed to uvicorn."""
        import run_api

        calls = []
        monkeypatch.setattr(run_api.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr("sys.argv", ["run_api.py", "--host", "127.0.0.1", "--port", "9000", "--no-reload"])
        assert run_api.main() == 0
        assert calls == [("api.main:app", {"host": "127.0.0.1", "port": 9000, "reload": False})]

    def test_defaults_from_settings(self, monkeypatch):
        """Without arguments the configured address is used."""
        import run_api

        calls = []
        monkeypatch.setattr(run_api.uvicorn, "run", lambda app, **kwargs: calls.append(kwargs))
        monkeypatch.setattr("sys.argv", ["run_api.py"])
        run_api.main()
        assert calls == [{"host": run_api.API_HOST, "port": run_api.API_PORT, "reload": True}]
