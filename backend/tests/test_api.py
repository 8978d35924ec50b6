"""
Tests for API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from roadview.config import SOURCE_ENV
from roadview.main import app
from roadview.services import session as session_module
from roadview.utils.sample_data import generate_survey_session


@pytest.fixture(autouse=True)
def fresh_store(monkeypatch):
    """Each test starts without a loaded session."""
    monkeypatch.delenv(SOURCE_ENV, raising=False)
    session_module._store = None
    yield
    session_module._store = None


@pytest.fixture
def survey_folder(tmp_path):
    return generate_survey_session(tmp_path / "survey_0514")


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def loaded_client(client, survey_folder):
    response = client.post("/session/load", json={"source": str(survey_folder)})
    assert response.status_code == 200
    return client


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Road Inspection Survey Dashboard"
        assert data["status"] == "running"

    def test_health_without_session(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["session"] is None
        assert data["frame_count"] == 0

    def test_health_with_session(self, loaded_client):
        data = loaded_client.get("/health").json()

        assert data["session"] == "survey_0514"
        assert data["frame_count"] == 60
        assert data["last_error"] is None


class TestStartupLoad:
    """The lifespan loads the configured source."""

    def test_source_from_environment(self, survey_folder, monkeypatch):
        monkeypatch.setenv(SOURCE_ENV, str(survey_folder))

        with TestClient(app) as client:
            response = client.get("/session")

        assert response.status_code == 200
        assert response.json()["frame_count"] == 60

    def test_bad_source_does_not_block_startup(self, tmp_path, monkeypatch):
        monkeypatch.setenv(SOURCE_ENV, str(tmp_path / "missing"))

        with TestClient(app) as client:
            assert client.get("/").status_code == 200
            assert client.get("/session").status_code == 404
            assert client.get("/health").json()["last_error"] is not None


class TestSessionEndpoints:
    """Tests for session loading and inspection."""

    def test_no_session(self, client):
        assert client.get("/session").status_code == 404
        assert client.get("/session/timeline").status_code == 404
        assert client.get("/session/frames/0").status_code == 404

    def test_load_session(self, client, survey_folder):
        response = client.post("/session/load", json={"source": str(survey_folder)})

        assert response.status_code == 200
        data = response.json()
        assert data["session_name"] == "survey_0514"
        assert data["frame_count"] == 60
        assert data["is_empty"] is False
        assert data["total_detections"] == 36
        assert data["generation"] == 1
        assert {c["name"] for c in data["cameras"]} == {"4kcam", "cam1"}
        assert data["gps_statistics"]["coverage"] == 1.0
        assert data["gps_statistics"]["source_counts"]["track_log"] == 60
        assert data["failures"] == {}

    def test_load_missing_folder(self, client, tmp_path):
        response = client.post("/session/load", json={"source": str(tmp_path / "missing")})
        assert response.status_code == 503

    def test_load_empty_source_rejected(self, client):
        response = client.post("/session/load", json={"source": ""})
        assert response.status_code == 422

    def test_failed_load_keeps_session(self, loaded_client, tmp_path):
        response = loaded_client.post("/session/load", json={"source": str(tmp_path / "missing")})
        assert response.status_code == 503

        response = loaded_client.get("/session")
        assert response.status_code == 200
        assert response.json()["session_name"] == "survey_0514"

    def test_manifest_unavailable(self, loaded_client, survey_server, monkeypatch):
        survey_server.fail("/api/metadata/scan", status=500)
        monkeypatch.setattr(session_module, "open_provider", lambda source, config: survey_server.provider())

        response = loaded_client.post("/session/load", json={"source": "http://survey.test"})

        assert response.status_code == 502
        assert loaded_client.get("/session").json()["session_name"] == "survey_0514"

    def test_refresh(self, loaded_client):
        response = loaded_client.post("/session/refresh")

        assert response.status_code == 200
        assert response.json()["generation"] == 2

    def test_refresh_without_session(self, client):
        assert client.post("/session/refresh").status_code == 404

    def test_cameras(self, loaded_client):
        cameras = loaded_client.get("/session/cameras").json()

        by_name = {c["name"]: c for c in cameras}
        assert by_name["4kcam"]["classes"] == ["crack", "pothole"]
        assert by_name["4kcam"]["detection_count"] == 24
        assert by_name["cam1"]["color"] == "#10B981"

    def test_timeline_page(self, loaded_client):
        data = loaded_client.get("/session/timeline", params={"start": 10, "limit": 5}).json()

        assert data["total"] == 60
        assert data["start"] == 10
        assert [f["index"] for f in data["frames"]] == [10, 11, 12, 13, 14]

    def test_timeline_past_end(self, loaded_client):
        data = loaded_client.get("/session/timeline", params={"start": 100}).json()
        assert data["frames"] == []

    def test_frame(self, loaded_client):
        response = loaded_client.get("/session/frames/0")

        assert response.status_code == 200
        frame = response.json()
        assert frame["index"] == 0
        assert frame["time"] == "10:00:00"
        assert frame["gps_source"] == "track_log"
        assert isinstance(frame["latitude"], float)

    def test_frame_out_of_range(self, loaded_client):
        assert loaded_client.get("/session/frames/999").status_code == 404

    def test_nearest_frame(self, loaded_client):
        response = loaded_client.get("/session/frames/nearest", params={"time": "10:00:30"})

        assert response.status_code == 200
        assert response.json()["index"] == 30

    def test_nearest_frame_bad_time(self, loaded_client):
        response = loaded_client.get("/session/frames/nearest", params={"time": "later"})
        assert response.status_code == 400

    @pytest.mark.parametrize("value", ["inf", "1e15", "99999999999999999"])
    def test_nearest_frame_out_of_range_number(self, loaded_client, value):
        response = loaded_client.get("/session/frames/nearest", params={"time": value})
        assert response.status_code == 400

    def test_gps_and_metrics(self, loaded_client):
        gps = loaded_client.get("/session/gps").json()
        metrics = loaded_client.get("/session/metrics").json()

        assert len(gps) == 60
        assert gps[0]["source"] == "track_log"
        assert len(metrics) == 12
        assert metrics[0]["memory_total_mb"] == 8192.0
        # Not in the sample CSV, so the documented default applies
        assert metrics[0]["fan_speed_percent"] == 30.0

    def test_stats(self, loaded_client):
        stats = loaded_client.get("/session/stats").json()

        assert stats["frame_count"] == 60
        assert stats["total_detections"] == 36
        assert set(stats["unique_classes"]) == {"crack", "pothole", "pole"}
        assert stats["duration_s"] == 59.0
        assert stats["track_length_m"] > 0


class TestPlaybackEndpoints:
    """Tests for playback control."""

    def test_state_after_load(self, loaded_client):
        state = loaded_client.get("/playback").json()

        assert state["current_index"] == 0
        assert state["length"] == 60
        assert state["is_playing"] is False
        assert state["speed_multiplier"] == 1.0

    def test_state_without_session(self, client):
        state = client.get("/playback").json()

        assert state["current_index"] == -1
        assert state["length"] == 0

    def test_seek_clamps(self, loaded_client):
        state = loaded_client.post("/playback/seek", json={"index": 999}).json()
        assert state["current_index"] == 59

    def test_step(self, loaded_client):
        loaded_client.post("/playback/seek", json={"index": 10})
        state = loaded_client.post("/playback/step", json={"delta": -3}).json()
        assert state["current_index"] == 7

    def test_current_frame(self, loaded_client):
        loaded_client.post("/playback/seek", json={"index": 5})
        frame = loaded_client.get("/playback/frame").json()
        assert frame["index"] == 5

    def test_current_frame_without_session(self, client):
        assert client.get("/playback/frame").status_code == 404

    def test_play_pause(self, loaded_client):
        state = loaded_client.post("/playback/play").json()
        assert state["is_playing"] is True

        state = loaded_client.post("/playback/pause").json()
        assert state["is_playing"] is False

    def test_toggle(self, loaded_client):
        assert loaded_client.post("/playback/toggle").json()["is_playing"] is True
        assert loaded_client.post("/playback/toggle").json()["is_playing"] is False

    def test_speed(self, loaded_client):
        state = loaded_client.post("/playback/speed", json={"multiplier": 4}).json()

        assert state["speed_multiplier"] == 4.0
        assert state["tick_period_s"] == 0.25

    @pytest.mark.parametrize("bad", [0, -2])
    def test_invalid_speed(self, loaded_client, bad):
        response = loaded_client.post("/playback/speed", json={"multiplier": bad})
        assert response.status_code == 422

    def test_reload_resets_playback(self, loaded_client, survey_folder):
        loaded_client.post("/playback/seek", json={"index": 20})
        loaded_client.post("/session/load", json={"source": str(survey_folder)})

        assert loaded_client.get("/playback").json()["current_index"] == 0
