"""
Tests for the source aggregator (HTTP provider via httpx.MockTransport).
"""

import asyncio

import httpx
import pytest

from roadview.config import LoaderConfig
from roadview.models.records import GPSSource, TripleKey
from roadview.services.aggregator import SourceAggregator
from roadview.services.errors import ManifestUnavailable, SourceUnavailable
from roadview.services.timeline import TimelineSynthesizer


KEY = TripleKey("F1", "4kcam", "crack")


def collect(server, config=None):
    async def run():
        provider = server.provider()
        try:
            return await SourceAggregator(provider, config).collect()
        finally:
            await provider.aclose()

    return asyncio.run(run())


class TestCollect:
    """Tests for a healthy server."""

    def test_all_sources(self, survey_server):
        bundle = collect(survey_server)

        assert bundle.origin == "http://survey.test"
        assert [e.key for e in bundle.manifest] == [KEY]
        assert len(bundle.gps) == 3
        assert bundle.gps_source == GPSSource.TRACK_LOG
        assert len(bundle.detections[KEY]) == 2
        assert [i.name for i in bundle.images[KEY]] == ["frame_1.jpg", "frame_2.jpg"]
        assert len(bundle.system_samples) == 1
        assert bundle.system_samples[0].cpu_usage_percent == 42.5
        assert bundle.dashboard["summary"]["anomalies"]["4kcam"]["crack"]["recordCount"] == 2
        assert bundle.failures == {}

    def test_detection_stream_inference(self, survey_server):
        survey_server.set("/api/metadata/F1/4kcam/crack", {
            "success": True,
            "data": [{"frameNum": 7, "confidence": "0.5"}],
        })
        bundle = collect(survey_server)

        detection = bundle.detections[KEY][0]
        assert detection.stream_id == 100
        assert detection.class_name == "crack"

    def test_duplicate_manifest_entries_collapsed(self, survey_server):
        entry = {"session": "F1", "camera": "4kcam", "anomalyType": "crack"}
        survey_server.set("/api/metadata/scan", {"success": True, "files": [entry, entry]})

        bundle = collect(survey_server)

        assert len(bundle.manifest) == 1


class TestPartialFailure:
    """One source failing must not abort the others."""

    def test_detection_stream_fails(self, survey_server):
        survey_server.fail("/api/metadata/F1/4kcam/crack", status=500)

        bundle = collect(survey_server)

        assert bundle.detections[KEY] == []
        assert "detections:F1/4kcam/crack" in bundle.failures
        assert len(bundle.gps) == 3

        frames = TimelineSynthesizer(LoaderConfig()).synthesize(bundle)
        assert len(frames) == 3
        for frame in frames:
            assert frame.detections == ()

    def test_detection_failure_leaves_images_round_robin(self, survey_server):
        survey_server.fail("/api/metadata/F1/4kcam/crack", status=404)

        frames = TimelineSynthesizer(LoaderConfig()).synthesize(collect(survey_server))

        assert [f.images["4kcam"]["crack"] for f in frames] == [
            ("frame_1.jpg",), ("frame_2.jpg",), ("frame_1.jpg",)
        ]

    def test_success_false_is_a_failure(self, survey_server):
        survey_server.set("/api/system-metrics", {"success": False, "error": "no file"})

        bundle = collect(survey_server)

        assert bundle.system_samples == []
        assert bundle.failures["system_metrics"] == "no file"

    def test_missing_data_field_is_a_failure(self, survey_server):
        survey_server.set("/api/images/F1/4kcam/crack", {"success": True})

        bundle = collect(survey_server)

        assert bundle.images[KEY] == []
        assert "images:F1/4kcam/crack" in bundle.failures

    def test_transport_error_is_a_failure(self, survey_server):
        survey_server.raise_on("/api/dashboard", httpx.ConnectError("refused"))

        bundle = collect(survey_server)

        assert bundle.dashboard == {}
        assert "dashboard" in bundle.failures
        assert len(bundle.gps) == 3

    def test_manifest_failure_is_fatal(self, survey_server):
        survey_server.fail("/api/metadata/scan", status=500)

        with pytest.raises(ManifestUnavailable):
            collect(survey_server)

    def test_provider_raises_source_unavailable(self, survey_server):
        survey_server.fail("/api/gps-data", status=503)

        async def run():
            provider = survey_server.provider()
            try:
                await provider.gps_data()
            finally:
                await provider.aclose()

        with pytest.raises(SourceUnavailable) as exc_info:
            asyncio.run(run())
        assert exc_info.value.source == "gps"
        assert "503" in exc_info.value.reason


class TestGPSFallback:
    """Tests for the GPS fallback chain."""

    def test_gps_from_embedded_coordinates(self, survey_server):
        """Empty track log, two detection rows with lat/lon: two metadata fixes."""
        survey_server.set("/api/gps-data", {"success": True, "data": []})
        survey_server.set("/api/metadata/F1/4kcam/crack", {
            "success": True,
            "data": [
                {"frameNum": 1, "timestamp": "2024-05-14 10:00:00", "latitude": 37.5, "longitude": 127.0},
                {"frameNum": 2, "timestamp": "2024-05-14 10:00:05", "latitude": 37.6, "longitude": 127.1},
            ],
        })

        bundle = collect(survey_server)

        assert bundle.gps_source == GPSSource.METADATA
        assert len(bundle.gps) == 2
        assert all(fix.source == GPSSource.METADATA for fix in bundle.gps)
        assert KEY in bundle.gps_capable

        frames = TimelineSynthesizer(LoaderConfig()).synthesize(bundle)
        assert len(frames) == 2
        assert [f.latitude for f in frames] == [37.5, 37.6]

    def test_gps_from_metadata_endpoint(self, survey_server):
        survey_server.fail("/api/gps-data", status=404)
        survey_server.set("/api/gps-from-metadata", {
            "success": True,
            "data": [{"timestamp": "2024-05-14 10:00:00", "latitude": 37.5, "longitude": 127.0}],
        })

        bundle = collect(survey_server)

        assert bundle.gps_source == GPSSource.METADATA
        assert len(bundle.gps) == 1
        assert KEY in bundle.gps_capable
        assert "/api/gps-from-metadata" in survey_server.requests

    def test_synthetic_fallback(self, survey_server):
        survey_server.fail("/api/gps-data", status=500)
        config = LoaderConfig(synthetic_points=8)

        bundle = collect(survey_server, config)

        assert bundle.gps_source == GPSSource.SYNTHETIC
        assert len(bundle.gps) == 8
        assert all(fix.source == GPSSource.SYNTHETIC for fix in bundle.gps)
        assert "gps" in bundle.failures
        assert "gps_metadata:F1/4kcam/crack" in bundle.failures

    def test_synthetic_fallback_is_deterministic(self, survey_server):
        survey_server.fail("/api/gps-data", status=500)

        first = collect(survey_server)
        second = collect(survey_server)

        assert first.gps == second.gps

    def test_synthetic_fallback_disabled(self, survey_server):
        survey_server.fail("/api/gps-data", status=500)

        bundle = collect(survey_server, LoaderConfig(synthetic_fallback=False))

        assert bundle.gps == []
        assert bundle.gps_source is None

    def test_no_stream_data_no_synthetic(self, survey_server):
        """Nothing to show at all: the timeline stays empty."""
        survey_server.fail("/api/gps-data", status=500)
        survey_server.fail("/api/metadata/F1/4kcam/crack", status=500)
        survey_server.fail("/api/images/F1/4kcam/crack", status=500)

        bundle = collect(survey_server)

        assert bundle.gps == []
        assert TimelineSynthesizer(LoaderConfig()).synthesize(bundle) == []
