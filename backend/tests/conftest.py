"""
Shared fixtures: a fake survey server served through httpx.MockTransport.
"""

import httpx
import pytest

from roadview.services.provider import HttpDataProvider


BASE_URL = "http://survey.test"


class FakeSurveyServer:
    """
    Routes request paths to canned (status, json) responses.

    Unknown paths answer 404. A route mapped to an exception instance raises
    it, which lets tests simulate transport failures.
    """

    def __init__(self):
        self.routes: dict[str, object] = {"/health": (200, {"status": "ok"})}
        self.requests: list[str] = []

    def set(self, path: str, payload, status: int = 200):
        self.routes[path] = (status, payload)

    def fail(self, path: str, status: int = 500):
        self.routes[path] = (status, {"success": False, "error": "boom"})

    def raise_on(self, path: str, error: Exception):
        self.routes[path] = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"success": False, "error": "not found"})
        if isinstance(route, Exception):
            raise route
        status, payload = route
        return httpx.Response(status, json=payload)

    def provider(self) -> HttpDataProvider:
        return HttpDataProvider(BASE_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def gps_rows():
    return [
        {"timestamp": "2024-05-14 10:00:00", "latitude": 37.5665, "longitude": 126.9780},
        {"timestamp": "2024-05-14 10:00:10", "latitude": 37.5666, "longitude": 126.9781},
        {"timestamp": "2024-05-14 10:00:20", "latitude": 37.5667, "longitude": 126.9782},
    ]


@pytest.fixture
def survey_server(gps_rows):
    """Healthy server with one detection stream F1/4kcam/crack."""
    server = FakeSurveyServer()
    server.set("/api/metadata/scan", {
        "success": True,
        "files": [
            {"session": "F1", "camera": "4kcam", "anomalyType": "crack", "imageCount": 2, "hasImages": True},
        ],
    })
    server.set("/api/gps-data", {"success": True, "data": gps_rows})
    server.set("/api/dashboard", {
        "success": True,
        "summary": {"anomalies": {"4kcam": {"crack": {"recordCount": 2}}}},
    })
    server.set("/api/system-metrics", {
        "success": True,
        "data": [{"timestamp": "2024-05-14 10:00:00", "cpu_usage_percent": "42.5"}],
    })
    server.set("/api/metadata/F1/4kcam/crack", {
        "success": True,
        "data": [
            {"frameNum": 1, "streamId": 100, "className": "crack", "confidence": 0.9,
             "timestamp": "2024-05-14 10:00:01", "imagePath": "frame_1.jpg"},
            {"frameNum": 2, "streamId": 100, "className": "crack", "confidence": 0.8,
             "timestamp": "2024-05-14 10:00:19", "imagePath": "frame_2.jpg"},
        ],
    })
    server.set("/api/images/F1/4kcam/crack", {
        "success": True,
        "images": [
            {"name": "frame_1.jpg", "size": 100, "url": "/data/F1/4kcam/crack/frame_1.jpg"},
            {"name": "frame_2.jpg", "size": 100, "url": "/data/F1/4kcam/crack/frame_2.jpg"},
        ],
    })
    return server
