import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

import api_server
from moviebox_client import MovieBoxClient, UpstreamConfig

API_PREFIX = "/wefeed-h5-bff"
BOOTSTRAP = "/app/get-latest-app-pkgs"

DETAIL_PAYLOAD = {
    "subject": {
        "subjectId": "8906247916759695608",
        "title": "The Matrix",
        "subjectType": 1,
        "detailPath": "the-matrix-QeAbz9Bq3J1",
    },
}

DOWNLOAD_PAYLOAD = {
    "downloads": [],
    "mediaFileList": [
        {"quality": "1080P", "url": "https://bcdnw.example/a.mp4", "size": "2147483648", "format": "mkv"},
        {"url": "https://bcdnw.example/b", "size": "734003200"},
    ],
}

SEARCH_PAYLOAD = {
    "pager": {"page": 1, "perPage": 24, "hasMore": False},
    "items": [
        {"subjectId": "1", "title": "Avatar", "subjectType": 1},
        {"subjectId": "2", "title": "Avatar: The Last Airbender", "subjectType": 2},
        {"subjectId": "3", "title": "Avatar (Soundtrack)", "subjectType": 6},
        {"subjectId": "4", "title": "Avatar: The Way of Water", "subjectType": 1},
    ],
}


class FakeUpstream:
    """MockTransport handler serving canned MovieBox responses and recording every request"""

    def __init__(self):
        self.requests = []
        self.bootstrap_delay = 0.0
        self.routes = {
            BOOTSTRAP: (200, {"code": 0, "message": "ok", "data": {"pkgs": []}},
                        {"set-cookie": "mb_session=abc123; Path=/"}),
            "/web/home": (200, {"code": 0, "data": {"operatingList": []}}, None),
            "/web/subject/trending": (200, {"code": 0, "data": {"subjectList": []}}, None),
            "/web/subject/search": (200, {"code": 0, "data": SEARCH_PAYLOAD}, None),
            "/web/subject/detail": (200, {"code": 0, "data": DETAIL_PAYLOAD}, None),
            "/web/subject/download": (200, {"code": 0, "data": DOWNLOAD_PAYLOAD}, None),
        }

    def set(self, path, status=200, body=None, headers=None):
        self.routes[path] = (status, body, headers)

    def calls(self, path):
        return [r for r in self.requests if r.url.path == API_PREFIX + path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(API_PREFIX):]
        if path == BOOTSTRAP and self.bootstrap_delay:
            await asyncio.sleep(self.bootstrap_delay)

        status, body, headers = self.routes.get(path, (404, {"code": 404, "message": "not found"}, None))
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status, json=body, headers=headers)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream):
    return MovieBoxClient(
        UpstreamConfig(host="moviebox.pk"),
        transport=httpx.MockTransport(upstream),
        debug=False,
    )


@pytest.fixture
def api(client, monkeypatch):
    monkeypatch.setattr(api_server, "moviebox_client", client)
    return TestClient(api_server.app)
