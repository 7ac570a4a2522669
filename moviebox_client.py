#!/usr/bin/env python3
"""
MovieBox Client - Session-aware async client for the MovieBox h5 API
Bootstraps the upstream session once, replays its cookies and reshapes responses
"""

import sys
import os
import asyncio
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import IntEnum

import httpx


MIRROR_HOSTS = (
    "h5.aoneroom.com",
    "movieboxapp.in",
    "moviebox.pk",
    "moviebox.ph",
    "moviebox.id",
    "v.moviebox.ph",
    "netnaija.video",
)

DEFAULT_HOST_INDEX = 2


class SubjectType(IntEnum):
    ALL = 0
    MOVIES = 1
    TV_SERIES = 2
    MUSIC = 6


class MovieBoxError(Exception):
    pass


class UpstreamError(MovieBoxError):
    """Transport failure or non-2xx answer from the upstream"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingFieldError(MovieBoxError):
    pass


@dataclass(frozen=True)
class UpstreamConfig:
    host: str = MIRROR_HOSTS[DEFAULT_HOST_INDEX]
    timeout: float = 30.0
    app_name: str = "moviebox"
    trending_uid: str = "5591179548772780352"
    api_prefix: str = "/wefeed-h5-bff"
    user_agent: str = 'Mozilla/5.0 (X11; Linux x86_64; rv:137.0) Gecko/20100101 Firefox/137.0'

    @classmethod
    def from_env(cls) -> "UpstreamConfig":
        return cls(host=os.environ.get("MOVIEBOX_API_HOST") or MIRROR_HOSTS[DEFAULT_HOST_INDEX])

    @property
    def host_url(self) -> str:
        return f"https://{self.host}"

    @property
    def api_url(self) -> str:
        return f"{self.host_url}{self.api_prefix}"

    @property
    def default_headers(self) -> Dict[str, str]:
        return {
            'X-Client-Info': '{"timezone":"Africa/Nairobi"}',
            'Accept-Language': 'en-US,en;q=0.5',
            'Accept': 'application/json',
            'User-Agent': self.user_agent,
            'Referer': self.host_url,
            'Host': self.host,
        }

    def merge_headers(self, overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Default headers with per-call overrides applied on top"""
        return {**self.default_headers, **(overrides or {})}


@dataclass
class SessionState:
    initialized: bool = False
    app_info: Any = None
    cookies_set: bool = False


@dataclass
class MediaFile:
    url: Optional[str] = None
    quality: Optional[str] = None
    size: Any = None
    format: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MediaFile":
        return cls(
            url=raw.get("url"),
            quality=raw.get("quality"),
            size=raw.get("size"),
            format=raw.get("format"),
        )

    def as_source(self) -> Dict[str, Any]:
        return {
            "quality": self.quality or "Unknown",
            "url": self.url,
            "size": self.size,
            "format": self.format or "mp4",
        }


def unwrap_envelope(body: Any) -> Any:
    """
    Return the payload of an upstream body.

    Enveloped bodies look like {"code": 0, "message": "ok", "data": {...}} and
    yield their "data" member; anything else (no "data", a list or plain text)
    is already the payload and is returned unchanged. A "data" member of null,
    false, 0 or "" does not count as a payload, while empty objects and lists do.
    """
    if isinstance(body, dict) and _has_value(body.get("data")):
        return body["data"]
    return body


def _has_value(value: Any) -> bool:
    if value is None or isinstance(value, (bool, int, float, str)):
        return bool(value)
    return True


def filter_by_subject_type(content: Any, subject_type: int) -> Any:
    if subject_type == SubjectType.ALL or not isinstance(content, dict):
        return content
    items = content.get("items")
    if isinstance(items, list):
        content["items"] = [item for item in items if isinstance(item, dict) and item.get("subjectType") == subject_type]
    return content


def process_sources(content: Any) -> Any:
    if isinstance(content, dict) and isinstance(content.get("mediaFileList"), list):
        content["processedSources"] = [
            MediaFile.from_dict(raw).as_source()
            for raw in content["mediaFileList"]
            if isinstance(raw, dict)
        ]
    return content


class MovieBoxClient:
    """Async MovieBox client sharing one cookie jar and one bootstrapped session per process"""

    BOOTSTRAP_PATH = "/app/get-latest-app-pkgs"

    def __init__(self, config: Optional[UpstreamConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None, debug: bool = True):
        self.config = config or UpstreamConfig.from_env()
        self.debug = debug
        self.session = SessionState()
        self._bootstrap: Optional[asyncio.Future] = None
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout),
            follow_redirects=True,
            transport=transport,
        )

    def log(self, message: str, level: str = "INFO"):
        if self.debug:
            print(f"[MovieBox {level}] {message}", file=sys.stderr)

    @property
    def cookies(self) -> httpx.Cookies:
        return self._http.cookies

    async def close(self):
        await self._http.aclose()

    async def _send(self, url: str, method: str = "GET", params: Optional[Dict[str, Any]] = None,
                    json: Any = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers=self.config.merge_headers(headers),
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            self.log(f"Request to {url} failed: {status} {e.response.reason_phrase}", "ERROR")
            raise UpstreamError(f"Request failed with status code {status}", status_code=status) from e
        except httpx.HTTPError as e:
            message = str(e) or e.__class__.__name__
            self.log(f"Request to {url} failed: {message}", "ERROR")
            raise UpstreamError(message) from e

    @staticmethod
    def _payload(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return unwrap_envelope(body)

    async def _bootstrap_session(self) -> SessionState:
        self.log("Initializing session cookies...")
        url = f"{self.config.api_url}{self.BOOTSTRAP_PATH}"
        response = await self._send(url, params={"app_name": self.config.app_name})

        self.session.app_info = self._payload(response)
        self.session.cookies_set = bool(response.headers.get_list("set-cookie"))
        self.session.initialized = True
        self.log("Session cookies initialized successfully")
        if self.session.cookies_set:
            self.log(f"Received cookies: {', '.join(self.cookies.keys())}")
        return self.session

    async def ensure_session(self) -> SessionState:
        if self.session.initialized:
            return self.session

        # all cold-start callers wait on the same bootstrap
        if self._bootstrap is None:
            self._bootstrap = asyncio.ensure_future(self._bootstrap_session())
            self._bootstrap.add_done_callback(self._bootstrap_done)

        await asyncio.shield(self._bootstrap)
        return self.session

    def _bootstrap_done(self, bootstrap: asyncio.Future):
        if bootstrap.cancelled():
            error = "cancelled"
        elif bootstrap.exception() is not None:
            error = bootstrap.exception()
        else:
            return
        # failed bootstraps are never cached; the next caller starts a new one
        self.log(f"Failed to get app info: {error}", "ERROR")
        if self._bootstrap is bootstrap:
            self._bootstrap = None

    async def forward(self, path: str, method: str = "GET", params: Optional[Dict[str, Any]] = None,
                      json: Any = None, headers: Optional[Dict[str, str]] = None) -> Any:
        await self.ensure_session()
        response = await self._send(f"{self.config.api_url}{path}", method=method,
                                    params=params, json=json, headers=headers)
        return self._payload(response)

    async def homepage(self) -> Any:
        return await self.forward("/web/home")

    async def trending(self, page: int = 0, per_page: int = 18) -> Any:
        params = {
            "page": page,
            "perPage": per_page,
            "uid": self.config.trending_uid,
        }
        return await self.forward("/web/subject/trending", params=params)

    async def search(self, keyword: str, page: int = 1, per_page: int = 24,
                     subject_type: int = SubjectType.ALL) -> Any:
        payload = {
            "keyword": keyword,
            "page": page,
            "perPage": per_page,
            "subjectType": int(subject_type),
        }
        content = await self.forward("/web/subject/search", method="POST", json=payload)
        return filter_by_subject_type(content, subject_type)

    async def detail(self, subject_id: str) -> Any:
        return await self.forward("/web/subject/detail", params={"subjectId": subject_id})

    async def sources(self, subject_id: str, season: int = 0, episode: int = 0) -> Any:
        """
        Resolve download sources for a movie or an episode.

        The download endpoint only answers when the Referer points at the
        subject's page, so the detail lookup has to run first to learn its
        detailPath. Movies use season 0 / episode 0.
        """
        self.log(f"Getting sources for subjectId: {subject_id}")
        info = await self.detail(subject_id)

        subject = info.get("subject") if isinstance(info, dict) else None
        detail_path = subject.get("detailPath") if isinstance(subject, dict) else None
        if not detail_path:
            raise MissingFieldError("Could not get movie detail path for referer header")

        referer = f"{self.config.host_url}/movies/{detail_path}"
        self.log(f"Using referer: {referer}")

        params = {
            "subjectId": subject_id,
            "se": season,
            "ep": episode,
        }
        content = await self.forward("/web/subject/download", params=params, headers={"Referer": referer})
        return process_sources(content)

