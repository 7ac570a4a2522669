#!/usr/bin/env python3
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import re
import sys
from typing import Optional, Dict, Any, Awaitable
from contextlib import asynccontextmanager
import uvicorn

from moviebox_client import MovieBoxClient, UpstreamConfig, SubjectType

PORT = int(os.environ.get("PORT", "5000"))

moviebox_client: Optional[MovieBoxClient] = None

AVAILABLE_ENDPOINTS = [
    "GET /api/homepage",
    "GET /api/trending",
    "GET /api/search/:query",
    "GET /api/info/:movieId",
    "GET /api/sources/:movieId",
]

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def get_client() -> MovieBoxClient:
    if moviebox_client is None:
        raise RuntimeError("MovieBox client not initialized")
    return moviebox_client


def parse_int(value: Optional[str], default: int) -> int:
    """Leading-integer parse; missing, unparsable or zero values give the default"""
    if value is None:
        return default
    match = _LEADING_INT.match(value)
    if not match:
        return default
    return int(match.group(1)) or default


def success(data: Any) -> Dict[str, Any]:
    return {"status": "success", "data": data}


def failure(message: str, error: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, "error": str(error)},
    )


async def respond(tag: str, message: str, call: Awaitable[Any]):
    try:
        content = await call
    except Exception as e:
        print(f"[{tag} Error] {e}", file=sys.stderr)
        return failure(message, e)
    return success(content)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global moviebox_client
    config = UpstreamConfig.from_env()
    moviebox_client = MovieBoxClient(config)

    print(f"[Server] Proxying MovieBox API at {config.host_url}", file=sys.stderr)
    yield

    if moviebox_client:
        await moviebox_client.close()
        moviebox_client = None

app = FastAPI(title="MovieBox API Server", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def short_circuit_options(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200)
    return await call_next(request)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # unsupported methods on known paths get the unknown-path body
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content={
                "status": "error",
                "message": "Endpoint not found",
                "availableEndpoints": AVAILABLE_ENDPOINTS,
            },
        )
    return JSONResponse(status_code=exc.status_code, content={"status": "error", "message": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    print(f"[Unhandled Error] {request.method} {request.url.path}: {exc!r}", file=sys.stderr)
    response = failure("Internal server error", exc)
    # rendered outside CORSMiddleware
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@app.get("/")
async def root() -> Dict[str, Any]:
    return {
        "status": "success",
        "message": "MovieBox API Server is running",
        "version": "1.0.0",
        "endpoints": [
            "GET /api/homepage - Get homepage content",
            "GET /api/trending - Get trending movies and TV series",
            "GET /api/search/:query - Search for movies and TV series",
            "GET /api/info/:movieId - Get detailed info about a movie/series",
            "GET /api/sources/:movieId - Get streaming sources for a movie/series",
        ],
    }


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    client = get_client()
    return {
        "status": "healthy",
        "upstream": client.config.host,
        "session_initialized": client.session.initialized,
    }


@app.get("/api/homepage")
async def homepage():
    return await respond("Homepage", "Failed to fetch homepage content", get_client().homepage())


@app.get("/api/trending")
async def trending(page: Optional[str] = None, perPage: Optional[str] = None):
    call = get_client().trending(
        page=parse_int(page, 0),
        per_page=parse_int(perPage, 18),
    )
    return await respond("Trending", "Failed to fetch trending content", call)


@app.get("/api/search/{query}")
async def search(query: str, page: Optional[str] = None, perPage: Optional[str] = None,
                 type: Optional[str] = None):
    call = get_client().search(
        query,
        page=parse_int(page, 1),
        per_page=parse_int(perPage, 24),
        subject_type=parse_int(type, SubjectType.ALL),
    )
    return await respond("Search", "Failed to search content", call)


@app.get("/api/info/{movie_id}")
async def movie_info(movie_id: str):
    return await respond("Info", "Failed to fetch movie/series info", get_client().detail(movie_id))


@app.get("/api/sources/{movie_id}")
async def movie_sources(movie_id: str, season: Optional[str] = None, episode: Optional[str] = None):
    call = get_client().sources(
        movie_id,
        season=parse_int(season, 0),
        episode=parse_int(episode, 0),
    )
    return await respond("Sources", "Failed to fetch streaming sources", call)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level="info", workers=1)
