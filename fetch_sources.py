#!/usr/bin/env python3
"""
MovieBox Sources Lookup - Resolves download links for a subject from the command line
"""
import sys
import json
import asyncio
from typing import Optional, List, Dict, Any

import httpx

from moviebox_client import MovieBoxClient, UpstreamConfig


async def fetch_sources(subject_id: str, season: int = 0, episode: int = 0,
                        transport: Optional[httpx.AsyncBaseTransport] = None) -> List[Dict[str, Any]]:
    """
    Bootstrap a session and resolve the processed sources of one subject

    Args:
        subject_id: MovieBox subject id
        season: Season number, 0 for movies
        episode: Episode number, 0 for movies

    Returns:
        List of {quality, url, size, format} dictionaries (empty when the upstream lists no files)
    """
    client = MovieBoxClient(UpstreamConfig.from_env(), transport=transport)
    try:
        content = await client.sources(subject_id, season=season, episode=episode)
    finally:
        await client.close()

    if isinstance(content, dict):
        return content.get("processedSources", [])
    return []


def main(argv: List[str]) -> int:
    if not argv:
        print("Usage: python3 fetch_sources.py <subject_id> [season] [episode]", file=sys.stderr)
        print("Example: python3 fetch_sources.py 8906247916759695608", file=sys.stderr)
        return 1

    subject_id = argv[0]
    try:
        season = int(argv[1]) if len(argv) > 1 else 0
        episode = int(argv[2]) if len(argv) > 2 else 0
        sources = asyncio.run(fetch_sources(subject_id, season, episode))
    except Exception as e:
        print(f"[Sources Error] {subject_id}: {e}", file=sys.stderr)
        return 1

    print(json.dumps(sources, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
