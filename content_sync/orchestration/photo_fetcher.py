"""Wikimedia Commons image lookup for photo jobs.

One search request per job against the Commons MediaWiki API, restricted to
the File namespace and asking for image info inline. The first result with a
URL wins. HTTP and transport errors are raised so the queue can retry the
job; an empty search completes the job with no photo.

Usage:
    from content_sync.orchestration.photo_fetcher import WikimediaPhotoFetcher

    async with WikimediaPhotoFetcher() as fetch:
        stats = await queue.process_all(fetch)
"""

import re
from typing import Any, Dict, Optional

import httpx

from content_sync.config.logging import get_logger
from content_sync.orchestration.photo_jobs import PhotoJob

logger = get_logger("photo_fetcher")

COMMONS_API_URL = "https://commons.wikimedia.org/w/api.php"

_SEARCH_HINTS = {
    "artist": "DJ musician",
    "gear": "synthesizer",
    "venue": "nightclub concert venue",
}

_TAG_RE = re.compile(r"<[^>]*>")


def search_query(entity_type: str, entity_name: str) -> str:
    hint = _SEARCH_HINTS.get(entity_type)
    return f"{entity_name} {hint}" if hint else entity_name


class WikimediaPhotoFetcher:
    """Callable photo fetcher for PhotoJobQueue.process_next."""

    def __init__(
        self,
        api_url: str = COMMONS_API_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": "content-sync/0.1 (photo curation)"},
        )

    async def __aenter__(self) -> "WikimediaPhotoFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __call__(self, job: PhotoJob) -> Dict[str, Any]:
        if not job.entity_name:
            raise ValueError(f"Photo job {job.id} has no entity name to search for")

        params = {
            "action": "query",
            "format": "json",
            "generator": "search",
            "gsrsearch": search_query(job.entity_type, job.entity_name),
            "gsrnamespace": "6",
            "gsrlimit": "5",
            "prop": "imageinfo",
            "iiprop": "url|size|extmetadata",
        }
        response = await self._client.get(self.api_url, params=params)
        response.raise_for_status()

        pages = (response.json().get("query") or {}).get("pages") or {}
        # generator results carry their search rank in "index"
        ordered = sorted(pages.values(), key=lambda page: page.get("index", 0))
        for page in ordered:
            info = (page.get("imageinfo") or [{}])[0]
            if info.get("url"):
                result = _candidate(page.get("title", ""), info)
                logger.info(f"Photo found for {job.entity_type}/{job.entity_id}: {result['url']}")
                return result

        logger.info(f"No photo candidates for {job.entity_type}/{job.entity_id}")
        return {"candidates_found": 0}


def _candidate(title: str, info: Dict[str, Any]) -> Dict[str, Any]:
    meta = info.get("extmetadata") or {}
    license_name = (meta.get("LicenseShortName") or {}).get("value") or "Unknown"
    author = _TAG_RE.sub("", (meta.get("Artist") or {}).get("value") or "").strip()
    return {
        "candidates_found": 1,
        "url": info["url"],
        "source": "wikimedia",
        "license": license_name,
        "license_url": (meta.get("LicenseUrl") or {}).get("value"),
        "author": author or "Unknown",
        "source_url": f"https://commons.wikimedia.org/wiki/{title.replace(' ', '_')}",
        "width": info.get("width"),
        "height": info.get("height"),
    }
