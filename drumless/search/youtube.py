"""Track search against the YouTube results page (no API key): pull ytInitialData out of the HTML and keep the first few videos."""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.youtube.com/results"
SEARCH_SUFFIX = " official audio"
HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}
INITIAL_DATA_RE = re.compile(r"var ytInitialData = ({.+?});</script>", re.DOTALL)


class SearchError(Exception):
    pass


@dataclass
class CandidateTrack:
    id: str
    title: str
    thumbnail_url: str
    duration: str
    channel: str


def _first_run_text(node: Optional[Dict[str, Any]], default: str) -> str:
    runs = (node or {}).get("runs") or []
    if runs and runs[0].get("text"):
        return runs[0]["text"]
    return default


def parse_search_results(html: str, limit: int = 5) -> List[CandidateTrack]:
    """Extract up to `limit` video results from a results page.
    Raises SearchError when the page carries no ytInitialData; returns [] when it has no video section."""
    match = INITIAL_DATA_RE.search(html or "")
    if not match:
        raise SearchError("Could not parse YouTube results")
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        raise SearchError(f"Could not parse YouTube results: {e}")

    sections = (
        data.get("contents", {})
        .get("twoColumnSearchResultsRenderer", {})
        .get("primaryContents", {})
        .get("sectionListRenderer", {})
        .get("contents")
    ) or []

    results: List[CandidateTrack] = []
    for section in sections:
        items = (section.get("itemSectionRenderer") or {}).get("contents") or []
        for item in items:
            video = item.get("videoRenderer")
            if not video or not video.get("videoId"):
                continue
            thumbs = (video.get("thumbnail") or {}).get("thumbnails") or []
            results.append(CandidateTrack(
                id=video["videoId"],
                title=_first_run_text(video.get("title"), "Unknown Title"),
                thumbnail_url=thumbs[0].get("url", "") if thumbs else "",
                duration=(video.get("lengthText") or {}).get("simpleText", "Unknown"),
                channel=_first_run_text(video.get("ownerText"), "Unknown Channel"),
            ))
            if len(results) >= limit:
                return results
    return results


def search_tracks(query: str, limit: int = 5, session: Optional[requests.Session] = None) -> List[CandidateTrack]:
    """Search for `query` (biased towards audio uploads) and return up to `limit` candidates.
    Why available: Backs GET /api/search so users pick a concrete track id before submitting a job."""
    http = session or requests
    try:
        resp = http.get(
            SEARCH_URL,
            params={"search_query": query + SEARCH_SUFFIX},
            headers=HEADERS,
            timeout=15,
        )
    except requests.RequestException as e:
        raise SearchError(f"Search request failed: {e}")
    if resp.status_code != 200:
        raise SearchError(f"Search returned HTTP {resp.status_code}")
    results = parse_search_results(resp.text, limit=limit)
    logger.info("Search returned %d result(s)", len(results))
    return results
