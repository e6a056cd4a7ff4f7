"""Common shape of an acquisition strategy and the HTTP streaming helper the HTTP-based ones share."""
from pathlib import Path
from typing import Tuple

import requests

from drumless.adapters.sniff import SNIFF_BYTES, is_non_media_content_type, non_media_reason
from drumless.core.errors import ErrorCode, PipelineError

CHUNK_SIZE = 64 * 1024


def watch_url(track_id: str) -> str:
    return f"https://www.youtube.com/watch?v={track_id}"


class AcquisitionStrategy:
    """One way of getting source audio for a track id onto local disk.
    Subclasses set `name` and implement configured() and fetch(); fetch raises PipelineError with a code naming the failure mode."""

    name = "strategy"

    def configured(self) -> Tuple[bool, str]:
        """(True, "") when usable, else (False, reason) such as a missing credential or opt-in flag."""
        raise NotImplementedError

    def fetch(self, track_id: str, dest: Path) -> Path:
        raise NotImplementedError


def stream_to_file(response: requests.Response, dest: Path, source: str) -> Path:
    """Write a streamed media response to `dest`, refusing HTTP errors and HTML/JSON bodies up front.
    Why available: Hosted API and proxy both hand back a media body; this is where a 200-with-an-error-page is caught before it reaches disk."""
    if response.status_code // 100 != 2:
        raise PipelineError(ErrorCode.HTTP_STATUS, f"{source} returned HTTP {response.status_code}")
    content_type = response.headers.get("content-type", "")
    if is_non_media_content_type(content_type):
        raise PipelineError(ErrorCode.NOT_MEDIA, f"{source} returned {content_type.split(';')[0]} instead of audio")

    dest.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    head = b""
    with dest.open("wb") as out:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            if len(head) < SNIFF_BYTES:
                head += chunk[: SNIFF_BYTES - len(head)]
            out.write(chunk)
            written += len(chunk)

    if written == 0:
        raise PipelineError(ErrorCode.EMPTY_FILE, f"{source} returned an empty body")
    reason = non_media_reason(head)
    if reason:
        raise PipelineError(ErrorCode.NOT_MEDIA, f"{source} payload is not audio ({reason})")
    return dest
