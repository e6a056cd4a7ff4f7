"""Content sniffing for downloaded payloads: tell real audio apart from HTML error pages, JSON bodies and rate-limit notices."""
from pathlib import Path
from typing import Optional

from drumless.core.errors import ErrorCode, PipelineError

SNIFF_BYTES = 512

RATE_LIMIT_MARKERS = (b"rate limit", b"rate-limit", b"too many requests", b"quota")

NON_MEDIA_CONTENT_TYPES = ("text/", "application/json", "application/xml", "application/xhtml")


def detect_audio_format(head: bytes) -> Optional[str]:
    """Return a short format name for known audio magic bytes, or None when unrecognised."""
    if head.startswith(b"ID3"):
        return "mp3"
    if len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0:
        return "mp3"
    if head.startswith(b"RIFF") and head[8:12] == b"WAVE":
        return "wav"
    if head.startswith(b"OggS"):
        return "ogg"
    if head.startswith(b"fLaC"):
        return "flac"
    if head[4:8] == b"ftyp":
        return "m4a"
    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return "webm"
    return None


def non_media_reason(head: bytes) -> Optional[str]:
    """Return why `head` looks like a non-audio body (HTML, JSON, rate-limit text), or None if it may be audio.
    Why available: Download providers answer errors with 200 + an HTML/JSON page; this keeps those files out of the separation tool."""
    if not head:
        return "empty payload"
    if detect_audio_format(head):
        return None
    stripped = head.lstrip()
    lowered = stripped.lower()
    if any(m in lowered for m in RATE_LIMIT_MARKERS):
        return "rate-limit response"
    if stripped.startswith(b"<"):
        return "HTML/XML document"
    if stripped.startswith((b"{", b"[")):
        return "JSON document"
    return None


def is_non_media_content_type(content_type: Optional[str]) -> bool:
    ct = (content_type or "").split(";")[0].strip().lower()
    return any(ct.startswith(p) for p in NON_MEDIA_CONTENT_TYPES)


def validate_audio_file(path: Path) -> str:
    """Check a downloaded file is non-empty and does not look like HTML/JSON/rate-limit text. Returns the detected format ("unknown" if no magic matched).
    Raises PipelineError(EMPTY_FILE | NOT_MEDIA)."""
    if not path.exists() or path.stat().st_size == 0:
        raise PipelineError(ErrorCode.EMPTY_FILE, f"Downloaded file is empty: {path.name}")
    with path.open("rb") as f:
        head = f.read(SNIFF_BYTES)
    reason = non_media_reason(head)
    if reason:
        raise PipelineError(ErrorCode.NOT_MEDIA, f"Downloaded payload is not audio ({reason})")
    return detect_audio_format(head) or "unknown"
