"""Output file references: build the public URL for a finished file and resolve a requested name back to a path without leaving the audio dir."""
import os
from pathlib import Path
from typing import Optional

AUDIO_ROUTE = "/audio"

MEDIA_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
}


def output_url(filename: str) -> str:
    """Return the retrieval path for a finished output file (served by GET /audio/{filename})."""
    return f"{AUDIO_ROUTE}/{filename}"


def safe_filename(reference: str) -> Optional[str]:
    """Keep only the base filename component of a client-supplied reference; None if nothing usable remains.
    Why available: Path-traversal defense for /api/download and /audio; "../../etc/passwd" becomes "passwd", "..", "." and "" become None."""
    if not reference:
        return None
    name = os.path.basename(reference.replace("\\", "/").strip())
    if name in ("", ".", ".."):
        return None
    return name


def resolve_output(audio_dir: str, reference: str) -> Optional[Path]:
    """Map a reference to an existing output file inside audio_dir, or None (not found / unsafe / unsupported type)."""
    name = safe_filename(reference)
    if name is None or Path(name).suffix.lower() not in MEDIA_TYPES:
        return None
    root = Path(audio_dir).resolve()
    candidate = (root / name).resolve()
    if candidate.parent != root or not candidate.is_file():
        return None
    return candidate


def media_type_for(path: Path) -> str:
    return MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
