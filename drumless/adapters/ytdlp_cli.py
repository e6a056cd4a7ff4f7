"""
Audio download via the yt-dlp command line tool.

Only used when ENABLE_YTDLP is set; the tool is never picked up silently.
"""

import logging
import shlex
from pathlib import Path
from typing import Tuple

from drumless.adapters.base import AcquisitionStrategy, watch_url
from drumless.adapters.subprocess_utils import run_tool
from drumless.core.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)


class YtDlpStrategy(AcquisitionStrategy):
    name = "yt-dlp"

    def __init__(self, enabled: bool, executable: str = "yt-dlp", extra_args: str = "", timeout: int = 600):
        self.enabled = enabled
        self.executable = executable
        self.extra_args = shlex.split(extra_args) if extra_args else []
        self.timeout = timeout

    def configured(self) -> Tuple[bool, str]:
        if not self.enabled:
            return False, f"[{ErrorCode.NOT_CONFIGURED}] not enabled (set ENABLE_YTDLP=1)"
        return True, ""

    def build_args(self, track_id: str, dest: Path) -> list:
        return [
            self.executable,
            *self.extra_args,
            "--no-playlist",
            "-x",
            "--audio-format", "mp3",
            "--audio-quality", "0",
            "-o", str(dest),
            watch_url(track_id),
        ]

    def fetch(self, track_id: str, dest: Path) -> Path:
        """
        Download audio-only and convert to mp3 at `dest`.
        Returns the path of the produced file.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        run_tool(self.build_args(track_id, dest), timeout=self.timeout, label="yt-dlp")

        if dest.exists():
            return dest
        # yt-dlp may keep the template name and add its own extension
        produced = sorted(dest.parent.glob(f"{dest.stem}.*"))
        if not produced:
            raise PipelineError(ErrorCode.OUTPUT_NOT_FOUND, "yt-dlp finished but no audio file was written")
        logger.info("yt-dlp wrote %s", produced[0].name)
        return produced[0]
