"""
Transcoding with ffmpeg: normalize the source for the separation tool,
encode a stem to mp3, or mix several stems into one mp3.
"""

import logging
from pathlib import Path
from typing import Sequence

from drumless.adapters.subprocess_utils import run_tool
from drumless.core.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)

NORM_SAMPLE_RATE = 44100
NORM_CHANNELS = 2
TRANSCODE_TIMEOUT = 600


class Transcoder:
    def __init__(self, executable: str = "ffmpeg", bitrate: str = "192k", timeout: int = TRANSCODE_TIMEOUT):
        self.executable = executable
        self.bitrate = bitrate
        self.timeout = timeout

    def _run(self, args: list, output_path: Path, label: str) -> Path:
        run_tool([self.executable, "-y", "-hide_banner", "-loglevel", "error", *args], timeout=self.timeout, label=label)
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise PipelineError(ErrorCode.OUTPUT_NOT_FOUND, f"{label} produced no output file")
        return output_path

    def normalize(self, input_path: Path, output_path: Path) -> Path:
        """
        Re-encode the source to 44.1 kHz stereo PCM WAV, the layout the
        separation models are trained on. Returns path to the normalized file.
        """
        args = [
            "-i", str(input_path),
            "-vn",
            "-ar", str(NORM_SAMPLE_RATE),
            "-ac", str(NORM_CHANNELS),
            "-codec:a", "pcm_s16le",
            str(output_path),
        ]
        out = self._run(args, output_path, "ffmpeg normalize")
        logger.info("Normalized audio: %s", out.name)
        return out

    def encode_mp3(self, input_path: Path, output_path: Path) -> Path:
        args = [
            "-i", str(input_path),
            "-codec:a", "libmp3lame",
            "-b:a", self.bitrate,
            str(output_path),
        ]
        return self._run(args, output_path, "ffmpeg encode")

    def mix_mp3(self, inputs: Sequence[Path], output_path: Path) -> Path:
        """Sum the given stems back together (no level normalisation, so the mix keeps the original balance) and encode to mp3."""
        if not inputs:
            raise PipelineError(ErrorCode.OUTPUT_NOT_FOUND, "no stems to mix")
        if len(inputs) == 1:
            return self.encode_mp3(inputs[0], output_path)
        args = []
        for p in inputs:
            args.extend(["-i", str(p)])
        args.extend([
            "-filter_complex", f"amix=inputs={len(inputs)}:duration=longest:normalize=0",
            "-codec:a", "libmp3lame",
            "-b:a", self.bitrate,
            str(output_path),
        ])
        return self._run(args, output_path, "ffmpeg mix")
