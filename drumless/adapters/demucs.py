"""
Demucs runner - subprocess handling for stem separation.

Demucs writes its tqdm progress bars to stderr; that is normal output, not
an error. Percentages are scraped from the merged output stream and handed to
a callback as a best-effort progress signal. Only the exit code decides
success.
"""

import logging
import shlex
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from drumless.adapters.subprocess_utils import parse_percent, run_streaming
from drumless.core.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)

TWO_STEMS = "two_stems"
FULL = "full"

# Other model directories the tool may write into regardless of -n
FALLBACK_MODEL_DIRS = ("htdemucs", "htdemucs_6s")
STEM_EXTENSIONS = (".mp3", ".wav")

# Stems that, summed, give the track without drums
DRUMLESS_STEMS = ("vocals", "bass", "other")
NO_DRUMS_STEM = "no_drums"


class DemucsSeparator:
    """
    Runs the separation tool as a subprocess with a wall-clock timeout.

    Args:
        command: Command prefix that starts the tool, e.g. "python3 -m demucs".
        model: Demucs model name (htdemucs, htdemucs_ft, htdemucs_6s).
        mode: "two_stems" (drums / no_drums) or "full" (all stems).
        segment: Segment length in seconds, 0 for the model default.
        jobs: Parallel jobs passed to -j.
        mp3_bitrate: When set, stems are written as mp3 at this bitrate.
    """

    def __init__(self,
                 command: str = "python3 -m demucs",
                 model: str = "htdemucs",
                 mode: str = TWO_STEMS,
                 segment: int = 0,
                 jobs: int = 1,
                 mp3_bitrate: Optional[str] = None):
        self.command = shlex.split(command)
        self.model = model
        self.mode = mode
        self.segment = segment
        self.jobs = jobs
        self.mp3_bitrate = mp3_bitrate

    @property
    def wanted_stems(self) -> Sequence[str]:
        return (NO_DRUMS_STEM,) if self.mode == TWO_STEMS else DRUMLESS_STEMS

    def build_args(self, input_path: Path, output_dir: Path) -> List[str]:
        args = list(self.command)
        if self.mode == TWO_STEMS:
            args.extend(["--two-stems", "drums"])
        args.extend(["-n", self.model, "-o", str(output_dir)])
        if self.segment:
            args.extend(["--segment", str(self.segment)])
        if self.jobs > 1:
            args.extend(["-j", str(self.jobs)])
        if self.mp3_bitrate:
            args.extend(["--mp3", "--mp3-bitrate", self.mp3_bitrate.rstrip("kK")])
        args.append(str(input_path))
        return args

    def separate(self,
                 input_path: Path,
                 output_dir: Path,
                 timeout_seconds: float = 1800,
                 on_progress: Optional[Callable[[int], None]] = None) -> Dict[str, Path]:
        """
        Run separation and return {stem_name: path} for the stems this mode needs.

        Raises PipelineError(TOOL_MISSING | TOOL_TIMEOUT | TOOL_EXIT) from the
        subprocess, or OUTPUT_NOT_FOUND when the tool succeeded but the stems
        are not where any known layout puts them.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        last = {"percent": -1}

        def _on_line(line: str) -> None:
            percent = parse_percent(line)
            if percent is None or percent <= last["percent"]:
                return
            last["percent"] = percent
            logger.debug("Demucs progress: %d%%", percent)
            if on_progress:
                on_progress(percent)

        run_streaming(
            self.build_args(input_path, output_dir),
            timeout=timeout_seconds,
            label="Demucs",
            on_line=_on_line,
        )
        return self.locate_stems(output_dir, input_path.stem)

    def candidate_dirs(self, output_dir: Path, base_name: str) -> List[Path]:
        models = [self.model] + [m for m in FALLBACK_MODEL_DIRS if m != self.model]
        return [output_dir / m / base_name for m in models]

    def candidate_paths(self, output_dir: Path, base_name: str, stem: str) -> List[Path]:
        """Ordered places a stem may land; the on-disk layout varies by model and version."""
        return [d / f"{stem}{ext}" for d in self.candidate_dirs(output_dir, base_name) for ext in STEM_EXTENSIONS]

    def locate_stems(self, output_dir: Path, base_name: str) -> Dict[str, Path]:
        stems: Dict[str, Path] = {}
        for stem in self.wanted_stems:
            found = next((p for p in self.candidate_paths(output_dir, base_name, stem) if p.exists()), None)
            if found is None:
                raise PipelineError(
                    ErrorCode.OUTPUT_NOT_FOUND,
                    f"Separation completed but output file not found: {stem} "
                    f"(present: {self._listing(output_dir, base_name)})",
                )
            stems[stem] = found
        logger.info("Located stems: %s", ", ".join(f"{k}={v.name}" for k, v in stems.items()))
        return stems

    def _listing(self, output_dir: Path, base_name: str) -> str:
        for d in self.candidate_dirs(output_dir, base_name):
            if d.is_dir():
                names = sorted(p.name for p in d.iterdir())
                return f"{d.parent.name}/{d.name}: {', '.join(names) or 'empty'}"
        return "no output directory"
