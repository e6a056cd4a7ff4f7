import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

from drumless.adapters.acquire import acquire_audio, build_strategies
from drumless.adapters.base import AcquisitionStrategy
from drumless.adapters.demucs import DRUMLESS_STEMS, NO_DRUMS_STEM, TWO_STEMS, DemucsSeparator
from drumless.adapters.ffmpeg import Transcoder
from drumless.core.config import Settings, settings
from drumless.core.errors import ErrorCode, PipelineError
from drumless.jobs.store import COMPLETED, DOWNLOADING, FAILED, JOBS, PROCESSING, JobStore
from drumless.storage.files import output_url

logger = logging.getLogger(__name__)

# Separation progress stays below 100 until the output file exists.
MAX_RUNNING_PROGRESS = 99


@dataclass
class PipelineTools:
    """The external collaborators one job run uses; tests swap in fakes."""

    strategies: Sequence[AcquisitionStrategy]
    separator: DemucsSeparator
    transcoder: Transcoder


def build_tools(cfg: Settings) -> PipelineTools:
    """Build the default adapters from settings.
    Why available: Single place mapping env configuration to strategy order, separation parameters and transcoder options."""
    mode = cfg.separation_mode
    return PipelineTools(
        strategies=build_strategies(cfg),
        separator=DemucsSeparator(
            command=cfg.demucs_command,
            model=cfg.demucs_model,
            mode=mode,
            segment=cfg.demucs_segment,
            jobs=cfg.demucs_jobs,
            # two-stem output can be served as-is when the tool already writes mp3
            mp3_bitrate=cfg.output_bitrate if mode == TWO_STEMS else None,
        ),
        transcoder=Transcoder(cfg.ffmpeg_path, bitrate=cfg.output_bitrate),
    )


@dataclass
class JobPaths:
    audio_dir: Path
    job_id: str

    @property
    def work_dir(self) -> Path:
        return self.audio_dir / "work" / self.job_id

    @property
    def input_file(self) -> Path:
        return self.work_dir / "input.mp3"

    @property
    def normalized_file(self) -> Path:
        return self.work_dir / "normalized.wav"

    @property
    def separated_dir(self) -> Path:
        return self.work_dir / "separated"

    @property
    def output_mp3(self) -> Path:
        return self.audio_dir / f"{self.job_id}_no_drums.mp3"


class Deadline:
    """Overall per-job time budget, checked between steps and used to cap the separation timeout."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._end = clock() + seconds

    def remaining(self) -> float:
        return self._end - self._clock()

    def check(self, step: str) -> None:
        if self.remaining() <= 0:
            raise PipelineError(ErrorCode.JOB_TIMEOUT, f"Job exceeded {self.seconds:.0f}s before {step}")

    def bound(self, limit: float) -> float:
        return max(1.0, min(limit, self.remaining()))


def produce_output(stems: Dict[str, Path], mode: str, transcoder: Transcoder, paths: JobPaths) -> Path:
    """Turn the located stems into the single file served to the user.
    Two-stem mode: an mp3 stem is moved into place; a WAV stem is encoded to mp3, falling back to the raw WAV if the transcoder fails.
    Full mode: vocals, bass and other are mixed; mixing is required, so a transcoder failure fails the job."""
    target = paths.output_mp3
    if mode != TWO_STEMS:
        return transcoder.mix_mp3([stems[s] for s in DRUMLESS_STEMS], target)

    stem = stems[NO_DRUMS_STEM]
    if stem.suffix.lower() == ".mp3":
        shutil.move(str(stem), str(target))
        return target
    try:
        return transcoder.encode_mp3(stem, target)
    except PipelineError as e:
        logger.warning("Encoding to mp3 failed (%s); serving the WAV stem instead", e)
        _remove_quietly(target)
        wav_target = target.with_suffix(".wav")
        shutil.copyfile(stem, wav_target)
        return wav_target


def _remove_quietly(path: Optional[Path]) -> None:
    """Best-effort delete of a file or directory; failures are logged, never raised."""
    if path is None or not path.exists():
        return
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
        logger.debug("Deleted: %s", path)
    except OSError as e:
        logger.warning("Failed to delete %s: %s", path, e)


def cleanup_job_artifacts(paths: JobPaths) -> None:
    """Delete the job's input, normalized and stem files together with the separation tool's scratch tree."""
    _remove_quietly(paths.work_dir)


def _run_pipeline(job_id: str, track_id: str, store: JobStore, tools: PipelineTools, cfg: Settings) -> None:
    paths = JobPaths(Path(cfg.audio_dir), job_id)
    paths.work_dir.mkdir(parents=True, exist_ok=True)
    deadline = Deadline(cfg.job_timeout_seconds)

    # 1-3. acquire and validate source audio
    store.update(job_id, status=DOWNLOADING, started_at=time.time(), progress=0)
    acquired = acquire_audio(track_id, paths.input_file, tools.strategies)
    store.update(job_id, strategy=acquired.strategy)
    source = acquired.path

    # 4. optional normalization
    if cfg.normalize_audio:
        deadline.check("normalization")
        source = tools.transcoder.normalize(source, paths.normalized_file)

    # 5-7. separation
    deadline.check("separation")
    store.update(job_id, status=PROCESSING, progress=0)
    stems = tools.separator.separate(
        source,
        paths.separated_dir,
        timeout_seconds=deadline.bound(cfg.separation_timeout_seconds),
        on_progress=lambda p: store.set_progress(job_id, min(p, MAX_RUNNING_PROGRESS)),
    )

    # 8. final output
    deadline.check("remix")
    final = produce_output(stems, tools.separator.mode, tools.transcoder, paths)

    # 9. cleanup
    cleanup_job_artifacts(paths)

    # 10. done
    store.update(job_id, status=COMPLETED, progress=100, download_url=output_url(final.name))
    logger.info("Job %s completed: %s", job_id, final.name)


def run_drum_removal_job(
    job_id: str,
    track_id: str,
    title: str,
    store: JobStore = JOBS,
    tools: Optional[PipelineTools] = None,
    cfg: Settings = settings,
) -> None:
    """Drive one job from pending to completed or failed: download (with fallbacks), normalize, separate, remix, clean up.
    Why available: Background task entry point for POST /api/process. Never raises; every failure ends up in the job's error field."""
    logger.info("Job %s started for track %s (%s)", job_id, track_id, title)
    paths = JobPaths(Path(cfg.audio_dir), job_id)
    try:
        if not cfg.processing_enabled:
            raise PipelineError(ErrorCode.PROCESSING_DISABLED, "Processing is disabled on this deployment")
        _run_pipeline(job_id, track_id, store, tools or build_tools(cfg), cfg)
    except Exception as e:
        logger.error("Job %s failed: %s", job_id, e, exc_info=not isinstance(e, PipelineError))
        _remove_quietly(paths.input_file)
        cleanup_job_artifacts(paths)
        _mark_failed(store, job_id, e)


def _mark_failed(store: JobStore, job_id: str, e: Exception) -> None:
    job = store.get(job_id)
    if job is None or job.is_terminal:
        return
    try:
        store.update(job_id, status=FAILED, error=str(e) or type(e).__name__)
    except Exception as update_err:
        logger.error("Could not record failure for job %s: %s", job_id, update_err)
