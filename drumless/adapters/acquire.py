"""Ordered fallback over acquisition strategies: first one that yields a real audio file wins."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from drumless.adapters.base import AcquisitionStrategy
from drumless.adapters.download_api import HostedApiStrategy
from drumless.adapters.proxy import ProxyStrategy
from drumless.adapters.sniff import validate_audio_file
from drumless.adapters.ytdlp_cli import YtDlpStrategy
from drumless.core.config import Settings
from drumless.core.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionAttempt:
    strategy: str
    ok: bool
    reason: str = ""
    skipped: bool = False


@dataclass
class AcquisitionResult:
    path: Path
    strategy: str
    audio_format: str
    attempts: List[AcquisitionAttempt]


def build_strategies(cfg: Settings) -> List[AcquisitionStrategy]:
    """Strategies in priority order: hosted API, opt-in yt-dlp, self-hosted proxy."""
    return [
        HostedApiStrategy(cfg.download_api_key, cfg.download_api_host, timeout=cfg.download_timeout_seconds),
        YtDlpStrategy(
            cfg.enable_ytdlp,
            executable=cfg.ytdlp_path,
            extra_args=cfg.ytdlp_extra_args,
            timeout=cfg.download_timeout_seconds,
        ),
        ProxyStrategy(cfg.download_proxy_url, timeout=cfg.download_timeout_seconds),
    ]


def _discard(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove rejected download %s: %s", path, e)


def summarize_attempts(attempts: Sequence[AcquisitionAttempt]) -> str:
    return "; ".join(f"{a.strategy}: {'skipped, ' if a.skipped else ''}{a.reason}" for a in attempts)


def acquire_audio(track_id: str, dest: Path, strategies: Sequence[AcquisitionStrategy]) -> AcquisitionResult:
    """Try each strategy in order and return the first file that passes validation.
    Unconfigured strategies are recorded as skipped; a file failing the content sniff is deleted and the next strategy is tried.
    Raises PipelineError(ACQUISITION_FAILED) listing every strategy and why it did not work."""
    attempts: List[AcquisitionAttempt] = []

    for strategy in strategies:
        ok, why = strategy.configured()
        if not ok:
            attempts.append(AcquisitionAttempt(strategy.name, ok=False, reason=why, skipped=True))
            logger.info("Skipping %s for %s: %s", strategy.name, track_id, why)
            continue

        produced: Optional[Path] = None
        try:
            produced = strategy.fetch(track_id, dest)
            audio_format = validate_audio_file(produced)
        except PipelineError as e:
            _discard(produced or dest)
            attempts.append(AcquisitionAttempt(strategy.name, ok=False, reason=str(e)))
            logger.warning("%s failed for %s: %s", strategy.name, track_id, e)
            continue
        except Exception as e:
            _discard(produced or dest)
            attempts.append(AcquisitionAttempt(strategy.name, ok=False, reason=f"unexpected error: {e}"))
            logger.warning("%s raised for %s", strategy.name, track_id, exc_info=e)
            continue

        attempts.append(AcquisitionAttempt(strategy.name, ok=True, reason=audio_format))
        logger.info("Acquired %s via %s (%s)", track_id, strategy.name, audio_format)
        return AcquisitionResult(path=produced, strategy=strategy.name, audio_format=audio_format, attempts=attempts)

    if not attempts:
        detail = "no strategies configured"
    else:
        detail = summarize_attempts(attempts)
    raise PipelineError(ErrorCode.ACQUISITION_FAILED, f"No working download strategy for {track_id}: {detail}")
