#!/usr/bin/env python3
"""Print the effective drum-remover configuration and which download strategies are active. Run from repo root: python scripts/print_config.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from drumless.adapters.acquire import build_strategies
from drumless.core.config import settings


def main():
    """Print deployment mode, acquisition strategies in priority order, and separation/transcode parameters."""
    print("Drum remover configuration")
    print("--------------------------")
    print(f"  Mode                  = {'serverless' if settings.serverless else 'persistent'}")
    print(f"  AUDIO_DIR             = {settings.audio_dir}")
    print("")
    print("Download strategies (in order)")
    for s in build_strategies(settings):
        ok, why = s.configured()
        print(f"  {s.name:<20} {'active' if ok else why}")
    print("")
    print("Separation")
    print(f"  DEMUCS_COMMAND        = {settings.demucs_command}")
    print(f"  DEMUCS_MODEL          = {settings.demucs_model} ({settings.separation_mode})")
    print(f"  DEMUCS_SEGMENT        = {settings.demucs_segment or 'model default'}")
    print(f"  DEMUCS_JOBS           = {settings.demucs_jobs}")
    print(f"  Timeout               = {settings.separation_timeout_seconds} s (job budget {settings.job_timeout_seconds} s)")
    print(f"  OUTPUT_BITRATE        = {settings.output_bitrate}")
    print(f"  NORMALIZE_AUDIO       = {settings.normalize_audio}")
    print("")
    print(f"  Rate limit            = {settings.rate_limit_requests} requests / {settings.rate_limit_window_seconds} s (per client IP)")


if __name__ == "__main__":
    main()
