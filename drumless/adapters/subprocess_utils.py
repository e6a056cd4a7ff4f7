"""
Subprocess helpers for the external tools (yt-dlp, ffmpeg, demucs).

Argument lists only, never shell=True. Every failure is turned into a
PipelineError whose code says whether the tool was missing, timed out or
exited non-zero.
"""

import logging
import os
import re
import signal
import subprocess
import sys
import threading
from collections import deque
from typing import Callable, List, Optional, Sequence

from drumless.core.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)

TAIL_LINES = 20
TAIL_CHARS = 1500

# tqdm-style bars ("42%|####      | 12.3/45.6 [...]") and bare "42%" markers
PERCENT_RE = re.compile(r"(\d{1,3})%")
_PROGRESS_LINE_RE = re.compile(r"^\s*\d{1,3}%\|")


def is_progress_line(line: str) -> bool:
    return bool(_PROGRESS_LINE_RE.match(line)) or "seconds/s" in line or "it/s]" in line


def diagnostic_tail(lines: Sequence[str], max_lines: int = TAIL_LINES, max_chars: int = TAIL_CHARS) -> str:
    """Last non-progress lines of a tool's output, bounded in lines and characters."""
    kept = [ln.rstrip() for ln in lines if ln.strip() and not is_progress_line(ln)]
    text = "\n".join(kept[-max_lines:])
    if len(text) > max_chars:
        text = "..." + text[-max_chars:]
    return text


def run_tool(args: List[str], timeout: int, label: str) -> subprocess.CompletedProcess:
    """Run a short-lived tool and capture its output. Raises PipelineError on missing binary, timeout or non-zero exit."""
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")
    logger.debug("Running %s: %s", label, " ".join(str(a) for a in args))
    try:
        result = subprocess.run(args, shell=False, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        raise PipelineError(ErrorCode.TOOL_MISSING, f"{label} executable not found: {args[0]}")
    except subprocess.TimeoutExpired:
        raise PipelineError(ErrorCode.TOOL_TIMEOUT, f"{label} timed out after {timeout}s")

    if result.returncode != 0:
        output = (result.stderr or "") + (result.stdout or "")
        tail = diagnostic_tail(output.splitlines())
        raise PipelineError(
            ErrorCode.TOOL_EXIT,
            f"{label} exited with code {result.returncode}" + (f": {tail}" if tail else ""),
        )
    return result


def _kill_tree(process: subprocess.Popen) -> None:
    """SIGKILL the whole process group started for `process` (the tool plus anything it spawned)."""
    if sys.platform == "win32":
        process.kill()
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()


def run_streaming(
    args: List[str],
    timeout: float,
    label: str,
    on_line: Optional[Callable[[str], None]] = None,
) -> List[str]:
    """
    Run a long-lived tool, feeding each output line to `on_line` as it arrives.

    stdout and stderr are merged (progress bars usually go to stderr) and read
    on a daemon thread so the wall-clock timeout can be enforced with wait().
    Carriage-return redraws become separate lines in text mode.
    On timeout the whole process group is killed. Returns the retained output tail.
    """
    logger.info("Starting %s: %s", label, " ".join(str(a) for a in args))
    try:
        process = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            # own process group, so wrapper commands can be killed with their children
            start_new_session=True,
        )
    except FileNotFoundError:
        raise PipelineError(ErrorCode.TOOL_MISSING, f"{label} executable not found: {args[0]}")

    tail: deque = deque(maxlen=200)

    def _reader():
        for line in process.stdout:
            tail.append(line)
            if on_line is None:
                continue
            try:
                on_line(line)
            except Exception as e:
                # progress reporting is advisory; keep draining the pipe
                logger.warning("%s output handler failed: %s", label, e)

    reader = threading.Thread(target=_reader, name=f"{label}-output", daemon=True)
    reader.start()

    try:
        returncode = process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_tree(process)
        process.wait()
        reader.join(timeout=5)
        logger.error("%s timed out after %.0fs", label, timeout)
        raise PipelineError(ErrorCode.TOOL_TIMEOUT, f"{label} timed out after {timeout:.0f}s")

    reader.join(timeout=5)
    lines = list(tail)
    if returncode != 0:
        excerpt = diagnostic_tail(lines)
        raise PipelineError(
            ErrorCode.TOOL_EXIT,
            f"{label} exited with code {returncode}" + (f": {excerpt}" if excerpt else ""),
        )
    return lines


def parse_percent(line: str) -> Optional[int]:
    """Last percentage marker on a line (a redraw can carry several), or None."""
    found = PERCENT_RE.findall(line)
    if not found:
        return None
    value = int(found[-1])
    if value > 100:
        return None
    return value
