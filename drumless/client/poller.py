"""Client-side status polling: ask for a job's status on a fixed interval until it is completed or failed."""
import time
from typing import Any, Callable, Dict, Optional

from drumless.client.backend import JobNotFoundError

TERMINAL = ("completed", "failed")
DEFAULT_INTERVAL_SECONDS = 2.0


def status_message(view: Dict[str, Any]) -> str:
    """Display text for a status view, in the UI's all-caps voice."""
    status = view.get("status")
    if status == "pending":
        return "QUEUED..."
    if status == "downloading":
        return "DOWNLOADING AUDIO..."
    if status == "processing":
        progress = view.get("progress")
        if isinstance(progress, int):
            return f"SEPARATING AUDIO... {progress}%"
        return "SEPARATING AUDIO TRACKS..."
    if status == "completed":
        return "PROCESS COMPLETE"
    if status == "failed":
        return view.get("error") or "PROCESSING FAILED"
    return "WORKING..."


def poll_until_terminal(
    fetch: Callable[[str], Dict[str, Any]],
    job_id: str,
    interval: float = DEFAULT_INTERVAL_SECONDS,
    on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    max_polls: Optional[int] = None,
) -> Dict[str, Any]:
    """Poll `fetch(job_id)` every `interval` seconds, passing each view to `on_update`, and return the first terminal view.
    Why available: Single-threaded loop behind the UI; an unknown job becomes a terminal failed view instead of polling forever.
    Raises TimeoutError if `max_polls` is reached first."""
    polls = 0
    while True:
        try:
            view = fetch(job_id)
        except JobNotFoundError:
            view = {"status": "failed", "error": "Job not found", "title": ""}
        polls += 1
        if on_update:
            on_update(view)
        if view.get("status") in TERMINAL:
            return view
        if max_polls is not None and polls >= max_polls:
            raise TimeoutError(f"Job {job_id} still {view.get('status')} after {polls} polls")
        sleep(interval)
