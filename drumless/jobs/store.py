"""In-memory job store: track each drum-removal job through pending / downloading / processing / completed / failed."""
import time
from dataclasses import dataclass, replace
from typing import Dict, Optional

PENDING = "pending"
DOWNLOADING = "downloading"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL_STATUSES = (COMPLETED, FAILED)
# Forward order of the lifecycle; FAILED may be entered from any non-terminal state.
_STATUS_RANK = {PENDING: 0, DOWNLOADING: 1, PROCESSING: 2, COMPLETED: 3, FAILED: 3}


class InvalidJobUpdate(ValueError):
    """Raised when an update would break the job lifecycle (regression, terminal rewrite, misplaced url/error)."""


class JobNotFound(KeyError):
    pass


@dataclass(frozen=True)
class Job:
    """A single drum-removal job: ids, title, status, progress and either download_url (completed) or error (failed).
    Why available: Immutable record so every write is a full replace; /api/status reads whatever record was last committed."""

    job_id: str
    track_id: str
    title: str
    status: str  # pending | downloading | processing | completed | failed
    created_at: float
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Optional[int] = None
    download_url: Optional[str] = None
    error: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobStore:
    """Process-wide mapping job_id -> Job with create / get / update.
    Each job id is written only by the one pipeline run that owns it and read by status queries, so no locking is done here.
    To make jobs durable, swap this for an external key-value store with the same three operations."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def create(self, job_id: str, track_id: str, title: str) -> Job:
        """Store a new pending job. Ids come from uuid4, so a collision means a caller bug."""
        if job_id in self._jobs:
            raise InvalidJobUpdate(f"Job {job_id} already exists")
        job = Job(
            job_id=job_id,
            track_id=track_id,
            title=title,
            status=PENDING,
            created_at=time.time(),
        )
        self._jobs[job_id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def update(self, job_id: str, **changes) -> Job:
        """Replace the stored job with a copy carrying `changes`, after checking the lifecycle rules.
        Why available: Single write path for the pipeline; enforces non-regressing status, terminal immutability,
        non-decreasing progress, download_url only on completed and error only on failed."""
        current = self._jobs.get(job_id)
        if current is None:
            raise JobNotFound(job_id)
        if current.is_terminal:
            raise InvalidJobUpdate(f"Job {job_id} is already {current.status}")

        status = changes.get("status", current.status)
        if status not in _STATUS_RANK:
            raise InvalidJobUpdate(f"Unknown status {status!r}")
        if status != FAILED and _STATUS_RANK[status] < _STATUS_RANK[current.status]:
            raise InvalidJobUpdate(f"Job {job_id} cannot go from {current.status} to {status}")

        if "download_url" in changes and status != COMPLETED:
            raise InvalidJobUpdate("download_url is only set on completion")
        if "error" in changes and status != FAILED:
            raise InvalidJobUpdate("error is only set on failure")
        if status == COMPLETED and not changes.get("download_url"):
            raise InvalidJobUpdate("completed jobs need a download_url")
        if status == FAILED and not changes.get("error"):
            raise InvalidJobUpdate("failed jobs need an error")

        if "progress" in changes and changes["progress"] is not None:
            progress = max(0, min(100, int(changes["progress"])))
            if current.progress is not None:
                progress = max(progress, current.progress)
            changes["progress"] = progress

        if status in TERMINAL_STATUSES and "finished_at" not in changes:
            changes["finished_at"] = time.time()

        updated = replace(current, **changes)
        self._jobs[job_id] = updated
        return updated

    def set_progress(self, job_id: str, progress: int) -> Optional[Job]:
        """Advisory progress write; ignored once the job is terminal or when it would not move forward."""
        current = self._jobs.get(job_id)
        if current is None or current.is_terminal:
            return current
        if current.progress is not None and progress <= current.progress:
            return current
        return self.update(job_id, progress=progress)


# In-memory store (single process). In production: Redis/DB.
JOBS = JobStore()
