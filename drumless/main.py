import logging
import uuid
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, Response

from drumless.adapters.acquire import build_strategies
from drumless.client.backend import BackendClient
from drumless.core.config import settings
from drumless.core.errors import as_http_500
from drumless.core.logging_config import setup_logging
from drumless.guardrails.rate_limit import SEARCH, SUBMIT, RouteRateLimiter
from drumless.jobs.store import JOBS
from drumless.models.schemas import (
    CandidateTrackModel,
    ConfigResponse,
    JobStatusResponse,
    ProcessRequest,
    ProcessResponse,
    SearchResponse,
    StrategyStatus,
)
from drumless.observability.middleware import RequestTimingMiddleware, get_request_id
from drumless.pipeline.worker import PipelineTools, build_tools, run_drum_removal_job
from drumless.search.youtube import SearchError, search_tracks
from drumless.storage.files import media_type_for, resolve_output, safe_filename

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


# -------------------------
# App setup
# -------------------------

app = FastAPI(title="Drum Remover")
app.add_middleware(RequestTimingMiddleware)

rate_limiter = RouteRateLimiter(
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


def get_pipeline_tools() -> PipelineTools:
    """Adapters for a new job, built from the current settings."""
    return build_tools(settings)


def _forward(resp) -> Response:
    """Relay a processing-backend response as-is (serverless front end)."""
    return Response(
        content=resp.content,
        status_code=resp.status_code,
        media_type=resp.headers.get("content-type", "application/json"),
    )


# -------------------------
# Root
# -------------------------

@app.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL.
    Why available: Gives clients and load balancers a simple root endpoint to confirm the API is running."""
    return {"app": "Drum Remover", "docs": "/docs"}


@app.get("/health")
def health():
    """Returns 200 OK with status and deployment mode. Used by load balancers and probes."""
    return {"status": "ok", "mode": "serverless" if settings.serverless else "persistent"}


@app.get("/api/config", response_model=ConfigResponse, response_model_by_alias=True)
def config_view():
    """Non-secret view of the deployment: which download strategies are active and the separation parameters.
    Why available: Lets the UI warn before submitting when nothing can download, and helps operators check env wiring."""
    strategies = []
    for s in build_strategies(settings):
        ok, why = s.configured()
        strategies.append(StrategyStatus(name=s.name, configured=ok, reason=why))
    return ConfigResponse(
        mode="serverless" if settings.serverless else "persistent",
        processing_enabled=settings.processing_enabled,
        strategies=strategies,
        separation_model=settings.demucs_model,
        separation_mode=settings.separation_mode,
        separation_timeout_seconds=settings.separation_timeout_seconds,
        output_bitrate=settings.output_bitrate,
        normalize_audio=settings.normalize_audio,
        search_result_limit=settings.search_result_limit,
    )


# -------------------------
# Search
# -------------------------

@app.get("/api/search", response_model=SearchResponse, response_model_by_alias=True)
def search(request: Request, q: Optional[str] = Query(None)):
    """Searches for candidate tracks matching a free-text song title; returns at most search_result_limit hits.
    Why available: First step of the UI flow; the user picks one result and submits its id."""
    rate_limiter.check(request, SEARCH)
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Search query is required")
    try:
        hits = search_tracks(query, limit=settings.search_result_limit)
    except SearchError as e:
        logger.warning("Search failed: %s", e)
        raise HTTPException(status_code=502, detail="Failed to search for songs. Please try again.")
    return SearchResponse(results=[
        CandidateTrackModel(
            id=h.id,
            title=h.title,
            thumbnail_url=h.thumbnail_url,
            duration=h.duration,
            channel=h.channel,
        )
        for h in hits
    ])


# -------------------------
# Submission (fire-and-forget)
# -------------------------

@app.post("/api/process", response_model=ProcessResponse, response_model_by_alias=True)
def process(req: ProcessRequest, request: Request, background_tasks: BackgroundTasks):
    """Creates a pending job for the chosen track, schedules the drum-removal pipeline and returns jobId immediately.
    Client polls GET /api/status?jobId=... until completed or failed.
    Why available: Separation takes minutes, so the response must not wait for it."""
    rate_limiter.check(request, SUBMIT)

    track_id = (req.track_id or "").strip()
    if not track_id:
        raise HTTPException(status_code=400, detail="Track ID is required")

    if not settings.processing_enabled:
        if settings.backend_url:
            return _forward(BackendClient(settings.backend_url).raw_submit({"trackId": track_id, "title": req.title}))
        raise HTTPException(status_code=503, detail="Processing is disabled on this deployment")

    try:
        job_id = str(uuid.uuid4())
        title = req.title or track_id
        tools = get_pipeline_tools()
        JOBS.create(job_id, track_id, title)
    except Exception as e:
        raise as_http_500(e)

    background_tasks.add_task(run_drum_removal_job, job_id, track_id, title, JOBS, tools, settings)
    logger.info("Job %s queued for track %s (request %s)", job_id, track_id, get_request_id(request))

    return ProcessResponse(job_id=job_id)


# -------------------------
# Job Status
# -------------------------

def _job_view(job_id: str):
    if settings.serverless and settings.backend_url:
        return _forward(BackendClient(settings.backend_url).raw_status(job_id))

    job = JOBS.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return JobStatusResponse(
        status=job.status,
        title=job.title,
        error=job.error,
        download_url=job.download_url,
        progress=job.progress,
    )


@app.get(
    "/api/status",
    response_model=JobStatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
def job_status(jobId: Optional[str] = Query(None)):
    """Returns status, title, progress and either downloadUrl (completed) or error (failed) for a job.
    Why available: Lets clients poll after POST /api/process to know when the file is ready or why it failed."""
    if not jobId:
        raise HTTPException(status_code=400, detail="Job ID is required")
    return _job_view(jobId)


@app.get(
    "/api/status/{job_id}",
    response_model=JobStatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
def job_status_by_path(job_id: str):
    return _job_view(job_id)


# -------------------------
# Retrieval
# -------------------------

def _serve_output(reference: str, attachment: bool):
    name = safe_filename(reference)
    if name is None:
        raise HTTPException(status_code=400, detail="Invalid file reference")
    path = resolve_output(settings.audio_dir, name)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        path,
        media_type=media_type_for(path),
        filename=path.name,
        content_disposition_type="attachment" if attachment else "inline",
    )


@app.get("/api/download")
def download(file: Optional[str] = Query(None)):
    """Streams a finished output file as an attachment. Only the base filename of `file` is used, so references cannot escape the audio directory.
    Why available: Download button in the UI; on serverless deployments this is the only retrieval route."""
    if not file:
        raise HTTPException(status_code=400, detail="Filename is required")
    return _serve_output(file, attachment=True)


@app.get("/audio/{filename}")
def audio(filename: str):
    """Serves a finished output file inline (the downloadUrl of completed jobs points here)."""
    return _serve_output(filename, attachment=False)
