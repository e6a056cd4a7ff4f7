from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from typing import List, Optional


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProcessRequest(_CamelModel):
    """Request body for POST /api/process. Why available: Carries the chosen track id and its display title; older clients send videoId."""

    track_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("trackId", "videoId", "track_id"),
        description="Track id picked from /api/search",
    )
    title: str = Field("", description="Display title shown while the job runs")


class ProcessResponse(_CamelModel):
    """Response for POST /api/process. Why available: Clients poll /api/status with jobId until the job is terminal."""

    job_id: str = Field(..., alias="jobId")
    message: str = "Processing started"


class JobStatusResponse(_CamelModel):
    """Response for GET /api/status: the stored job fields verbatim. Why available: Polled by the UI every couple of seconds."""

    status: str
    title: str
    error: Optional[str] = None
    download_url: Optional[str] = Field(None, alias="downloadUrl")
    progress: Optional[int] = Field(None, ge=0, le=100)


class CandidateTrackModel(_CamelModel):
    """One search hit. Why available: The UI renders these as cards and submits the id."""

    id: str
    title: str
    thumbnail_url: str = Field("", alias="thumbnailUrl")
    duration: str = Field("Unknown", description="Display string e.g. 3:45")
    channel: str = Field("Unknown Channel")


class SearchResponse(_CamelModel):
    results: List[CandidateTrackModel] = Field(default_factory=list)


class StrategyStatus(_CamelModel):
    name: str
    configured: bool
    reason: str = ""


class ConfigResponse(_CamelModel):
    """Response for GET /api/config: non-secret view of the deployment. Why available: Lets the UI and operators see which download fallbacks are active."""

    mode: str = Field(..., description="serverless | persistent")
    processing_enabled: bool = Field(..., alias="processingEnabled")
    strategies: List[StrategyStatus] = Field(default_factory=list)
    separation_model: str = Field(..., alias="separationModel")
    separation_mode: str = Field(..., alias="separationMode")
    separation_timeout_seconds: int = Field(..., alias="separationTimeoutSeconds")
    output_bitrate: str = Field(..., alias="outputBitrate")
    normalize_audio: bool = Field(..., alias="normalizeAudio")
    search_result_limit: int = Field(..., alias="searchResultLimit")
