import os
import tempfile
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    """Interpret an env toggle such as ENABLE_YTDLP=1 / true / yes as a boolean."""
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _default_audio_dir() -> str:
    """Serverless deployments may only write to the temp dir; persistent hosts get ./data/audio."""
    if os.getenv("VERCEL"):
        return tempfile.gettempdir()
    return os.getenv("AUDIO_DIR", os.path.join(os.getcwd(), "data", "audio"))


class Settings(BaseModel):
    """Application settings loaded from environment: download strategies (hosted API, yt-dlp opt-in, proxy), separation tool parameters, transcoder, directories and limits.
    Why available: Single source of configuration so the API, the pipeline and the adapters agree on paths, timeouts and which fallbacks are allowed."""
    # defaults come from the environment, so they must go through the validators too
    model_config = ConfigDict(validate_default=True)

    # Acquisition
    download_api_key: str = os.getenv("DOWNLOAD_API_KEY", "")
    download_api_host: str = os.getenv("DOWNLOAD_API_HOST", "youtube-mp36.p.rapidapi.com")
    enable_ytdlp: bool = _env_flag("ENABLE_YTDLP")
    ytdlp_path: str = os.getenv("YTDLP_PATH", "yt-dlp")
    ytdlp_extra_args: str = os.getenv("YTDLP_EXTRA_ARGS", "")
    download_proxy_url: str = os.getenv("DOWNLOAD_PROXY_URL", "")
    download_timeout_seconds: int = int(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", "600"))

    # Separation / transcode
    demucs_command: str = os.getenv("DEMUCS_COMMAND", "python3 -m demucs")
    demucs_model: str = os.getenv("DEMUCS_MODEL", "htdemucs")
    demucs_segment: int = int(os.getenv("DEMUCS_SEGMENT", "0"))  # 0 = tool default
    demucs_jobs: int = int(os.getenv("DEMUCS_JOBS", "1"))
    separation_mode: str = os.getenv("SEPARATION_MODE", "two_stems")  # two_stems | full
    separation_timeout_seconds: int = int(os.getenv("SEPARATION_TIMEOUT_SECONDS", "1800"))  # 30 min
    output_bitrate: str = os.getenv("OUTPUT_BITRATE", "192k")
    ffmpeg_path: str = os.getenv("FFMPEG_PATH", "ffmpeg")
    normalize_audio: bool = _env_flag("NORMALIZE_AUDIO")
    job_timeout_seconds: int = int(os.getenv("JOB_TIMEOUT_SECONDS", "3600"))

    # Deployment
    serverless: bool = bool(os.getenv("VERCEL"))
    audio_dir: str = _default_audio_dir()
    backend_url: str = os.getenv("DRUM_REMOVER_BACKEND_URL", "")

    # API limits
    search_result_limit: int = int(os.getenv("SEARCH_RESULT_LIMIT", "5"))
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "30"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "download_timeout_seconds",
        "demucs_jobs",
        "separation_timeout_seconds",
        "job_timeout_seconds",
        "search_result_limit",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure timeouts, limits and parallelism are positive integers. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("demucs_segment")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("separation_mode")
    @classmethod
    def known_mode(cls, v):
        if v not in ("two_stems", "full"):
            raise ValueError("must be 'two_stems' or 'full'")
        return v

    @property
    def processing_enabled(self) -> bool:
        """The pipeline never runs in-process on a serverless deployment."""
        return not self.serverless


settings = Settings()
