"""Error codes and exceptions shared by the adapters, the pipeline and the API."""
import logging

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class ErrorCode:
    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    HTTP_STATUS = "HTTP_STATUS"
    BAD_RESPONSE = "BAD_RESPONSE"
    NOT_MEDIA = "NOT_MEDIA"
    EMPTY_FILE = "EMPTY_FILE"
    TOOL_MISSING = "TOOL_MISSING"
    TOOL_EXIT = "TOOL_EXIT"
    TOOL_TIMEOUT = "TOOL_TIMEOUT"
    OUTPUT_NOT_FOUND = "OUTPUT_NOT_FOUND"
    ACQUISITION_FAILED = "ACQUISITION_FAILED"
    JOB_TIMEOUT = "JOB_TIMEOUT"
    PROCESSING_DISABLED = "PROCESSING_DISABLED"


class PipelineError(Exception):
    """Raised by an adapter or pipeline step with a code that names the failure mode.
    Why available: The job's error field is str(exc), so every failure reaching a user carries its code ("[TOOL_EXIT] ...")."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    logger.error("Unhandled error: %s", e, exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")
