"""Hosted download API (RapidAPI-style): resolve a track id to a media link, then fetch the link."""
import logging
from pathlib import Path
from typing import Tuple

import requests

from drumless.adapters.base import AcquisitionStrategy, stream_to_file
from drumless.core.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)

# Body states that mean "no link yet" even with HTTP 200
UNUSABLE_STATUSES = ("fail", "failed", "error", "processing")


class HostedApiStrategy(AcquisitionStrategy):
    name = "hosted-api"

    def __init__(self, api_key: str, api_host: str, timeout: int = 600, session: requests.Session = None):
        self.api_key = api_key
        self.api_host = api_host
        self.timeout = timeout
        self.session = session or requests.Session()

    def configured(self) -> Tuple[bool, str]:
        if not self.api_key:
            return False, f"[{ErrorCode.MISSING_CREDENTIAL}] DOWNLOAD_API_KEY is not set"
        if not self.api_host:
            return False, f"[{ErrorCode.NOT_CONFIGURED}] DOWNLOAD_API_HOST is not set"
        return True, ""

    def resolve_link(self, track_id: str) -> str:
        """Ask the API for a downloadable link. Raises PipelineError(HTTP_STATUS | BAD_RESPONSE)."""
        url = f"https://{self.api_host}/dl"
        headers = {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.api_host,
            "Accept": "application/json",
        }
        try:
            resp = self.session.get(url, params={"id": track_id}, headers=headers, timeout=30)
        except requests.RequestException as e:
            raise PipelineError(ErrorCode.HTTP_STATUS, f"hosted API request failed: {e}")
        if resp.status_code // 100 != 2:
            raise PipelineError(ErrorCode.HTTP_STATUS, f"hosted API returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            raise PipelineError(ErrorCode.BAD_RESPONSE, "hosted API response is not JSON")
        if not isinstance(data, dict):
            raise PipelineError(ErrorCode.BAD_RESPONSE, "hosted API response is not an object")

        status = str(data.get("status") or "").lower()
        if status in UNUSABLE_STATUSES:
            msg = data.get("msg") or data.get("message") or status
            raise PipelineError(ErrorCode.BAD_RESPONSE, f"hosted API status '{status}': {msg}")
        link = data.get("link") or data.get("url")
        if not link or not isinstance(link, str):
            raise PipelineError(ErrorCode.BAD_RESPONSE, "hosted API response has no media link")
        return link

    def fetch(self, track_id: str, dest: Path) -> Path:
        link = self.resolve_link(track_id)
        logger.info("hosted API resolved a link for %s", track_id)
        try:
            with self.session.get(link, stream=True, timeout=self.timeout, allow_redirects=True) as resp:
                return stream_to_file(resp, dest, "hosted API media link")
        except requests.RequestException as e:
            raise PipelineError(ErrorCode.HTTP_STATUS, f"hosted API media download failed: {e}")
