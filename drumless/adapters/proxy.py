"""Self-hosted download proxy: POST {url} to <proxy>/download and receive the audio stream in the response body."""
from pathlib import Path
from typing import Tuple

import requests

from drumless.adapters.base import AcquisitionStrategy, stream_to_file, watch_url
from drumless.core.errors import ErrorCode, PipelineError


class ProxyStrategy(AcquisitionStrategy):
    name = "proxy"

    def __init__(self, base_url: str, timeout: int = 600, session: requests.Session = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def configured(self) -> Tuple[bool, str]:
        if not self.base_url:
            return False, f"[{ErrorCode.NOT_CONFIGURED}] DOWNLOAD_PROXY_URL is not set"
        return True, ""

    def fetch(self, track_id: str, dest: Path) -> Path:
        try:
            with self.session.post(
                f"{self.base_url}/download",
                json={"url": watch_url(track_id)},
                stream=True,
                timeout=self.timeout,
            ) as resp:
                return stream_to_file(resp, dest, "download proxy")
        except requests.RequestException as e:
            raise PipelineError(ErrorCode.HTTP_STATUS, f"download proxy request failed: {e}")
