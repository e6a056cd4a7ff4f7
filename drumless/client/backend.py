"""HTTP client for the drum-removal API, used by the Streamlit UI and by serverless forwarding."""
from typing import Any, Dict, List, Optional

import requests


class JobNotFoundError(Exception):
    pass


class BackendClient:
    def __init__(self, base_url: str, timeout: int = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _error_detail(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("error") or body)
        return str(body)

    def search(self, query: str) -> List[Dict[str, Any]]:
        resp = self.session.get(self._url("/api/search"), params={"q": query}, timeout=self.timeout)
        if resp.status_code != 200:
            raise RuntimeError(self._error_detail(resp))
        return resp.json().get("results", [])

    def submit(self, track_id: str, title: str) -> str:
        """POST /api/process and return the job id."""
        resp = self.session.post(
            self._url("/api/process"),
            json={"trackId": track_id, "title": title},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise RuntimeError(self._error_detail(resp))
        return resp.json()["jobId"]

    def status(self, job_id: str) -> Dict[str, Any]:
        resp = self.session.get(self._url("/api/status"), params={"jobId": job_id}, timeout=self.timeout)
        if resp.status_code == 404:
            raise JobNotFoundError(job_id)
        if resp.status_code != 200:
            raise RuntimeError(self._error_detail(resp))
        return resp.json()

    def raw_submit(self, payload: Dict[str, Any]) -> requests.Response:
        """Forward a submission body untouched (serverless front end -> processing backend)."""
        return self.session.post(self._url("/api/process"), json=payload, timeout=self.timeout)

    def raw_status(self, job_id: str) -> requests.Response:
        return self.session.get(self._url("/api/status"), params={"jobId": job_id}, timeout=self.timeout)

    def audio_url(self, download_url: str) -> str:
        """Absolute URL for a job's downloadUrl (which is a server-relative path)."""
        if download_url.startswith(("http://", "https://")):
            return download_url
        return self._url(download_url)
