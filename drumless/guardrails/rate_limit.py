import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from fastapi import HTTPException
from starlette.requests import Request

SEARCH = "search"
SUBMIT = "submit"


class RouteRateLimiter:
    """Sliding-window limiter per (route, client IP); in-memory, per process.
    Why available: Every submission starts a download and a multi-minute separation run, and every search scrapes the
    results page, so one client must not be able to flood either. Routes are counted separately, so searching does not
    use up the submission allowance."""

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)

    def check(self, request: Request, route: str) -> None:
        """Raise 429 when the client already used its allowance for `route` in the current window; otherwise count this call."""
        now = time.monotonic()
        client = request.client.host if request.client else "unknown"
        hits = self._hits[(route, client)]
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if len(hits) >= self.max_requests:
            retry_after = max(1, int(self.window_seconds - (now - hits[0])) + 1)
            raise HTTPException(
                status_code=429,
                detail=f"Too many {route} requests. Please retry later.",
                headers={"Retry-After": str(retry_after)},
            )
        hits.append(now)

    def reset(self) -> None:
        self._hits.clear()
