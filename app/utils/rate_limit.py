from fastapi import Request
from typing import Callable, Dict, List, Tuple
import time

from app.core.errors import RateLimitError


class FixedWindowRateLimiter:
    """
    Count requests per client address inside a fixed time window.

    State lives in process memory, so the limit is per worker.
    """

    def __init__(self, window_seconds: int, max_requests: int, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.clock = clock
        # client -> [request count, window start]
        self.hits: Dict[str, List[float]] = {}

    def hit(self, client: str) -> Tuple[bool, int, int]:
        """
        Record one request. Returns ``(allowed, remaining, seconds_until_reset)``.
        """
        now = self.clock()
        entry = self.hits.get(client)

        if entry is None or now - entry[1] >= self.window_seconds:
            self._prune(now)
            entry = [0, now]
            self.hits[client] = entry

        entry[0] += 1
        reset_after = max(int(entry[1] + self.window_seconds - now), 1)
        remaining = max(self.max_requests - int(entry[0]), 0)

        return entry[0] <= self.max_requests, remaining, reset_after

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, start) in self.hits.items() if now - start >= self.window_seconds]
        for key in expired:
            del self.hits[key]


def get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def is_exempt(request: Request) -> bool:
    # Admin sub-routes (stats, single contact) are not counted while developing locally
    settings = request.app.state.settings
    return settings.is_development and request.url.path.startswith(f"{settings.API_PREFIX}/contacts/")


async def enforce_rate_limit(request: Request) -> None:
    if is_exempt(request):
        return

    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    allowed, remaining, reset_after = limiter.hit(get_client_ip(request))

    headers = {
        "RateLimit-Limit": str(limiter.max_requests),
        "RateLimit-Remaining": str(remaining),
        "RateLimit-Reset": str(reset_after),
    }
    # Picked up by the response middleware so every counted response carries them
    request.state.rate_limit_headers = headers

    if not allowed:
        raise RateLimitError(headers={"Retry-After": str(reset_after), **headers})
