"""
Admission Service Module.

Per-client fixed-window rate limiting for the ingestion endpoint. A client
gets ``points`` admissions per ``duration_seconds`` window; the window opens
on the client's first request and the counter resets when it expires.

The controller owns its counter storage. The application creates one
instance at startup and keeps it on ``app.state`` so tests get a fresh
controller per app and a shared store (e.g. ``limits.storage.RedisStorage``)
can be injected for multi-instance deployments.

Usage:
    controller = AdmissionController(points=10, duration_seconds=60)
    decision = controller.consume("203.0.113.7")
    if not decision.allowed:
        raise RateLimitError(retry_after=decision.retry_after)
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter
from starlette.requests import Request

from photo_ingest.services.base import BaseService

UNKNOWN_CLIENT = "unknown"


@dataclass
class AdmissionDecision:
    """Outcome of a single consume call.

    Attributes:
        allowed: Whether the request was admitted.
        remaining: Admissions left in the current window.
        retry_after: Whole seconds until the window resets (0 when allowed).
    """

    allowed: bool
    remaining: int
    retry_after: int = 0


class AdmissionController(BaseService):
    """Fixed-window request counter keyed by client identifier.

    Attributes:
        points: Maximum admissions per window.
        duration_seconds: Window length in seconds.
    """

    def __init__(
        self,
        points: int = 10,
        duration_seconds: int = 60,
        storage: Optional[Storage] = None,
    ) -> None:
        super().__init__()
        if points < 1:
            raise ValueError("points must be at least 1")
        if duration_seconds < 1:
            raise ValueError("duration_seconds must be at least 1")

        self.points = points
        self.duration_seconds = duration_seconds
        self._storage = storage or MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._item = RateLimitItemPerSecond(points, duration_seconds, namespace="UPLOAD")

    def consume(self, client_id: str) -> AdmissionDecision:
        """Spend one point for ``client_id``.

        Denial is a normal outcome, not an error.

        Args:
            client_id: The client identifier.

        Returns:
            AdmissionDecision describing the outcome.
        """
        allowed = self._limiter.hit(self._item, client_id)
        stats = self._limiter.get_window_stats(self._item, client_id)

        if allowed:
            return AdmissionDecision(allowed=True, remaining=stats.remaining)

        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        self.log_warning(
            "Rate limit exceeded",
            extra={"client_id": client_id, "retry_after": retry_after},
        )
        return AdmissionDecision(allowed=False, remaining=0, retry_after=retry_after)

    def reset(self, client_id: Optional[str] = None) -> None:
        """Clear counters for one client, or for every client."""
        if client_id is None:
            self._storage.reset()
        else:
            self._limiter.clear(self._item, client_id)


def get_client_identifier(request: Request, trust_forwarded_for: bool = True) -> str:
    """Derive the rate-limit key for a request.

    Uses the first ``X-Forwarded-For`` entry when trusted, then the socket
    peer address.

    Args:
        request: The incoming request.
        trust_forwarded_for: Whether to honour ``X-Forwarded-For``.

    Returns:
        The client identifier, or ``"unknown"``.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
