"""Per-owner sliding window rate limiter for uploads."""

import math
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

from .constants import UPLOAD_MAX_BYTES, UPLOAD_MAX_REQUESTS, UPLOAD_WINDOW_SECONDS
from .exceptions import RateLimitError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None
    bytes_remaining: Optional[int] = None


class SlidingWindowRateLimiter:
    """Thread-safe sliding window counter of requests and bytes per owner.

    Check and record happen under one lock, so concurrent requests from the
    same owner never observe a torn counter.
    """

    def __init__(
        self,
        window_seconds: float = UPLOAD_WINDOW_SECONDS,
        max_requests: int = UPLOAD_MAX_REQUESTS,
        max_bytes: Optional[int] = UPLOAD_MAX_BYTES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize rate limiter.

        Args:
            window_seconds: Length of the sliding window
            max_requests: Requests allowed per owner within the window
            max_bytes: Bytes allowed per owner within the window (None for no limit)
            clock: Monotonic time source
        """
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.max_bytes = max_bytes
        self.clock = clock
        self._events: dict[str, deque[tuple[float, int]]] = {}
        self.lock = Lock()

    def _prune(self, owner_id: str, now: float) -> deque[tuple[float, int]]:
        """Events still inside the window; owners with none are forgotten."""
        events = self._events.get(owner_id)
        if events is None:
            return deque()
        cutoff = now - self.window_seconds
        while events and events[0][0] <= cutoff:
            events.popleft()
        if not events:
            del self._events[owner_id]
        return events

    def _retry_after(self, events: deque[tuple[float, int]], now: float) -> int:
        if not events:
            return 0
        return max(1, math.ceil(events[0][0] + self.window_seconds - now))

    def check(self, owner_id: str, nbytes: int = 0) -> RateLimitResult:
        """Check the limit and, when allowed, record the request.

        Args:
            owner_id: Owner identity
            nbytes: Bytes the request is about to transfer

        Returns:
            RateLimitResult describing the decision
        """
        with self.lock:
            now = self.clock()
            events = self._prune(owner_id, now)
            used_bytes = sum(size for _, size in events)
            bytes_remaining = (
                self.max_bytes - used_bytes if self.max_bytes is not None else None
            )

            if len(events) >= self.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    retry_after=self._retry_after(events, now),
                    bytes_remaining=bytes_remaining,
                )

            if self.max_bytes is not None and used_bytes + nbytes > self.max_bytes:
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=self.max_requests - len(events),
                    retry_after=self._retry_after(events, now),
                    bytes_remaining=max(0, self.max_bytes - used_bytes),
                )

            events.append((now, nbytes))
            self._events[owner_id] = events
            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(events),
                bytes_remaining=bytes_remaining - nbytes if bytes_remaining is not None else None,
            )

    def acquire(self, owner_id: str, nbytes: int = 0) -> RateLimitResult:
        """Like ``check`` but raise when the request is not allowed.

        Raises:
            RateLimitError: If the owner is over the request or byte limit
        """
        result = self.check(owner_id, nbytes)
        if not result.allowed:
            logger.warning(
                f"Upload rate limit hit for owner {owner_id} "
                f"(retry after {result.retry_after}s)"
            )
            raise RateLimitError(
                f"Upload limit reached for {owner_id}",
                retry_after=result.retry_after or 1,
            )
        return result

    def status(self, owner_id: str) -> RateLimitResult:
        """Current usage without recording a request."""
        with self.lock:
            now = self.clock()
            events = self._prune(owner_id, now)
            used_bytes = sum(size for _, size in events)
            exhausted = len(events) >= self.max_requests
            return RateLimitResult(
                allowed=not exhausted,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - len(events)),
                retry_after=self._retry_after(events, now) if exhausted else None,
                bytes_remaining=(
                    max(0, self.max_bytes - used_bytes) if self.max_bytes is not None else None
                ),
            )

    def reset(self, owner_id: Optional[str] = None) -> None:
        """Forget recorded requests for one owner, or for everyone."""
        with self.lock:
            if owner_id is None:
                self._events.clear()
            else:
                self._events.pop(owner_id, None)
