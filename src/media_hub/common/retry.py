"""Retry helpers.

``RetryPolicy`` bounds chunk transmission; ``exponential_backoff`` wraps
Drive API calls made through googleapiclient.
"""

import functools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, Optional, TypeVar

from googleapiclient.errors import HttpError

from .constants import MAX_ATTEMPTS, RETRY_BASE_DELAY, RETRY_MAX_DELAY
from .exceptions import StorageError, TransientTransportError, UploadCancelledError
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryNotice:
    """A failed attempt that will be retried after ``delay`` seconds."""

    attempt: int
    delay: float
    error: TransientTransportError


@dataclass
class RetryPolicy:
    """Bounded retry with exponential delay for transient transport failures.

    Only ``TransientTransportError`` consumes retry budget; every other
    exception propagates on the first occurrence.
    """

    max_attempts: int = MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt: ``base * 2**attempt``."""
        return min(self.base_delay * (2**attempt), self.max_delay)

    def attempts(
        self,
        func: Callable[[], T],
        cancel: Optional[threading.Event] = None,
    ) -> Generator[RetryNotice, None, T]:
        """Invoke ``func`` until it succeeds or the attempt bound is reached.

        Yields a ``RetryNotice`` before each wait, so a caller producing
        progress events can report the retry; the wait happens when the
        generator is resumed. The generator's return value is ``func``'s.

        Args:
            func: Zero-argument callable performing one attempt
            cancel: Optional event; when set, no further attempt is started

        Raises:
            TransientTransportError: When every attempt failed transiently
            UploadCancelledError: When ``cancel`` is set between attempts
        """
        for attempt in range(self.max_attempts):
            if cancel is not None and cancel.is_set():
                raise UploadCancelledError("Upload cancelled before attempt")
            try:
                return func()
            except TransientTransportError as e:
                if attempt + 1 >= self.max_attempts:
                    logger.error(f"Giving up after {self.max_attempts} attempts: {e}")
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                yield RetryNotice(attempt=attempt + 1, delay=delay, error=e)
                self.sleep(delay)

        raise AssertionError("unreachable")

    def call(self, func: Callable[[], T], cancel: Optional[threading.Event] = None) -> T:
        """Run ``attempts`` to completion and return the result."""
        gen = self.attempts(func, cancel)
        while True:
            try:
                next(gen)
            except StopIteration as stop:
                return stop.value


def exponential_backoff(
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry Drive API calls with exponential backoff for transient errors.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Decorator function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except HttpError as e:
                    # Don't retry client errors (except 429 rate limit)
                    if e.resp.status < 500 and e.resp.status != 429:
                        raise

                    if attempt == max_retries:
                        if e.resp.status == 429:
                            raise StorageError("Drive API rate limit exceeded") from e
                        raise

                    logger.warning(
                        f"Drive request failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, max_delay)

            raise AssertionError("unreachable")

        return wrapper
    return decorator
