"""Bounded exponential backoff for backend calls."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .config import RetryConfig
from .errors import TransientBackendError
from .logging import get_logger

T = TypeVar("T")

logger = get_logger("retry")


class Cancelled(Exception):
    """Raised when the cancel event fires while waiting to retry."""


@dataclass
class RetryPolicy:
    """Total attempts and delay bounds for transient failures."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: Callable[[], float] = random.random

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    def delay(self, attempt: int) -> float:
        """Delay before attempt ``attempt + 1``, jittered into ``[0.5, 1.0]`` of the cap."""
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return ceiling * (0.5 + 0.5 * self.jitter())

    def call(
        self,
        operation: Callable[[], T],
        *,
        label: str,
        cancel_event: Optional[threading.Event] = None,
        on_attempt: Optional[Callable[[int], None]] = None,
    ) -> T:
        """Run *operation*, retrying ``TransientBackendError`` up to ``max_attempts`` in total.

        Any other exception propagates at once. The last transient error is
        re-raised when attempts run out.
        """
        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise Cancelled(label)
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                return operation()
            except TransientBackendError as exc:
                if attempt >= self.max_attempts:
                    logger.warning("%s failed after %d attempts: %s", label, attempt, exc)
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs",
                    label,
                    attempt,
                    self.max_attempts,
                    exc,
                    wait,
                )
                if cancel_event is not None:
                    if cancel_event.wait(wait):
                        raise Cancelled(label) from exc
                else:
                    time.sleep(wait)
        raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["Cancelled", "RetryPolicy"]
