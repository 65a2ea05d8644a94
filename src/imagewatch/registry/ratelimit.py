"""Cooldown flag for registry throttling."""

from __future__ import annotations

import threading

from imagewatch.utils.locks import RWLock
from imagewatch.utils.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Flag that is raised on a 429 and lowered again after ``delay`` seconds.

    Readers (every blob size request) take the read side of the lock so checks
    run concurrently; raising and clearing the flag take the write side.
    """

    def __init__(self, delay: float = 10.0) -> None:
        self.delay = delay
        self._lock = RWLock()
        self._limited = False
        self._timer: threading.Timer | None = None

    def is_limited(self) -> bool:
        with self._lock.read():
            return self._limited

    def trigger_limit(self) -> None:
        """Raise the flag and schedule it to be cleared.

        Raises:
            RuntimeError: If the flag is already raised
        """
        if not self.try_trigger():
            raise RuntimeError("trigger_limit called while already rate limited")

    def try_trigger(self) -> bool:
        """Raise the flag unless it is already raised.

        The check and the raise happen under one write lock, so of several
        threads hitting a 429 at once exactly one starts the timer.

        Returns:
            True if this call raised the flag
        """
        with self._lock.write():
            if self._limited:
                return False
            logger.debug("Setting rate limiter for %.1fs", self.delay)
            self._limited = True
            self._timer = threading.Timer(self.delay, self._clear)
            self._timer.daemon = True
            self._timer.start()
            return True

    def _clear(self) -> None:
        with self._lock.write():
            logger.debug("Clearing rate limiter")
            self._limited = False
            self._timer = None

    def cancel(self) -> None:
        """Clear the flag immediately and drop the pending timer."""
        with self._lock.write():
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._limited = False
