"""Closeable counting semaphore bounding how many jobs run at once.

All jobs start immediately and queue here; admission, not scheduling, is
bounded. Closing the limiter wakes every blocked caller in a single
broadcast instead of one caller per released token, which is what shutdown
needs.
"""

import logging
import threading


class AdmissionLimiter:
    """Token pool of size `ceiling` with broadcast close.

    Args:
        ceiling: Maximum number of tokens held at the same time (>= 1).
    """

    def __init__(self, ceiling: int):
        if ceiling < 1:
            raise ValueError(f"Concurrency ceiling must be >= 1, got {ceiling}")
        self._ceiling = ceiling
        self._in_use = 0
        self._peak_in_use = 0
        self._closed = False
        self._cond = threading.Condition()
        self.logger = logging.getLogger(__name__)

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def in_use(self) -> int:
        with self._cond:
            return self._in_use

    @property
    def peak_in_use(self) -> int:
        with self._cond:
            return self._peak_in_use

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def acquire(self) -> bool:
        """Blocks until a token is granted (True) or the limiter is closed (False)."""
        with self._cond:
            while not self._closed and self._in_use >= self._ceiling:
                self._cond.wait()
            if self._closed:
                return False
            self._in_use += 1
            self._peak_in_use = max(self._peak_in_use, self._in_use)
            return True

    def release(self):
        """Returns a token. After close() the token is discarded."""
        with self._cond:
            if self._closed:
                return
            if self._in_use <= 0:
                raise ValueError("AdmissionLimiter released more times than acquired")
            self._in_use -= 1
            self._cond.notify()

    def close(self):
        """Idempotent; every current and future acquire() returns False."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        self.logger.debug("ADMISSION_CLOSED")
