"""Run-wide cancellation.

One write-once flag readable without blocking, propagated to the admission
limiter (blocked waiters wake up with "closed") and to every running encoder
process (terminate, then wait without a timeout: a child that ignores
SIGTERM is a bug to surface, not to paper over).
"""

import logging
import threading
from typing import Callable, List, Optional, Set
from plexnorm.pipeline.admission import AdmissionLimiter


class ShutdownController:
    def __init__(self, limiter: Optional[AdmissionLimiter] = None):
        self._limiter = limiter
        self._flag = threading.Event()
        self._lock = threading.Lock()
        self._processes: Set = set()
        self._actions: List[Callable[[], None]] = []
        self._actions_ran = False
        self.reason: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    def attach_limiter(self, limiter: AdmissionLimiter):
        """Binds the limiter created after the controller; closes it at once if already shut down."""
        with self._lock:
            self._limiter = limiter
            shutting_down = self._flag.is_set()
        if shutting_down:
            limiter.close()

    def is_shutting_down(self) -> bool:
        return self._flag.is_set()

    def on_signal(self, action: Callable[[], None]):
        """Registers a cleanup action, run once in registration order."""
        with self._lock:
            self._actions.append(action)

    def track(self, process) -> bool:
        """Registers a running encoder process.

        Returns False (and terminates the process) when shutdown already began,
        so a process spawned concurrently with signal() is never left running.
        """
        with self._lock:
            if not self._flag.is_set():
                self._processes.add(process)
                return True
        self._terminate(process)
        return False

    def untrack(self, process):
        with self._lock:
            self._processes.discard(process)

    def signal(self, reason: str = "interrupt"):
        """Idempotent; the first call closes admission, stops running processes and runs cleanup actions."""
        with self._lock:
            if self._flag.is_set():
                return
            self.reason = reason
            self._flag.set()
            limiter = self._limiter
            processes = list(self._processes)

        self.logger.info(f"SHUTDOWN: reason={reason} running_processes={len(processes)}")
        if limiter is not None:
            limiter.close()

        for process in processes:
            self._terminate(process)
        for process in processes:
            process.wait()
        if processes:
            self.logger.info(f"SHUTDOWN: {len(processes)} encoder process(es) terminated")

        self.run_cleanup()

    def run_cleanup(self):
        """Runs registered actions if they have not run yet (normal teardown path)."""
        with self._lock:
            if self._actions_ran:
                return
            self._actions_ran = True
            actions = list(self._actions)
        for action in actions:
            try:
                action()
            except Exception as e:
                self.logger.error(f"Cleanup action {getattr(action, '__name__', action)!r} failed: {e}")

    def _terminate(self, process):
        try:
            if process.poll() is None:
                process.terminate()
        except OSError as e:
            # Already reaped between poll() and terminate()
            self.logger.debug(f"SHUTDOWN: terminate failed: {e}")
