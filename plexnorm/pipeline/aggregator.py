"""Fan-in of per-job progress into one global snapshot.

Many job reader threads push events; a single consumer thread owns the
per-job map and is its only writer. Every event reports a job's total
elapsed time, so the merge overwrites (last value wins) and the global total
is recomputed from scratch on each event.
"""

import logging
import queue
import threading
from typing import Dict, Iterable, Optional, Set
from plexnorm.infrastructure.event_bus import EventBus
from plexnorm.domain.events import ProgressSnapshotUpdated
from plexnorm.domain.models import GlobalSnapshot, JobOutcome, ProgressEvent, ProgressPhase

_STOP = object()


class ProgressAggregator:
    """Single-consumer progress merger.

    Args:
        total_jobs: Number of jobs in the run (for the queued count).
        total_estimated_seconds: Sum of probed durations (progress denominator).
        event_bus: Optional bus receiving a ProgressSnapshotUpdated per merged event.
    """

    def __init__(self, total_jobs: int, total_estimated_seconds: float = 0.0, event_bus: Optional[EventBus] = None):
        self.total_jobs = total_jobs
        self.total_estimated_seconds = max(0.0, total_estimated_seconds)
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

        self._events: "queue.Queue" = queue.Queue()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._consumer: Optional[threading.Thread] = None

        # Owned by the consumer thread
        self._elapsed: Dict[int, int] = {}
        self._ended: Set[int] = set()

        self._snapshot = self._compute()

    def start(self):
        if self._consumer is not None:
            return self
        self._consumer = threading.Thread(target=self._consume, name="progress-aggregator", daemon=True)
        self._consumer.start()
        return self

    def push(self, event: ProgressEvent):
        """Enqueues an event from any producer thread; dropped once closed."""
        if self._closed.is_set():
            return
        self._events.put(event)

    def snapshot(self) -> GlobalSnapshot:
        return self._snapshot

    def close(self):
        """Stops the consumer after the events queued so far are merged (idempotent)."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._events.put(_STOP)
        if self._consumer is not None and self._consumer is not threading.current_thread():
            self._consumer.join()

    def reconcile(self, outcomes: Iterable[JobOutcome]):
        """Marks every spawned job as ended, covering end events that never arrived.

        Must only run after close(); the consumer is gone, so this thread is the sole writer.
        """
        for outcome in outcomes:
            if not outcome.spawned:
                continue
            previous = self._elapsed.get(outcome.job_id, 0)
            self._elapsed[outcome.job_id] = max(previous, outcome.elapsed_seconds)
            self._ended.add(outcome.job_id)
        self._publish(self._compute())

    def _consume(self):
        while True:
            item = self._events.get()
            if item is _STOP:
                break
            self._apply(item)
        self.logger.debug(f"AGGREGATOR_STOPPED: {self._snapshot}")

    def _apply(self, event: ProgressEvent):
        self._elapsed[event.job_id] = event.elapsed_seconds
        if event.phase == ProgressPhase.END:
            self._ended.add(event.job_id)
        self._publish(self._compute())

    def _compute(self) -> GlobalSnapshot:
        admitted = len(self._elapsed)
        completed = len(self._ended)
        return GlobalSnapshot(
            total_jobs=self.total_jobs,
            total_estimated_seconds=self.total_estimated_seconds,
            total_elapsed=sum(self._elapsed.values()),
            admitted_count=admitted,
            completed_count=completed,
            in_progress_count=admitted - completed,
            queued_count=max(0, self.total_jobs - admitted),
        )

    def _publish(self, snapshot: GlobalSnapshot):
        self._snapshot = snapshot
        if self.event_bus is not None:
            self.event_bus.publish(ProgressSnapshotUpdated(snapshot=snapshot))
