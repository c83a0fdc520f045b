import logging
from plexnorm.infrastructure.event_bus import EventBus
from plexnorm.ui.state import UIState
from plexnorm.domain.events import (
    RunStarted, JobStarted, JobCompleted, JobFailed, JobInterrupted,
    ProgressSnapshotUpdated, InterruptRequested, ProcessingFinished,
)

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self.logger = logging.getLogger(__name__)
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(RunStarted, self.on_run_started)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(JobInterrupted, self.on_job_interrupted)
        self.bus.subscribe(ProgressSnapshotUpdated, self.on_snapshot)
        self.bus.subscribe(InterruptRequested, self.on_interrupt_request)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def on_run_started(self, event: RunStarted):
        self.logger.debug(
            f"UI: run started jobs={len(event.jobs)} estimate={event.total_estimated_seconds:.0f}s"
        )
        self.state.start_run(len(event.jobs), event.total_estimated_seconds, event.ceiling)

    def on_job_started(self, event: JobStarted):
        self.state.add_active_job(event.job)

    def on_job_completed(self, event: JobCompleted):
        self.state.add_completed_job(event.job)

    def on_job_failed(self, event: JobFailed):
        self.state.add_failed_job(event.job)

    def on_job_interrupted(self, event: JobInterrupted):
        self.state.add_interrupted_job(event.job)

    def on_snapshot(self, event: ProgressSnapshotUpdated):
        self.state.update_snapshot(event.snapshot)

    def on_interrupt_request(self, event: InterruptRequested):
        with self.state._lock:
            self.state.interrupt_requested = True

    def on_processing_finished(self, event: ProcessingFinished):
        with self.state._lock:
            self.state.finished = True
