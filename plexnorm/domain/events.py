"""Domain events for the normalization pipeline.

Events flow through the EventBus and decouple the pipeline (orchestrator,
job supervisors, progress aggregator) from the dashboard.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import List
from pydantic import BaseModel
from .models import NormalizeJob, GlobalSnapshot, JobOutcome


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class RunStarted(Event):
    """Emitted once jobs are enumerated and the duration estimate is known."""

    jobs: List[NormalizeJob]
    total_estimated_seconds: float = 0.0
    ceiling: int = 1


class JobEvent(Event):
    """Base class for events related to a specific job."""

    job: NormalizeJob


class JobStarted(JobEvent):
    """Emitted when the encoder process of a job has been spawned."""

    pass


class JobCompleted(JobEvent):
    """Emitted when ffmpeg exits with code 0."""

    pass


class JobFailed(JobEvent):
    """Emitted when a job fails while no shutdown is in progress."""

    error_message: str


class JobInterrupted(JobEvent):
    """Emitted when a job ends early because shutdown was signaled."""

    reason: str = "Shutdown signaled"


class ProgressSnapshotUpdated(Event):
    """Emitted by the aggregator after every merged progress event."""

    snapshot: GlobalSnapshot


class InterruptRequested(Event):
    """Emitted when the operator interrupts the run (Ctrl+C / SIGTERM)."""

    pass


class ProcessingFinished(Event):
    """Emitted after every job returned and the aggregator was drained."""

    outcomes: List[JobOutcome] = []
