from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field

# Exit code for a run stopped by SIGINT/SIGTERM
SHUTDOWN_EXIT_CODE = 130

class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    ADMITTED = "ADMITTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"  # Shutdown before or during encoding

TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.INTERRUPTED)

class ProgressPhase(str, Enum):
    RUNNING = "running"
    END = "end"

class VideoFile(BaseModel):
    path: Path
    size_bytes: int = 0

class NormalizeJob(BaseModel):
    job_id: int
    source_file: VideoFile
    output_path: Path
    status: JobStatus = JobStatus.QUEUED
    estimated_duration_seconds: float = Field(default=0.0, ge=0.0)
    elapsed_seconds: int = Field(default=0, ge=0)
    exit_code: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def name(self) -> str:
        return self.source_file.path.name

class ProgressEvent(BaseModel):
    """One progress report of a single job (total elapsed so far, not a delta)."""
    job_id: int
    elapsed_seconds: int = Field(default=0, ge=0)
    phase: ProgressPhase = ProgressPhase.RUNNING

class GlobalSnapshot(BaseModel):
    total_jobs: int = 0
    total_estimated_seconds: float = 0.0
    total_elapsed: int = 0
    admitted_count: int = 0
    completed_count: int = 0
    in_progress_count: int = 0
    queued_count: int = 0

    @property
    def percent(self) -> float:
        if self.total_estimated_seconds <= 0:
            return 0.0
        return min(100.0, (self.total_elapsed / self.total_estimated_seconds) * 100.0)

class JobOutcome(BaseModel):
    job_id: int
    status: JobStatus
    exit_code: Optional[int] = None
    error_message: Optional[str] = None
    spawned: bool = False
    elapsed_seconds: int = 0

class RunSummary(BaseModel):
    outcomes: List[JobOutcome] = Field(default_factory=list)
    shutdown_signaled: bool = False
    total_estimated_seconds: float = 0.0

    def _count(self, status: JobStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def completed(self) -> int:
        return self._count(JobStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(JobStatus.FAILED)

    @property
    def interrupted(self) -> int:
        return self._count(JobStatus.INTERRUPTED)

    @property
    def exit_code(self) -> int:
        if self.shutdown_signaled:
            return SHUTDOWN_EXIT_CODE
        if self.failed:
            return 1
        return 0
