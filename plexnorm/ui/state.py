import threading
from datetime import datetime
from collections import deque
from typing import List, Optional, Dict
from plexnorm.domain.models import GlobalSnapshot, NormalizeJob

class UIState:
    """Thread-safe state manager for the dashboard."""

    def __init__(self, recent_jobs_max_items: int = 5):
        self._lock = threading.RLock()

        # Counters
        self.completed_count = 0
        self.failed_count = 0
        self.interrupted_count = 0

        # Run totals
        self.total_jobs = 0
        self.ceiling = 0
        self.total_estimated_seconds = 0.0
        self.snapshot: GlobalSnapshot = GlobalSnapshot()

        # Job lists
        self.active_jobs: List[NormalizeJob] = []
        self.recent_jobs = deque(maxlen=recent_jobs_max_items)

        # Job timing tracking
        self.job_start_times: Dict[int, datetime] = {}  # job_id -> start time

        # Global Status
        self.processing_start_time: Optional[datetime] = None
        self.interrupt_requested = False
        self.finished = False
        self.ui_title = "plexnorm"
        self.config_lines: List[str] = []

    @property
    def done_count(self) -> int:
        with self._lock:
            return self.completed_count + self.failed_count + self.interrupted_count

    def start_run(self, total_jobs: int, total_estimated_seconds: float, ceiling: int):
        with self._lock:
            self.total_jobs = total_jobs
            self.total_estimated_seconds = total_estimated_seconds
            self.ceiling = ceiling
            self.snapshot = GlobalSnapshot(
                total_jobs=total_jobs,
                total_estimated_seconds=total_estimated_seconds,
                queued_count=total_jobs,
            )
            self.processing_start_time = datetime.now()

    def update_snapshot(self, snapshot: GlobalSnapshot):
        with self._lock:
            self.snapshot = snapshot

    def add_active_job(self, job: NormalizeJob):
        with self._lock:
            if job not in self.active_jobs:
                self.active_jobs.append(job)
                self.job_start_times[job.job_id] = datetime.now()

    def remove_active_job(self, job: NormalizeJob):
        with self._lock:
            self.active_jobs = [j for j in self.active_jobs if j.job_id != job.job_id]
            self.job_start_times.pop(job.job_id, None)

    def add_completed_job(self, job: NormalizeJob):
        with self._lock:
            self.completed_count += 1
            self.recent_jobs.appendleft(job)
            self.remove_active_job(job)

    def add_failed_job(self, job: NormalizeJob):
        with self._lock:
            self.failed_count += 1
            self.recent_jobs.appendleft(job)
            self.remove_active_job(job)

    def add_interrupted_job(self, job: NormalizeJob):
        with self._lock:
            self.interrupted_count += 1
            self.recent_jobs.appendleft(job)
            self.remove_active_job(job)
