import pytest
from pathlib import Path
from pydantic import ValidationError
from plexnorm.domain.models import (
    GlobalSnapshot, JobOutcome, JobStatus, NormalizeJob, ProgressEvent, RunSummary, VideoFile,
)

def test_job_defaults():
    job = NormalizeJob(job_id=0, source_file=VideoFile(path=Path("/m/a.mkv")), output_path=Path("/m/a_n.mkv"))
    assert job.status == JobStatus.QUEUED
    assert job.name == "a.mkv"
    assert job.elapsed_seconds == 0

def test_progress_event_rejects_negative_elapsed():
    with pytest.raises(ValidationError):
        ProgressEvent(job_id=0, elapsed_seconds=-1)

def test_snapshot_percent():
    assert GlobalSnapshot(total_estimated_seconds=200, total_elapsed=50).percent == 25.0
    assert GlobalSnapshot(total_estimated_seconds=0, total_elapsed=50).percent == 0.0
    assert GlobalSnapshot(total_estimated_seconds=10, total_elapsed=50).percent == 100.0

def _outcome(status):
    return JobOutcome(job_id=0, status=status)

def test_summary_exit_code_success():
    summary = RunSummary(outcomes=[_outcome(JobStatus.COMPLETED)] * 2)
    assert summary.exit_code == 0
    assert summary.completed == 2

def test_summary_exit_code_failure():
    summary = RunSummary(outcomes=[_outcome(JobStatus.COMPLETED), _outcome(JobStatus.FAILED)])
    assert summary.exit_code == 1
    assert summary.failed == 1

def test_summary_shutdown_takes_precedence():
    summary = RunSummary(
        outcomes=[_outcome(JobStatus.FAILED), _outcome(JobStatus.INTERRUPTED)],
        shutdown_signaled=True,
    )
    assert summary.exit_code == 130
    assert summary.interrupted == 1
