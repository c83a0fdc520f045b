"""Supervisor for a single encode.

Sequence per job: shutdown check, admission, shutdown re-check, encoding
parameters, spawn, progress reader, wait, release, classify. The admission
token is released exactly once on every path; jobs that reach the spawn step
push exactly one `end` progress event.
"""

import logging
import threading
import time
from typing import Optional
from plexnorm.config.models import AppConfig
from plexnorm.domain.errors import EncodingParameterError
from plexnorm.domain.events import JobStarted, JobCompleted, JobFailed, JobInterrupted
from plexnorm.domain.models import JobOutcome, JobStatus, NormalizeJob, ProgressEvent, ProgressPhase
from plexnorm.infrastructure.event_bus import EventBus
from plexnorm.infrastructure.ffmpeg import FFmpegAdapter, FFmpegProgressParser
from plexnorm.infrastructure.workspace import RunWorkspace
from plexnorm.pipeline.admission import AdmissionLimiter
from plexnorm.pipeline.aggregator import ProgressAggregator
from plexnorm.pipeline.encoding import EncodingParameterProvider
from plexnorm.pipeline.shutdown import ShutdownController


class JobProcess:
    """Runs jobs through admission and the encoder; one instance serves every job of a run."""

    def __init__(
        self,
        config: AppConfig,
        limiter: AdmissionLimiter,
        shutdown: ShutdownController,
        aggregator: ProgressAggregator,
        encoding_provider: EncodingParameterProvider,
        ffmpeg_adapter: FFmpegAdapter,
        workspace: RunWorkspace,
        event_bus: EventBus,
    ):
        self.config = config
        self.limiter = limiter
        self.shutdown = shutdown
        self.aggregator = aggregator
        self.encoding_provider = encoding_provider
        self.ffmpeg_adapter = ffmpeg_adapter
        self.workspace = workspace
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def run(self, job: NormalizeJob) -> JobOutcome:
        if self.shutdown.is_shutting_down():
            self.logger.info(f"JOB_SKIP: {job.name} (queued, shutdown signaled)")
            return self._interrupted(job, "Shutdown signaled before admission")

        if not self.limiter.acquire():
            self.logger.info(f"JOB_SKIP: {job.name} (admission closed, shutdown signaled)")
            return self._interrupted(job, "Admission closed by shutdown")

        try:
            # Signal may have fired while this job was blocked in acquire()
            if self.shutdown.is_shutting_down():
                self.logger.info(f"JOB_SKIP: {job.name} (shutdown signaled after admission)")
                return self._interrupted(job, "Shutdown signaled after admission")

            job.status = JobStatus.ADMITTED
            self.logger.info(f"JOB_ADMITTED: {job.name} (in_use={self.limiter.in_use}/{self.limiter.ceiling})")
            return self._encode(job)
        finally:
            self.limiter.release()

    def _encode(self, job: NormalizeJob) -> JobOutcome:
        start_time = time.monotonic()

        try:
            encoding_args = self.encoding_provider.get_args(
                job, self.workspace.loudnorm_stats(job.job_id), shutdown=self.shutdown
            )
            # Shutdown may have fired during the loudness measurement
            if self.shutdown.is_shutting_down():
                self.logger.info(f"JOB_SKIP: {job.name} (shutdown signaled before spawn)")
                return self._interrupted(job, "Shutdown signaled before spawn")
            cmd = self.ffmpeg_adapter.build_command(job, encoding_args)
            stderr_path = self.workspace.stderr_log(job.job_id)
            process = self.ffmpeg_adapter.start(cmd, stderr_path)
        except (EncodingParameterError, OSError) as e:
            if self.shutdown.is_shutting_down():
                return self._interrupted(job, f"Shutdown signaled during setup: {e}")
            return self._failed(job, None, str(e), spawned=False)

        job.status = JobStatus.RUNNING
        self.logger.info(f"FFMPEG_START: {job.name} -> {job.output_path.name}")
        self.shutdown.track(process)
        self.event_bus.publish(JobStarted(job=job))
        self.aggregator.push(ProgressEvent(job_id=job.job_id, elapsed_seconds=0))

        parser = FFmpegProgressParser()
        reader = threading.Thread(
            target=self._read_progress,
            args=(job, process, parser),
            name=f"progress-reader-{job.job_id}",
            daemon=True,
        )
        reader.start()

        try:
            returncode = process.wait()
            reader.join()
        finally:
            self.shutdown.untrack(process)

        job.elapsed_seconds = parser.elapsed_seconds
        if not parser.ended:
            # Killed before ffmpeg wrote its final block
            self.aggregator.push(ProgressEvent(
                job_id=job.job_id, elapsed_seconds=parser.elapsed_seconds, phase=ProgressPhase.END
            ))

        elapsed = time.monotonic() - start_time
        job.exit_code = returncode
        if returncode == 0:
            job.status = JobStatus.COMPLETED
            self.logger.info(f"FFMPEG_END: {job.name} status=completed elapsed={elapsed:.2f}s")
            self.event_bus.publish(JobCompleted(job=job))
            return self._outcome(job, spawned=True)

        self._remove_partial_output(job)
        if self.shutdown.is_shutting_down():
            self.logger.info(f"FFMPEG_END: {job.name} status=interrupted code={returncode} elapsed={elapsed:.2f}s")
            return self._interrupted(job, "Interrupted by shutdown", spawned=True)

        details = self.ffmpeg_adapter.tail(stderr_path)
        message = f"ffmpeg exit code: {returncode}"
        if details:
            message = f"{message} ({details})"
        self.logger.info(f"FFMPEG_END: {job.name} status=failed code={returncode} elapsed={elapsed:.2f}s")
        return self._failed(job, returncode, message, spawned=True)

    def _read_progress(self, job: NormalizeJob, process, parser: FFmpegProgressParser):
        if not process.stdout:
            return
        for line in process.stdout:
            result = parser.feed(line)
            if result is None:
                continue
            elapsed_seconds, phase = result
            if self.config.general.debug:
                self.logger.debug(f"PROGRESS: {job.name} elapsed={elapsed_seconds}s phase={phase.value}")
            self.aggregator.push(ProgressEvent(job_id=job.job_id, elapsed_seconds=elapsed_seconds, phase=phase))

    def _remove_partial_output(self, job: NormalizeJob):
        try:
            if job.output_path.exists():
                job.output_path.unlink()
        except OSError as e:
            self.logger.warning(f"Failed to remove partial output {job.output_path}: {e}")

    def _outcome(self, job: NormalizeJob, spawned: bool) -> JobOutcome:
        return JobOutcome(
            job_id=job.job_id,
            status=job.status,
            exit_code=job.exit_code,
            error_message=job.error_message,
            spawned=spawned,
            elapsed_seconds=job.elapsed_seconds,
        )

    def _interrupted(self, job: NormalizeJob, reason: str, spawned: bool = False) -> JobOutcome:
        job.status = JobStatus.INTERRUPTED
        job.error_message = reason
        self.event_bus.publish(JobInterrupted(job=job, reason=reason))
        return self._outcome(job, spawned)

    def _failed(self, job: NormalizeJob, exit_code: Optional[int], message: str, spawned: bool) -> JobOutcome:
        job.status = JobStatus.FAILED
        job.exit_code = exit_code
        job.error_message = message
        self.logger.error(f"JOB_FAILED: {job.name} - {message}")
        self.event_bus.publish(JobFailed(job=job, error_message=message))
        return self._outcome(job, spawned)
