"""Pipeline orchestrator for a batch normalization run.

Coordinates the duration estimate, job fan-out, admission control,
progress aggregation and shutdown. Uses the EventBus to keep the dashboard
decoupled from the pipeline.

Key responsibilities:
- Enumerate jobs (one per input file) and probe their durations up front
- Allocate the run workspace and the admission limiter (setup failures abort the run)
- Start every job at once; the admission limiter, not a queue, bounds how many run
- Own the progress aggregator's lifetime (start, close, reconcile)
- Turn Ctrl+C / SIGTERM into a run-wide shutdown and wait for every job to return
- Produce the RunSummary the CLI maps to an exit code
"""

import concurrent.futures
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from plexnorm.config.models import AppConfig
from plexnorm.domain.errors import SetupError
from plexnorm.domain.events import RunStarted, InterruptRequested, ProcessingFinished
from plexnorm.domain.models import JobOutcome, JobStatus, NormalizeJob, RunSummary, VideoFile
from plexnorm.infrastructure.event_bus import EventBus
from plexnorm.infrastructure.ffmpeg import FFmpegAdapter
from plexnorm.infrastructure.ffprobe import FFprobeAdapter
from plexnorm.infrastructure.workspace import RunWorkspace
from plexnorm.pipeline.admission import AdmissionLimiter
from plexnorm.pipeline.aggregator import ProgressAggregator
from plexnorm.pipeline.encoding import EncodingParameterProvider
from plexnorm.pipeline.job_process import JobProcess
from plexnorm.pipeline.shutdown import ShutdownController


def output_path_for(source: Path, suffix: str) -> Path:
    """`movie.mkv` -> `movie<suffix>.mkv` next to the input."""
    return source.with_name(f"{source.stem}{suffix}.mkv")


class Orchestrator:
    """Batch normalization orchestrator.

    Args:
        config: AppConfig with general, encoder, audio and UI settings.
        event_bus: EventBus for publishing run and job lifecycle events.
        ffprobe_adapter: Duration and color probe.
        ffmpeg_adapter: Encoder command builder and process launcher.
        shutdown: Optional externally created ShutdownController (a fresh one otherwise).
        workspace: Optional RunWorkspace (created under general.temp_root otherwise).
        encoding_provider: Optional EncodingParameterProvider override.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        shutdown: Optional[ShutdownController] = None,
        workspace: Optional[RunWorkspace] = None,
        encoding_provider: Optional[EncodingParameterProvider] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.shutdown = shutdown or ShutdownController()
        temp_root = Path(config.general.temp_root) if config.general.temp_root else None
        self.workspace = workspace or RunWorkspace(temp_root=temp_root)
        self.encoding_provider = encoding_provider or EncodingParameterProvider(
            config, ffprobe_adapter, ffmpeg_adapter
        )
        self.logger = logging.getLogger(__name__)

        self.limiter: Optional[AdmissionLimiter] = None
        self.aggregator: Optional[ProgressAggregator] = None

    def build_jobs(self, files: Sequence[VideoFile]) -> List[NormalizeJob]:
        suffix = self.config.general.output_suffix
        return [
            NormalizeJob(job_id=index, source_file=vf, output_path=output_path_for(vf.path, suffix))
            for index, vf in enumerate(files)
        ]

    def estimate_durations(self, jobs: Sequence[NormalizeJob]) -> float:
        """Probes every job; unknown, non-numeric or negative durations count as 0."""
        total = 0.0
        for job in jobs:
            duration = self.ffprobe_adapter.get_duration(job.source_file.path)
            try:
                seconds = float(duration) if duration is not None else 0.0
            except (TypeError, ValueError):
                seconds = 0.0
            if seconds != seconds or seconds < 0:  # NaN or negative
                seconds = 0.0
            job.estimated_duration_seconds = seconds
            total += seconds
        return total

    def _setup(self, ceiling: int):
        try:
            self.limiter = AdmissionLimiter(ceiling)
            self.workspace.create()
        except (SetupError, ValueError) as e:
            self.logger.error(f"SETUP_FAILED: {e}")
            self.shutdown.signal(reason="setup failure")
            if isinstance(e, SetupError):
                raise
            raise SetupError(str(e)) from e
        self.shutdown.attach_limiter(self.limiter)

    def run_all(self, files: Sequence[VideoFile], ceiling: Optional[int] = None) -> RunSummary:
        ceiling = ceiling or self.config.general.threads
        jobs = self.build_jobs(files)
        for job in jobs:
            self.logger.info(f"JOB_QUEUED: {job.source_file.path}")

        total_estimated = self.estimate_durations(jobs)
        self.logger.info(
            f"Run started: jobs={len(jobs)}, ceiling={ceiling}, "
            f"estimated_duration={total_estimated:.0f}s, two_pass={self.config.general.two_pass}"
        )

        self._setup(ceiling)
        self.aggregator = ProgressAggregator(len(jobs), total_estimated, event_bus=self.event_bus)
        self.shutdown.on_signal(self.aggregator.close)
        job_process = JobProcess(
            config=self.config,
            limiter=self.limiter,
            shutdown=self.shutdown,
            aggregator=self.aggregator,
            encoding_provider=self.encoding_provider,
            ffmpeg_adapter=self.ffmpeg_adapter,
            workspace=self.workspace,
            event_bus=self.event_bus,
        )

        self.aggregator.start()
        self.event_bus.publish(RunStarted(jobs=jobs, total_estimated_seconds=total_estimated, ceiling=ceiling))

        outcomes: Dict[int, JobOutcome] = {}
        try:
            if jobs:
                outcomes = self._run_jobs(job_process, jobs)
        finally:
            self.aggregator.close()
            self.shutdown.run_cleanup()
            self.workspace.cleanup()

        ordered = [outcomes[job.job_id] for job in jobs]
        self.aggregator.reconcile(ordered)

        summary = RunSummary(
            outcomes=ordered,
            shutdown_signaled=self.shutdown.is_shutting_down(),
            total_estimated_seconds=total_estimated,
        )
        self.logger.info(
            f"Run finished: completed={summary.completed}, failed={summary.failed}, "
            f"interrupted={summary.interrupted}, exit_code={summary.exit_code}"
        )
        self.event_bus.publish(ProcessingFinished(outcomes=ordered))
        return summary

    def _run_jobs(self, job_process: JobProcess, jobs: Sequence[NormalizeJob]) -> Dict[int, JobOutcome]:
        outcomes: Dict[int, JobOutcome] = {}
        # One thread per job: every job queues on the admission limiter right away
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="job") as executor:
            in_flight = {executor.submit(job_process.run, job): job for job in jobs}
            while in_flight:
                try:
                    done, _ = concurrent.futures.wait(
                        set(in_flight.keys()),
                        timeout=1.0,
                        return_when=concurrent.futures.FIRST_COMPLETED
                    )
                    for future in done:
                        self._collect(future, in_flight[future], outcomes)
                        # Dropped only once recorded; an interrupt before this line collects it again
                        del in_flight[future]
                except KeyboardInterrupt:
                    self.interrupt()
        return outcomes

    def _collect(self, future, job: NormalizeJob, outcomes: Dict[int, JobOutcome]):
        try:
            outcomes[job.job_id] = future.result()
        except Exception as e:
            self.logger.error(f"Job thread failed for {job.name}: {e}")
            job.status = JobStatus.FAILED
            job.error_message = f"Exception: {e}"
            outcomes[job.job_id] = JobOutcome(
                job_id=job.job_id, status=JobStatus.FAILED, error_message=job.error_message
            )

    def interrupt(self):
        """Operator interrupt: stop admitting, terminate running encoders, keep waiting for job threads."""
        if self.shutdown.is_shutting_down():
            return
        self.logger.info("Interrupt requested (Ctrl+C) - terminating running encoders...")
        self.event_bus.publish(InterruptRequested())
        start = time.monotonic()
        self.shutdown.signal(reason="interrupt")
        self.logger.info(f"Shutdown propagated in {time.monotonic() - start:.2f}s")
