import shutil
import signal
import typer
from pathlib import Path
from typing import List, Optional

from plexnorm.config.loader import load_config
from plexnorm.domain.errors import SetupError
from plexnorm.domain.models import JobStatus, SHUTDOWN_EXIT_CODE
from plexnorm.infrastructure.logging import setup_logging
from plexnorm.infrastructure.event_bus import EventBus
from plexnorm.infrastructure.file_scanner import FileScanner
from plexnorm.infrastructure.ffprobe import FFprobeAdapter
from plexnorm.infrastructure.ffmpeg import FFmpegAdapter
from plexnorm.pipeline.orchestrator import Orchestrator
from plexnorm.ui.state import UIState
from plexnorm.ui.manager import UIManager
from plexnorm.ui.dashboard import Dashboard

app = typer.Typer(help="plexnorm - Re-encode MKVs for Plex with HDR preservation and normalized AC3 audio")

REQUIRED_TOOLS = ("ffmpeg", "ffprobe")


def _fail(message: str, code: int = 1):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


@app.command()
def normalize(
    inputs: List[Path] = typer.Argument(..., help="MKV files and/or directories (scanned recursively)"),
    two_pass: bool = typer.Option(False, "--two-pass", help="Use two-pass audio normalization (default: single-pass)"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", min=1, help="Override maximum concurrent encodes"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Normalize a batch of MKV files with a bounded number of concurrent ffmpeg encodes."""
    missing_tools = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
    if missing_tools:
        _fail("ffmpeg/ffprobe not found!")

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        _fail(str(exc))

    # Apply CLI overrides
    if two_pass: config.general.two_pass = True
    if threads: config.general.threads = threads
    if log_path is not None: config.general.log_path = str(log_path)
    if debug: config.general.debug = True

    scanner = FileScanner(extensions=config.general.extensions, output_suffix=config.general.output_suffix)
    try:
        files = scanner.expand(inputs)
    except FileNotFoundError as exc:
        _fail(str(exc))
    if not files:
        _fail("No MKV files found!")

    first = inputs[0]
    log_dir = first if first.is_dir() else first.parent
    log_path_value = Path(config.general.log_path) if config.general.log_path else None
    logger = setup_logging(log_dir, debug=config.general.debug, log_path=log_path_value)
    logger.info(f"plexnorm started: files={len(files)}, inputs={[str(p) for p in inputs]}")
    logger.info(
        f"Config: threads={config.general.threads}, two_pass={config.general.two_pass}, "
        f"encoder={config.encoder.codec}/{config.encoder.preset}, audio={config.audio.codec}@{config.audio.bitrate}"
    )

    typer.echo(f"Will process all these files: {' '.join(str(vf.path) for vf in files)}")
    for vf in files:
        typer.echo(f"➕ Queued: {vf.path}")

    bus = EventBus()
    ui_state = UIState(recent_jobs_max_items=config.ui.recent_jobs_max_items)
    UIManager(bus, ui_state)
    dashboard = Dashboard(
        ui_state,
        max_active_jobs=config.ui.active_jobs_max_display,
        refresh_per_second=config.ui.refresh_per_second,
    )

    orchestrator = Orchestrator(
        config=config,
        event_bus=bus,
        ffprobe_adapter=FFprobeAdapter(),
        ffmpeg_adapter=FFmpegAdapter(config),
    )

    # SIGTERM takes the same path as Ctrl+C
    previous_sigterm = signal.signal(signal.SIGTERM, signal.default_int_handler)
    try:
        with dashboard:
            summary = orchestrator.run_all(files, ceiling=config.general.threads)
    except SetupError as exc:
        logger.error(f"Setup failed: {exc}")
        _fail(f"Setup failed: {exc}")
    except KeyboardInterrupt:
        logger.info("Run stopped by user before completion")
        typer.secho("\n⚠️ Stopped by user (Ctrl+C)", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=SHUTDOWN_EXIT_CODE)
    except Exception as exc:
        logger.exception("Fatal error")
        _fail(f"Fatal Error: {exc}")
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)

    for vf, outcome in zip(files, summary.outcomes):
        if outcome.status == JobStatus.COMPLETED:
            typer.secho(f"✅ Completed: {vf.path}", fg=typer.colors.GREEN)
        elif outcome.status == JobStatus.INTERRUPTED:
            typer.secho(f"⏹️ Interrupted: {vf.path}", fg=typer.colors.YELLOW, err=True)
        else:
            reason = f"ffmpeg exit code: {outcome.exit_code}" if outcome.exit_code is not None else outcome.error_message
            typer.secho(f"❌ Failed: {vf.path} ({reason})", fg=typer.colors.RED, err=True)

    if summary.shutdown_signaled:
        typer.secho(
            f"⚠️ Interrupted: {summary.completed} completed, {summary.interrupted} interrupted, {summary.failed} failed",
            fg=typer.colors.YELLOW,
            err=True,
        )
    elif summary.failed:
        typer.secho(f"⚠️ {summary.failed} of {len(summary.outcomes)} conversions failed", fg=typer.colors.RED, err=True)
    else:
        typer.echo("🎉 All conversions completed!")

    raise typer.Exit(code=summary.exit_code)


if __name__ == "__main__":
    app()
