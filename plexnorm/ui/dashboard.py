import threading
import time
import unicodedata
from datetime import datetime
from typing import Optional
from rich.live import Live
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.progress_bar import ProgressBar
from rich.text import Text
from plexnorm.ui.state import UIState
from plexnorm.domain.models import JobStatus

STATUS_ICONS = {
    JobStatus.COMPLETED: ("✅", "green"),
    JobStatus.FAILED: ("❌", "red"),
    JobStatus.INTERRUPTED: ("⏹️", "yellow"),
}

class Dashboard:
    """Live progress display: one global bar fed by the aggregator's snapshots."""

    def __init__(self, state: UIState, max_active_jobs: int = 8, refresh_per_second: int = 4,
                 console: Optional[Console] = None):
        self.state = state
        self.max_active_jobs = max_active_jobs
        self.refresh_per_second = refresh_per_second
        self.console = console or Console()
        self._live: Optional[Live] = None
        self._ui_lock = threading.Lock()
        self._stop_refresh = threading.Event()
        self._refresh_thread: Optional[threading.Thread] = None

    def format_time(self, seconds: float) -> str:
        seconds = max(0, int(seconds))
        if seconds < 60:
            return f"{seconds}s"
        if seconds < 3600:
            return f"{seconds // 60:02d}m {seconds % 60:02d}s"
        return f"{seconds // 3600}h {(seconds % 3600) // 60:02d}m"

    def _sanitize_filename(self, filename: str, max_len: int = 40) -> str:
        # Drop control characters that would break the live layout
        cleaned = "".join(ch for ch in filename if unicodedata.category(ch)[0] != "C")
        if len(cleaned) > max_len:
            return cleaned[: max_len - 3] + "..."
        return cleaned

    def _elapsed_wall(self) -> float:
        if not self.state.processing_start_time:
            return 0.0
        return (datetime.now() - self.state.processing_start_time).total_seconds()

    def _eta(self, wall: float) -> Optional[float]:
        snap = self.state.snapshot
        if snap.total_elapsed <= 0 or snap.total_estimated_seconds <= 0 or wall <= 0:
            return None
        rate = snap.total_elapsed / wall  # media seconds per wall second
        remaining = max(0.0, snap.total_estimated_seconds - snap.total_elapsed)
        return remaining / rate

    def _status_label(self) -> str:
        if self.state.interrupt_requested:
            return "INTERRUPTED" if self.state.finished else "INTERRUPTING"
        return "FINISHED" if self.state.finished else "RUNNING"

    def render_status_line(self) -> str:
        """Single human-readable line describing the global progress."""
        with self.state._lock:
            snap = self.state.snapshot
            wall = self._elapsed_wall()
            eta = self._eta(wall)
            parts = [
                self._status_label(),
                f"Done: {snap.completed_count}/{snap.total_jobs}",
                f"Running: {snap.in_progress_count}",
                f"Queued: {snap.queued_count}",
                f"{self.format_time(snap.total_elapsed)}/{self.format_time(snap.total_estimated_seconds)}",
                f"{snap.percent:.1f}%",
                f"Elapsed: {self.format_time(wall)}",
            ]
            if eta is not None and not self.state.finished:
                parts.append(f"ETA: {self.format_time(eta)}")
            return " • ".join(parts)

    def _generate_progress(self) -> Panel:
        with self.state._lock:
            snap = self.state.snapshot
            # Scaled to 0-10000 to keep the bar smooth for long runs
            if snap.total_estimated_seconds > 0:
                bar = ProgressBar(total=10000, completed=int(snap.percent * 100), width=None)
            else:
                bar = ProgressBar(total=max(1, snap.total_jobs), completed=snap.completed_count, width=None)
            rows = [Text(self.render_status_line()), bar]
            header = f"PROGRESS • Threads: {self.state.ceiling}" if self.state.ceiling else "PROGRESS"
        return Panel(Group(*rows), title=header, border_style="cyan")

    def _generate_active_jobs_panel(self) -> Panel:
        with self.state._lock:
            table = Table.grid(padding=(0, 1))
            shown = self.state.active_jobs[: self.max_active_jobs]
            now = datetime.now()
            for job in shown:
                started = self.state.job_start_times.get(job.job_id)
                running_for = (now - started).total_seconds() if started else 0.0
                table.add_row("⚙️", self._sanitize_filename(job.name), self.format_time(running_for))
            hidden = len(self.state.active_jobs) - len(shown)
            if hidden > 0:
                table.add_row("", f"... +{hidden} more", "")
            if not shown:
                table.add_row("", Text("idle", style="dim"), "")
        return Panel(table, title="ACTIVE", border_style="green")

    def _generate_recent_panel(self) -> Panel:
        with self.state._lock:
            table = Table.grid(padding=(0, 1))
            for job in self.state.recent_jobs:
                icon, style = STATUS_ICONS.get(job.status, ("•", "white"))
                detail = job.error_message or ""
                table.add_row(icon, Text(self._sanitize_filename(job.name), style=style), Text(detail, style="dim"))
            if not self.state.recent_jobs:
                table.add_row("", Text("nothing finished yet", style="dim"), "")
        return Panel(table, title="RECENT", border_style="magenta")

    def create_display(self) -> RenderableType:
        return Group(
            self._generate_progress(),
            self._generate_active_jobs_panel(),
            self._generate_recent_panel(),
        )

    def _refresh_loop(self):
        interval = 1.0 / self.refresh_per_second
        while not self._stop_refresh.is_set():
            if self._live:
                display = self.create_display()
                with self._ui_lock:
                    self._live.update(display)
            time.sleep(interval)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=self.refresh_per_second)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, name="dashboard", daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final update to show FINISHED/INTERRUPTED state
            with self._ui_lock:
                self._live.update(self.create_display())
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
