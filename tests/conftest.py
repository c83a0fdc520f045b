import threading
import pytest
import yaml
from pathlib import Path
from unittest.mock import MagicMock
from plexnorm.config.models import AppConfig
from plexnorm.infrastructure.event_bus import EventBus
from plexnorm.infrastructure.ffmpeg import FFmpegAdapter
from plexnorm.infrastructure.workspace import RunWorkspace

# ============================================================================
# Fake encoder processes
# ============================================================================

class FakeProcess:
    """Stands in for subprocess.Popen of an ffmpeg encode.

    stdout yields the given progress lines, then blocks until the process
    finishes (finish()) or is terminated (terminate(), returncode -15).
    """

    def __init__(self, lines=(), returncode=0, auto_finish=True):
        self.lines = list(lines)
        self.final_returncode = returncode
        self.returncode = None
        self.terminated = False
        self.terminate_calls = 0
        self._done = threading.Event()
        self._lock = threading.Lock()
        self.stdout = self._stream()
        if auto_finish:
            self.finish()

    def _stream(self):
        for line in self.lines:
            if self.terminated:
                return
            yield line
        self._done.wait()

    def finish(self, returncode=None):
        with self._lock:
            if self.returncode is None:
                self.returncode = self.final_returncode if returncode is None else returncode
        self._done.set()

    def terminate(self):
        self.terminate_calls += 1
        self.terminated = True
        with self._lock:
            if self.returncode is None:
                self.returncode = -15
        self._done.set()

    def poll(self):
        return self.returncode if self._done.is_set() else None

    def wait(self, timeout=None):
        self._done.wait(timeout)
        return self.returncode


def progress_lines(*seconds, end=True):
    """ffmpeg -progress blocks for the given out_time values (seconds)."""
    lines = []
    for index, value in enumerate(seconds):
        last = index == len(seconds) - 1
        lines.append(f"frame={index * 24}\n")
        lines.append(f"out_time_us={int(value * 1_000_000)}\n")
        lines.append("progress=end\n" if (last and end) else "progress=continue\n")
    return lines


class FakeFFmpegAdapter(FFmpegAdapter):
    """FFmpegAdapter whose processes are FakeProcess objects.

    Args:
        returncodes: input file name -> exit code (default 0).
        run_time: seconds before a process exits on its own; None keeps it
            running until terminated.
    """

    def __init__(self, config, returncodes=None, run_time=0.05, spawn_error=None):
        super().__init__(config)
        self.returncodes = returncodes or {}
        self.run_time = run_time
        self.spawn_error = spawn_error
        self.started = []
        self.processes = []
        self.running = 0
        self.max_running = 0
        self.loudness_calls = []
        self._lock = threading.Lock()

    def start(self, cmd, stderr_path):
        if self.spawn_error is not None:
            raise self.spawn_error
        input_path = Path(cmd[cmd.index("-i") + 1])
        output_path = Path(cmd[-1])
        code = self.returncodes.get(input_path.name, 0)
        stderr_path.write_text("" if code == 0 else "Error while decoding stream #0:0\n")
        output_path.write_bytes(b"partial")
        lines = progress_lines(10, 20, end=(code == 0))
        process = FakeProcess(lines, returncode=code, auto_finish=False)
        with self._lock:
            self.started.append(input_path.name)
            self.processes.append(process)
            self.running += 1
            self.max_running = max(self.max_running, self.running)

        def _finish():
            with self._lock:
                self.running -= 1
            process.finish()

        if self.run_time is not None:
            timer = threading.Timer(self.run_time, _finish)
            timer.daemon = True
            timer.start()
        else:
            original_terminate = process.terminate

            def _terminate():
                with self._lock:
                    self.running -= 1
                original_terminate()

            process.terminate = _terminate
        return process

    def measure_loudness(self, input_path, stats_path, shutdown=None):
        self.loudness_calls.append(input_path.name)
        return {
            "input_i": "-27.61",
            "input_tp": "-4.47",
            "input_lra": "18.06",
            "input_thresh": "-39.20",
            "target_offset": "0.58",
        }

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "threads": 2,
            "two_pass": False,
            "extensions": [".mkv"],
            "output_suffix": "_normalized",
            "temp_root": str(tmp_path),
            "debug": False,
        }
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "plexnorm.yaml"

    content = {
        'general': {
            'threads': 3,
            'two_pass': True,
            'extensions': ['mkv', 'MKV'],
            'output_suffix': '_plex',
            'debug': False,
        },
        'encoder': {
            'preset': 'p7',
            'bitrate': '12M',
        },
        'audio': {
            'bitrate': '448k',
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus / Adapter Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def fake_ffmpeg(sample_config):
    return FakeFFmpegAdapter(sample_config)

@pytest.fixture
def fake_ffprobe():
    probe = MagicMock()
    probe.get_duration.return_value = 60.0
    probe.get_color_info.return_value = {
        "color_transfer": None,
        "pix_fmt": "yuv420p",
        "color_primaries": None,
        "color_space": None,
    }
    return probe

@pytest.fixture
def workspace(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path)
    ws.create()
    yield ws
    ws.cleanup()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def test_input_dir(tmp_path):
    """Creates a test input directory."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    return input_dir

@pytest.fixture
def dummy_video_files(test_input_dir):
    """Creates dummy MKV files in test input directory."""
    files = []

    for i in range(3):
        f = test_input_dir / f"video{i}.mkv"
        f.write_bytes(b"dummy video content " * 100)
        files.append(f)

    subdir = test_input_dir / "season 1"
    subdir.mkdir()
    f = subdir / "episode.mkv"
    f.write_bytes(b"dummy video content " * 100)
    files.append(f)

    return files


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
