import subprocess
import re
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from plexnorm.config.models import AppConfig
from plexnorm.domain.errors import EncodingParameterError
from plexnorm.domain.models import NormalizeJob, ProgressPhase

# Keys loudnorm prints in its JSON summary, mapped to the filter option they feed
LOUDNORM_MEASURED_KEYS = {
    "input_i": "measured_I",
    "input_tp": "measured_tp",
    "input_lra": "measured_lra",
    "input_thresh": "measured_thresh",
    "target_offset": "offset",
}

_JSON_BLOCK = re.compile(r"\{[^{}]*\}", re.DOTALL)


class FFmpegProgressParser:
    """Translates `-progress` key=value lines of one ffmpeg process.

    ffmpeg writes blocks of keys terminated by a `progress=continue` or
    `progress=end` line; only that terminator yields an (elapsed, phase) pair.
    Elapsed seconds never go backwards for a job.
    """

    def __init__(self):
        self.elapsed_seconds = 0
        self.ended = False

    def feed(self, line: str):
        """Returns (elapsed_seconds, phase) on a block terminator, else None."""
        key, sep, value = line.strip().partition("=")
        if not sep:
            return None
        key = key.strip()
        value = value.strip()

        if key == "out_time_us":
            try:
                micros = int(value)
            except ValueError:
                return None  # "N/A" before the first frame is muxed
            if micros >= 0:
                self.elapsed_seconds = max(self.elapsed_seconds, micros // 1_000_000)
            return None

        if key == "progress":
            if value == "end":
                self.ended = True
                return self.elapsed_seconds, ProgressPhase.END
            if value == "continue":
                return self.elapsed_seconds, ProgressPhase.RUNNING
        return None


class FFmpegAdapter:
    """Wrapper around ffmpeg for loudness measurement and HEVC/AC3 re-encoding."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def build_command(self, job: NormalizeJob, encoding_args: Sequence[str]) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        enc = self.config.encoder
        audio = self.config.audio
        cmd = [
            "ffmpeg",
            "-nostdin",
            "-loglevel", "error",
            "-hide_banner",
            "-y",  # Overwrite output files
        ]
        if enc.hwaccel:
            cmd.extend(["-hwaccel", enc.hwaccel])
        if enc.decoder:
            cmd.extend(["-c:v", enc.decoder])
        cmd.extend(["-i", str(job.source_file.path)])

        # Video, original audio, audio again (to be normalized), optional subtitles
        cmd.extend([
            "-map", "0:v:0",
            "-map", "0:a:0",
            "-map", "0:a:0",
            "-map", "0:s?",
        ])

        cmd.extend(["-c:v", enc.codec, "-preset", enc.preset])
        if enc.rate_control:
            cmd.extend(["-rc:v", enc.rate_control])
        cmd.extend([
            "-b:v", enc.bitrate,
            "-maxrate", enc.maxrate,
            "-bufsize", enc.bufsize,
        ])

        # Color options and audio filter from the encoding parameter provider
        cmd.extend(encoding_args)

        cmd.extend([
            "-c:a:0", "copy",
            "-c:a:1", audio.codec,
            "-b:a:1", audio.bitrate,
            "-c:s", "copy",
            "-metadata:s:a:1", f"title={audio.track_title}",
            "-progress", "pipe:1",
            "-nostats",
            str(job.output_path),
        ])
        return cmd

    def start(self, cmd: List[str], stderr_path: Path) -> subprocess.Popen:
        """Spawns the encoder; stdout carries the progress channel, stderr goes to stderr_path."""
        if self.config.general.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")
        with open(stderr_path, "w") as stderr_file:
            return subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
                universal_newlines=True,
                bufsize=1
            )

    def measure_loudness(self, input_path: Path, stats_path: Path, shutdown=None) -> Dict[str, str]:
        """First pass of two-pass normalization: runs loudnorm in analysis mode.

        ffmpeg's stderr is kept in stats_path and the JSON summary is parsed from it.
        With a ShutdownController the measuring process is tracked like an encode,
        so shutdown terminates it.
        """
        cmd = [
            "ffmpeg", "-nostdin", "-hide_banner", "-y",
            "-i", str(input_path),
            "-map", "0:a:0",
            "-af", "loudnorm=print_format=json",
            "-f", "null", "-",
        ]
        if self.config.general.debug:
            self.logger.debug(f"LOUDNORM_MEASURE_CMD: {' '.join(cmd)}")

        with open(stats_path, "w") as stats_file:
            process = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=stats_file)
            if shutdown is not None:
                shutdown.track(process)
            try:
                returncode = process.wait()
            finally:
                if shutdown is not None:
                    shutdown.untrack(process)

        if shutdown is not None and shutdown.is_shutting_down():
            raise EncodingParameterError(f"Loudness measurement of {input_path.name} stopped by shutdown")
        if returncode != 0:
            raise EncodingParameterError(
                f"Loudness measurement failed for {input_path.name} (ffmpeg exit code: {returncode})"
            )
        return self.parse_loudnorm_stats(stats_path.read_text(errors="replace"), input_path.name)

    @staticmethod
    def parse_loudnorm_stats(text: str, label: str = "input") -> Dict[str, str]:
        """Extracts the measured values from loudnorm's JSON summary (last JSON block wins)."""
        blocks = _JSON_BLOCK.findall(text)
        for block in reversed(blocks):
            try:
                data = json.loads(block)
            except ValueError:
                continue
            if all(key in data for key in LOUDNORM_MEASURED_KEYS):
                return {key: str(data[key]) for key in LOUDNORM_MEASURED_KEYS}
        raise EncodingParameterError(f"No loudnorm measurement found for {label}")

    @staticmethod
    def tail(path: Path, lines: int = 5) -> Optional[str]:
        """Last lines of an ffmpeg stderr log, for failure messages."""
        try:
            content = path.read_text(errors="replace").strip()
        except OSError:
            return None
        if not content:
            return None
        return " | ".join(content.splitlines()[-lines:])
