import subprocess
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

# ffprobe placeholders for "not set"
UNKNOWN_VALUES = {"", "unknown", "N/A"}

class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        # Matroska DURATION tags look like 01:02:03.004000000
        if ":" in text:
            parts = text.split(":")
            if len(parts) in (2, 3):
                try:
                    parts_f = [float(p) for p in parts]
                except ValueError:
                    return 0.0
                if len(parts_f) == 2:
                    minutes, seconds = parts_f
                    return minutes * 60 + seconds
                hours, minutes, seconds = parts_f
                return hours * 3600 + minutes * 60 + seconds
        return 0.0

    @classmethod
    def _parse_time_base_duration(cls, duration_ts: Any, time_base: Any) -> float:
        if duration_ts is None or time_base is None:
            return 0.0
        time_base_text = str(time_base)
        if "/" not in time_base_text:
            return 0.0
        num_text, den_text = time_base_text.split("/", 1)
        num = cls._to_float(num_text)
        den = cls._to_float(den_text)
        if den == 0:
            return 0.0
        ticks = cls._to_float(duration_ts)
        if ticks <= 0:
            return 0.0
        return ticks * (num / den)

    @staticmethod
    def _clean(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return None if text in UNKNOWN_VALUES else text

    def get_stream_info(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr}")

        data = json.loads(result.stdout)

        video_stream = next((s for s in data.get("streams", []) if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ValueError(f"No video stream found in {file_path}")

        # Duration fallback order: format.duration, format tags, stream.duration, stream tags, duration_ts/time_base
        fmt = data.get("format", {})
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = self._to_float(video_stream.get("duration"))
        if duration <= 0:
            tags = video_stream.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = self._parse_time_base_duration(video_stream.get("duration_ts"), video_stream.get("time_base"))

        return {
            "codec": video_stream.get("codec_name", "unknown"),
            "duration": max(0.0, duration),
            "color_transfer": self._clean(video_stream.get("color_transfer")),
            "pix_fmt": self._clean(video_stream.get("pix_fmt")),
            "color_primaries": self._clean(video_stream.get("color_primaries")),
            "color_space": self._clean(video_stream.get("color_space")),
        }

    def get_duration(self, file_path: Path) -> Optional[float]:
        """Duration probe: seconds, or None when ffprobe cannot tell."""
        try:
            info = self.get_stream_info(file_path)
        except (RuntimeError, ValueError, OSError) as e:
            self.logger.warning(f"DURATION_UNKNOWN: {file_path.name} ({e})")
            return None
        duration = info["duration"]
        return duration if duration > 0 else None

    def get_color_info(self, file_path: Path) -> Dict[str, Optional[str]]:
        """Color metadata of the first video stream (None for unset values)."""
        info = self.get_stream_info(file_path)
        return {
            "color_transfer": info["color_transfer"],
            "pix_fmt": info["pix_fmt"],
            "color_primaries": info["color_primaries"],
            "color_space": info["color_space"],
        }
