import logging
from pathlib import Path
from typing import Dict, List, Optional
from plexnorm.config.models import AppConfig
from plexnorm.domain.errors import EncodingParameterError
from plexnorm.domain.models import NormalizeJob
from plexnorm.infrastructure.ffmpeg import FFmpegAdapter, LOUDNORM_MEASURED_KEYS
from plexnorm.infrastructure.ffprobe import FFprobeAdapter

HDR_TRANSFERS = ("smpte2084", "arib-std-b67")  # HDR10/PQ, HLG


def is_ten_bit(pix_fmt: Optional[str]) -> bool:
    if not pix_fmt:
        return False
    return pix_fmt.endswith("10le") or pix_fmt.endswith("10be") or pix_fmt == "p010le"


def color_args(color_info: Dict[str, Optional[str]]) -> List[str]:
    """Color options that keep HDR / 10-bit sources intact through NVENC.

    8-bit SDR sources get no options at all.
    """
    transfer = color_info.get("color_transfer")
    pix_fmt = color_info.get("pix_fmt")

    if transfer in HDR_TRANSFERS:
        return [
            "-color_primaries", "bt2020",
            "-color_trc", transfer,
            "-colorspace", "bt2020nc",
            "-pix_fmt", "p010le",
        ]

    if is_ten_bit(pix_fmt):
        args = ["-pix_fmt", pix_fmt]
        if color_info.get("color_primaries"):
            args.extend(["-color_primaries", color_info["color_primaries"]])
        if transfer:
            args.extend(["-color_trc", transfer])
        if color_info.get("color_space"):
            args.extend(["-colorspace", color_info["color_space"]])
        return args

    return []


class EncodingParameterProvider:
    """Builds the per-input encoder options: color metadata and the loudnorm filter graph."""

    def __init__(self, config: AppConfig, ffprobe_adapter: FFprobeAdapter, ffmpeg_adapter: FFmpegAdapter):
        self.config = config
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.logger = logging.getLogger(__name__)

    def loudnorm_filter(self, measured: Optional[Dict[str, str]] = None) -> str:
        audio = self.config.audio
        parts = [f"loudnorm=I={audio.loudness_i:g}", f"LRA={audio.loudness_lra:g}", f"TP={audio.loudness_tp:.1f}"]
        if measured:
            for key, option in LOUDNORM_MEASURED_KEYS.items():
                parts.append(f"{option}={measured[key]}")
            parts.append("linear=true")
        return ":".join(parts)

    def audio_args(self, job: NormalizeJob, stats_path: Optional[Path] = None, shutdown=None) -> List[str]:
        measured = None
        if self.config.general.two_pass:
            if stats_path is None:
                raise EncodingParameterError("Two-pass normalization needs a statistics file")
            measured = self.ffmpeg_adapter.measure_loudness(job.source_file.path, stats_path, shutdown=shutdown)
            self.logger.info(
                f"LOUDNORM_MEASURED: {job.name} I={measured['input_i']} TP={measured['input_tp']} "
                f"LRA={measured['input_lra']}"
            )
        return ["-filter:a:1", self.loudnorm_filter(measured)]

    def get_args(self, job: NormalizeJob, stats_path: Optional[Path] = None, shutdown=None) -> List[str]:
        """Ordered encoder options for one job (color first, then the audio filter).

        `shutdown` is handed to the loudness measurement so it can be terminated.
        """
        try:
            color_info = self.ffprobe_adapter.get_color_info(job.source_file.path)
        except (RuntimeError, ValueError, OSError) as e:
            # Color probing is best effort; encode as SDR rather than fail
            self.logger.warning(f"COLOR_PROBE_FAILED: {job.name} ({e})")
            color_info = {}
        args = color_args(color_info)
        if args and self.config.general.debug:
            self.logger.debug(f"COLOR_ARGS: {job.name} {' '.join(args)}")
        return args + self.audio_args(job, stats_path, shutdown=shutdown)
