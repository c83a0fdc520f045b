from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

class GeneralConfig(BaseModel):
    threads: int = Field(default=4, gt=0)  # NVIDIA consumer GPUs cap concurrent NVENC sessions
    two_pass: bool = False
    extensions: List[str] = Field(default_factory=lambda: [".mkv"])
    output_suffix: str = "_normalized"
    temp_root: Optional[str] = None  # Falls back to $TMPDIR, then /tmp
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator('extensions')
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [(ext if ext.startswith(".") else f".{ext}").lower() for ext in v]

    @field_validator('output_suffix')
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if not v:
            raise ValueError("output_suffix must not be empty (output would overwrite input)")
        return v

class EncoderConfig(BaseModel):
    hwaccel: Optional[str] = "cuvid"
    decoder: Optional[str] = "hevc_cuvid"
    codec: str = "hevc_nvenc"
    preset: str = "p6"
    rate_control: Optional[str] = "vbr_hq"
    bitrate: str = "15M"
    maxrate: str = "25M"
    bufsize: str = "30M"

class AudioConfig(BaseModel):
    codec: str = "ac3"
    bitrate: str = "640k"
    loudness_i: float = Field(default=-23.0, le=0.0)
    loudness_lra: float = Field(default=7.0, gt=0.0)
    loudness_tp: float = Field(default=-2.0, le=0.0)
    track_title: str = "Normalized Audio"

class UiConfig(BaseModel):
    """Dashboard configuration."""
    recent_jobs_max_items: int = Field(default=5, ge=1, le=20)
    active_jobs_max_display: int = Field(default=8, ge=1, le=16)
    refresh_per_second: int = Field(default=4, ge=1, le=30)

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    ui: UiConfig = Field(default_factory=UiConfig)
