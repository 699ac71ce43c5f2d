"""
Domain models: slides, audio tracks, subtitle style and export job state.
"""
import time
import uuid
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Field, field_validator

from slidereel.config import settings


def _new_slide_id() -> str:
    return uuid.uuid4().hex[:12]


class AspectRatio(str, Enum):
    VIDEO_16_9 = "16:9"
    SQUARE_1_1 = "1:1"
    PORTRAIT_9_16 = "9:16"

    @property
    def dimensions(self) -> Tuple[int, int]:
        """Export (width, height) in pixels for this aspect ratio."""
        if self is AspectRatio.PORTRAIT_9_16:
            return 1080, 1920
        if self is AspectRatio.SQUARE_1_1:
            return 1080, 1080
        return 1920, 1080


class VoiceName(str, Enum):
    ALLOY = "alloy"
    ASH = "ash"
    CORAL = "coral"
    ECHO = "echo"
    FABLE = "fable"
    NOVA = "nova"
    ONYX = "onyx"
    SAGE = "sage"
    SHIMMER = "shimmer"


class ScriptLevel(str, Enum):
    EXPERT = "expert"
    UNIVERSITY = "university"
    ELEMENTARY = "elementary"
    SENIOR = "senior"


class AudioTrack(BaseModel):
    """Decoded mono narration audio."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    samples: np.ndarray
    sample_rate: int = Field(default=settings.AUDIO_SAMPLE_RATE, gt=0)

    @field_validator("samples", mode="before")
    @classmethod
    def _as_mono_float32(cls, value):
        samples = np.asarray(value, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples.mean(axis=1).astype(np.float32)
        return samples

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


class Slide(BaseModel):
    """
    One slide of the project. Instances are immutable; use `updated()` to
    obtain a copy with replaced fields.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: str = Field(default_factory=_new_slide_id)
    image_bytes: bytes = b""
    script: str = ""
    subtitle: str = ""
    audio: Optional[AudioTrack] = None
    is_generating_audio: bool = False

    def updated(self, **fields) -> "Slide":
        return self.model_copy(update=fields)

    @property
    def static_caption(self) -> str:
        """Caption shown while narration is not playing."""
        return self.subtitle or self.script or ""


class SubtitleStyle(BaseModel):
    """Subtitle appearance. `font_size` is defined against a 720 pixel reference."""
    model_config = ConfigDict(frozen=True)

    font_size: float = Field(default=32, gt=0)
    font_family: str = settings.DEFAULT_FONT_FAMILY
    color: str = "#ffffff"
    background_color: str = "#000000"
    background_opacity: float = Field(default=0.6, ge=0.0, le=1.0)
    vertical_position: float = Field(default=90, ge=0.0, le=100.0)

    @field_validator("color", "background_color")
    @classmethod
    def _valid_color(cls, value: str) -> str:
        ImageColor.getrgb(value)  # raises ValueError for unknown colors
        return value


class GenerationState(BaseModel):
    is_exporting: bool = False
    progress: float = 0.0
    status_message: str = ""


class ExportJob(BaseModel):
    """State owned by one export call. Never resumed once the call returns."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    width: int
    height: int
    style: SubtitleStyle
    include_subtitles: bool = True
    slides: Tuple[Slide, ...]
    state: GenerationState = Field(default_factory=GenerationState)


class VideoArtifact(BaseModel):
    data: bytes
    media_type: str = "video/mp4"
    suggested_filename: str = Field(
        default_factory=lambda: f"slidereel-video-{int(time.time() * 1000)}.mp4"
    )
