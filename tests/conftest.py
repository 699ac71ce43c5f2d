"""
Shared fixtures: slide images, narration tracks and a recording encoder.
"""

import io
from typing import List

import numpy as np
import pytest
from PIL import Image

from slidereel.models import AudioTrack, Slide, VideoArtifact
from slidereel.phase3_audio_processing import audio_context

TEST_SAMPLE_RATE = 8000


def make_png(width: int = 160, height: int = 90, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_track(seconds: float, sample_rate: int = TEST_SAMPLE_RATE) -> AudioTrack:
    t = np.arange(int(round(seconds * sample_rate))) / sample_rate
    return AudioTrack(samples=0.2 * np.sin(2 * np.pi * 440 * t), sample_rate=sample_rate)


class RecordingEncoder:
    """Encoder test double that keeps counts instead of encoding."""

    def __init__(self, width: int, height: int, fps: int = 30, sample_rate: int = TEST_SAMPLE_RATE):
        self.width = width
        self.height = height
        self.fps = fps
        self.sample_rate = sample_rate
        self.opened = False
        self.finalized = False
        self.aborted = False
        self.frame_shapes: List[tuple] = []
        self.frame_ids: List[int] = []
        self.audio_chunks: List[np.ndarray] = []
        self.last_frame = None
        self.fail_on_finalize = None

    @property
    def frames_written(self) -> int:
        return len(self.frame_shapes)

    @property
    def samples_written(self) -> int:
        return sum(len(c) for c in self.audio_chunks)

    def open(self) -> None:
        self.opened = True

    def write_frame(self, frame: np.ndarray) -> None:
        self.frame_shapes.append(frame.shape)
        self.frame_ids.append(id(frame))
        self.last_frame = frame

    def write_audio(self, samples: np.ndarray) -> None:
        self.audio_chunks.append(np.asarray(samples))

    def finalize(self) -> VideoArtifact:
        if self.fail_on_finalize is not None:
            raise self.fail_on_finalize
        self.finalized = True
        return VideoArtifact(data=b"fake-mp4")

    def abort(self) -> None:
        self.aborted = True


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def narrated_slide(png_bytes) -> Slide:
    return Slide(
        image_bytes=png_bytes,
        script="The quick brown fox jumps over the lazy dog",
        subtitle="Foxes and dogs",
        audio=make_track(2.0),
    )


@pytest.fixture
def recording_encoders():
    """Factory for RecordingEncoder; every encoder it builds is kept in the returned list."""
    created: List[RecordingEncoder] = []

    def factory(width: int, height: int) -> RecordingEncoder:
        encoder = RecordingEncoder(width, height)
        created.append(encoder)
        return encoder

    factory.created = created
    return factory


@pytest.fixture(autouse=True)
def reset_audio_context():
    yield
    if audio_context._context is not None:
        audio_context._context.close()
    audio_context._context = None
    audio_context._ref_count = 0
