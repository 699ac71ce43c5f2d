"""
Interactive preview driver.

A cooperative asyncio loop: every tick reads the audio context clock, turns
it into playback progress and publishes the caption the exporter would burn
in at the same progress. Stopping simply ends the loop; the playback stream
is always released.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from slidereel.config import settings
from slidereel.errors import PlaybackUnavailableError
from slidereel.models import AspectRatio, Slide, SubtitleStyle
from slidereel.phase1_subtitle_timing.layout import ScaledFont, max_chars_for, scale_factor, scaled_font
from slidereel.phase1_subtitle_timing.text_chunker import chunk_text
from slidereel.phase1_subtitle_timing.timeline import chunk_at
from slidereel.phase3_audio_processing.audio_context import (
    AudioContext,
    PlaybackStream,
    acquire_audio_context,
    release_audio_context,
)
from slidereel.phase4_video_generation.compositor import render_caption_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewState:
    caption: str
    progress: float
    is_playing: bool
    controls_enabled: bool
    font: ScaledFont


class PreviewPlayer:
    """
    Plays one slide's narration and animates its subtitle.

    Args:
        slide: Slide being previewed.
        style: Subtitle style.
        aspect_ratio: Project aspect ratio; selects the per-line character bound.
        surface_width: Measured preview surface width (0 when not yet measured).
        surface_height: Measured preview surface height (0 when not yet measured).
        on_update: Receives a PreviewState on every tick and whenever playback starts or stops.
        context_factory: Used by the shared audio context on first acquisition.
    """

    def __init__(
        self,
        slide: Slide,
        style: SubtitleStyle,
        aspect_ratio: AspectRatio = AspectRatio.VIDEO_16_9,
        surface_width: int = 0,
        surface_height: int = 0,
        on_update: Optional[Callable[[PreviewState], None]] = None,
        context_factory: Callable[[], AudioContext] = AudioContext,
        tick_seconds: Optional[float] = None,
    ):
        self.slide = slide
        self.style = style
        self.aspect_ratio = aspect_ratio
        self.surface_width = surface_width
        self.surface_height = surface_height
        self.on_update = on_update
        self.context_factory = context_factory
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.PREVIEW_TICK_SECONDS

        self.controls_enabled = slide.audio is not None
        self.is_playing = False
        self.progress = 0.0
        self.caption = slide.static_caption
        self._generation = 0
        self._context: Optional[AudioContext] = None
        self._stream: Optional[PlaybackStream] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def font(self) -> ScaledFont:
        # Interactive display only: the cosmetic correction never reaches exported frames
        scale = scale_factor(self.surface_width, self.surface_height) * settings.PREVIEW_FONT_CORRECTION
        return scaled_font(self.style, scale)

    @property
    def state(self) -> PreviewState:
        return PreviewState(
            caption=self.caption,
            progress=self.progress,
            is_playing=self.is_playing,
            controls_enabled=self.controls_enabled,
            font=self.font,
        )

    def resize(self, surface_width: int, surface_height: int) -> None:
        self.surface_width = surface_width
        self.surface_height = surface_height
        self._publish()

    def _publish(self) -> None:
        if self.on_update is not None:
            self.on_update(self.state)

    def start(self) -> asyncio.Task:
        """Schedule `play()` on the running loop and return its task."""
        self._task = asyncio.get_running_loop().create_task(self.play())
        return self._task

    async def play(self) -> None:
        """Play the slide narration, updating the caption each tick until it ends or `stop()` is called."""
        track = self.slide.audio
        if track is None or not self.controls_enabled:
            return

        self.stop()
        generation = self._generation
        self._context = acquire_audio_context(self.context_factory)
        try:
            self._stream = self._context.play(track)
        except PlaybackUnavailableError as e:
            logger.warning(f"Preview playback unavailable, disabling controls: {e}")
            self.controls_enabled = False
            self._release()
            self._publish()
            return

        start_time = self._context.current_time
        duration = track.duration
        dims = self.aspect_ratio.dimensions
        chunks = chunk_text(self.slide.script, max_chars_for(*dims))
        self.is_playing = True
        logger.debug(f"Preview playing slide {self.slide.id}: {len(chunks)} chunks over {duration:.2f}s")

        try:
            while generation == self._generation:
                elapsed = self._context.current_time - start_time
                self.progress = min(max(elapsed / duration, 0.0), 1.0) if duration > 0 else 1.0
                caption = chunk_at(chunks, self.progress)
                if caption is not None:
                    self.caption = caption
                self._publish()
                if elapsed >= duration:
                    break
                await asyncio.sleep(self.tick_seconds)
        finally:
            # A newer play() or stop() already cleaned up after this run
            if generation == self._generation:
                self._finish()

    def stop(self) -> None:
        """Stop playback and reset the caption. Safe to call when nothing is playing."""
        self._generation += 1
        if self._stream is not None or self.is_playing:
            self._finish()

    def _finish(self) -> None:
        if self._context is not None and self._stream is not None:
            self._context.stop(self._stream)
        self._stream = None
        self._release()
        was_playing = self.is_playing
        self.is_playing = False
        self.caption = self.slide.static_caption
        if was_playing:
            self._publish()

    def _release(self) -> None:
        if self._context is not None:
            self._context = None
            release_audio_context()

    def render(self) -> np.ndarray:
        """Render the preview surface as currently shown (falls back to export size when unmeasured)."""
        width, height = self.surface_width, self.surface_height
        if width <= 0 or height <= 0:
            width, height = self.aspect_ratio.dimensions
        return render_caption_frame(
            self.slide, self.style, width, height, self.caption or None, preview=True
        )
