"""
Slide-by-slide export of a deck into one narrated, subtitled video.
"""
import logging
import math
import threading
from typing import Callable, Iterable, Optional

import numpy as np
from tqdm import tqdm

from slidereel.config import settings
from slidereel.errors import ExportCancelledError, ExportError, ExportInProgressError, RenderError
from slidereel.models import AspectRatio, AudioTrack, ExportJob, Slide, SubtitleStyle, VideoArtifact
from slidereel.phase1_subtitle_timing.layout import max_chars_for
from slidereel.phase1_subtitle_timing.text_chunker import chunk_text
from slidereel.phase1_subtitle_timing.timeline import select_chunk
from slidereel.phase4_video_generation.compositor import (
    placeholder_background,
    prepare_background,
    render_caption_frame,
)
from slidereel.phase4_video_generation.encoder import Encoder, FFmpegEncoder

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
EncoderFactory = Callable[[int, int], Encoder]

# Reported percent stays below this until the encoder has been finalized
FINALIZING_PERCENT = 99.0

_export_lock = threading.Lock()


def is_export_running() -> bool:
    return _export_lock.locked()


def resample_audio(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resample of mono samples."""
    if source_rate == target_rate or len(samples) == 0:
        return samples.astype(np.float32, copy=False)
    target_length = max(1, round(len(samples) * target_rate / source_rate))
    source_times = np.arange(len(samples)) / source_rate
    target_times = np.arange(target_length) / target_rate
    return np.interp(target_times, source_times, samples).astype(np.float32)


class _ProgressReporter:
    """Forwards non-decreasing progress to the caller and mirrors it into the job state."""

    def __init__(self, job: ExportJob, on_progress: Optional[ProgressCallback]):
        self.job = job
        self.on_progress = on_progress
        self.percent = 0.0

    def report(self, percent: float, message: str, final: bool = False) -> None:
        if not final:
            percent = min(percent, FINALIZING_PERCENT)
        self.percent = max(self.percent, percent)
        self.job.state.progress = self.percent
        self.job.state.status_message = message
        if self.on_progress is not None:
            self.on_progress(self.percent, message)


class ExportOrchestrator:
    """
    Drives one export: renders every slide in order at a fixed frame rate and
    streams frames plus aligned audio into the encoder.

    An instance is single use; `export_video` creates one per call.
    """

    def __init__(
        self,
        job: ExportJob,
        encoder: Encoder,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.job = job
        self.encoder = encoder
        self.reporter = _ProgressReporter(job, on_progress)
        self.cancel_event = cancel_event
        self.fps = encoder.fps
        self.sample_rate = encoder.sample_rate
        self.total_frames = 0
        self.total_samples = 0

    def run(self) -> VideoArtifact:
        job = self.job
        total_slides = len(job.slides)
        job.state.is_exporting = True
        logger.info(
            f"--- Starting export: {total_slides} slides at {job.width}x{job.height}, "
            f"{self.fps}fps, subtitles={'on' if job.include_subtitles else 'off'} ---"
        )
        self.reporter.report(0.0, "Initializing video rendering...")

        self.encoder.open()
        try:
            for index, slide in enumerate(job.slides):
                if self.cancel_event is not None and self.cancel_event.is_set():
                    logger.warning(f"Export cancelled before slide {index + 1}/{total_slides}")
                    raise ExportCancelledError("Export cancelled")
                self._render_slide(index, slide)
                self.reporter.report(
                    (index + 1) / total_slides * 100,
                    f"Rendered slide {index + 1}/{total_slides}",
                )

            self.reporter.report(FINALIZING_PERCENT, "Finalizing video...")
            artifact = self.encoder.finalize()
        except BaseException:
            try:
                self.encoder.abort()
            except Exception:
                logger.error("Encoder cleanup failed after export error", exc_info=True)
            raise
        finally:
            job.state.is_exporting = False

        self.reporter.report(100.0, "Export complete", final=True)
        logger.info(
            f"--- Export complete: {self.total_frames} frames, "
            f"{self.total_frames / self.fps:.2f}s, {len(artifact.data)} bytes ---"
        )
        return artifact

    def _frame_count(self, slide: Slide) -> int:
        duration = slide.audio.duration if slide.audio is not None else 0.0
        if duration <= 0:
            return max(1, math.ceil(settings.STILL_SLIDE_DURATION * self.fps))
        return max(1, math.ceil(duration * self.fps))

    def _load_background(self, index: int, slide: Slide):
        try:
            return prepare_background(slide, self.job.width, self.job.height)
        except RenderError as e:
            logger.warning(f"Slide {index + 1} ({slide.id}): {e}. Using placeholder frame.")
            return placeholder_background(self.job.width, self.job.height)

    def _render_slide(self, index: int, slide: Slide) -> None:
        job = self.job
        total_slides = len(job.slides)
        frame_count = self._frame_count(slide)
        has_audio = slide.audio is not None and slide.audio.duration > 0
        duration = slide.audio.duration if has_audio else 0.0

        if not has_audio:
            logger.warning(f"Slide {index + 1} ({slide.id}) has no narration audio - rendering a {frame_count / self.fps:.2f}s still frame")

        self.reporter.report(index / total_slides * 100, f"Rendering slide {index + 1}/{total_slides}...")
        background = self._load_background(index, slide)

        chunks = chunk_text(slide.script, max_chars_for(job.width, job.height)) if job.include_subtitles else []
        frame_interval = 1.0 / self.fps
        last_chunk_index: Optional[int] = None
        frame: Optional[np.ndarray] = None

        frames = tqdm(range(frame_count), desc=f"Slide {index + 1}/{total_slides}", unit="frame", leave=False, disable=None)
        for frame_num in frames:
            t = frame_num * frame_interval
            if t > duration:
                t = duration
            progress = t / duration if duration > 0 else 0.0

            chunk_index = select_chunk(chunks, progress) if chunks else None
            # Consecutive frames showing the same chunk are identical
            if frame is None or chunk_index != last_chunk_index:
                caption = chunks[chunk_index] if chunk_index is not None else None
                frame = render_caption_frame(
                    slide, job.style, job.width, job.height, caption, background=background
                )
                last_chunk_index = chunk_index

            self.encoder.write_frame(frame)

            done = frame_num + 1
            if done < frame_count and done % settings.PROGRESS_FRAME_INTERVAL == 0:
                self.reporter.report(
                    (index + done / frame_count) / total_slides * 100,
                    f"Rendering slide {index + 1}/{total_slides} ({done}/{frame_count} frames)",
                )

        self.total_frames += frame_count
        self._write_slide_audio(slide.audio if has_audio else None)
        logger.info(f"Slide {index + 1}/{total_slides} rendered: {frame_count} frames ({frame_count / self.fps:.2f}s)")

    def _write_slide_audio(self, audio: Optional[AudioTrack]) -> None:
        """Write the slide audio, padded or trimmed so audio stays aligned with the frames written so far."""
        target_total = round(self.total_frames * self.sample_rate / self.fps)
        needed = target_total - self.total_samples
        if needed <= 0:
            return

        if audio is not None:
            samples = resample_audio(audio.samples, audio.sample_rate, self.sample_rate)[:needed]
        else:
            samples = np.zeros(0, dtype=np.float32)
        if len(samples) < needed:
            samples = np.concatenate([samples, np.zeros(needed - len(samples), dtype=np.float32)])

        self.encoder.write_audio(samples)
        self.total_samples += len(samples)


def _default_encoder_factory(width: int, height: int) -> Encoder:
    return FFmpegEncoder(width, height)


def export_video(
    slides: Iterable[Slide],
    width: int,
    height: int,
    style: SubtitleStyle,
    on_progress: Optional[ProgressCallback] = None,
    include_subtitles: bool = True,
    cancel_event: Optional[threading.Event] = None,
    encoder_factory: Optional[EncoderFactory] = None,
) -> VideoArtifact:
    """
    Export slides as a single mp4 with burned-in, audio-synchronized subtitles.

    Args:
        slides: Ordered slide sequence. Snapshotted at call time; later edits are not observed.
        width: Output width in pixels.
        height: Output height in pixels.
        style: Subtitle style.
        on_progress: Called with (percent 0-100, status message). Percent never decreases
            and reaches 100 exactly once, after the video is finalized.
        include_subtitles: Burn subtitles into frames.
        cancel_event: Checked at every slide boundary.
        encoder_factory: Builds the encoder for (width, height). Defaults to FFmpegEncoder.

    Returns:
        The encoded video artifact.

    Raises:
        ExportInProgressError: another export is running.
        ExportCancelledError: cancel_event was set.
        ExportError: invalid input, an encoder failure or any other rendering failure (cause chained).
    """
    if not _export_lock.acquire(blocking=False):
        raise ExportInProgressError("An export is already in progress")

    try:
        # Copy-on-start: slides and style are immutable models, a tuple snapshot is enough
        snapshot = tuple(slides)
        if not snapshot:
            raise ExportError("There are no slides to export")
        if width <= 0 or height <= 0:
            raise ExportError(f"Invalid output size {width}x{height}")

        job = ExportJob(
            width=width,
            height=height,
            style=style.model_copy(),
            include_subtitles=include_subtitles,
            slides=snapshot,
        )
        encoder = (encoder_factory or _default_encoder_factory)(width, height)
        orchestrator = ExportOrchestrator(job, encoder, on_progress=on_progress, cancel_event=cancel_event)

        try:
            return orchestrator.run()
        except ExportError:
            raise
        except Exception as e:
            logger.error(f"Video export failed: {e}", exc_info=True)
            raise ExportError("Video export failed") from e
    finally:
        _export_lock.release()


def export_aspect_ratio(
    slides: Iterable[Slide],
    aspect_ratio: AspectRatio,
    style: SubtitleStyle,
    on_progress: Optional[ProgressCallback] = None,
    include_subtitles: bool = True,
    cancel_event: Optional[threading.Event] = None,
    encoder_factory: Optional[EncoderFactory] = None,
) -> VideoArtifact:
    width, height = aspect_ratio.dimensions
    return export_video(
        slides,
        width,
        height,
        style,
        on_progress=on_progress,
        include_subtitles=include_subtitles,
        cancel_event=cancel_event,
        encoder_factory=encoder_factory,
    )
