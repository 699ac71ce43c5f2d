"""
Pipeline service: narrates slides and runs exports on behalf of the API and CLI.
"""
import logging
from pathlib import Path
from typing import Callable, Optional

from slidereel.api.job_service import JobService
from slidereel.errors import AudioDecodeError, ExportCancelledError, ExportError, NarrationError
from slidereel.models import AspectRatio, ScriptLevel, Slide, VoiceName
from slidereel.orchestration.project import ProjectSession
from slidereel.phase2_ai_services.narration_client import NarrationService
from slidereel.phase3_audio_processing.decoder import decode_audio
from slidereel.phase4_video_generation.exporter import EncoderFactory, export_aspect_ratio

logger = logging.getLogger(__name__)

# Script shown on a slide while its narration is being written
ANALYZING_PLACEHOLDER = "Analyzing slide..."


class SlideNotFoundError(KeyError):
    pass


class PipelineService:
    """Service for narrating slides and exporting the deck."""

    def __init__(
        self,
        project: ProjectSession,
        job_service: Optional[JobService] = None,
        narration_factory: Callable[[], NarrationService] = NarrationService,
        encoder_factory: Optional[EncoderFactory] = None,
    ):
        self.project = project
        self.job_service = job_service if job_service is not None else JobService()
        self.narration_factory = narration_factory
        self.encoder_factory = encoder_factory
        self._narration: Optional[NarrationService] = None

    @property
    def narration(self) -> NarrationService:
        # Created on first use so the API can start without an OpenAI key
        if self._narration is None:
            self._narration = self.narration_factory()
        return self._narration

    def _require_slide(self, slide_id: str) -> Slide:
        slide = self.project.get_slide(slide_id)
        if slide is None:
            raise SlideNotFoundError(slide_id)
        return slide

    def write_script(self, slide_id: str, level: ScriptLevel = ScriptLevel.UNIVERSITY) -> Slide:
        """Generate a script and subtitle for one slide. Stale audio is dropped."""
        slide = self._require_slide(slide_id)
        narration = self.narration
        self.project.update_slide(slide_id, script=ANALYZING_PLACEHOLDER)
        try:
            result = narration.generate_script(slide.image_bytes, level)
        except NarrationError:
            self.project.update_slide(slide_id, script=slide.script, subtitle=slide.subtitle)
            raise
        logger.info(f"Slide {slide_id}: script written ({level.value})")
        return self.project.update_slide(slide_id, script=result.script, subtitle=result.subtitle, audio=None)

    def voice_slide(self, slide_id: str, voice: VoiceName = VoiceName.ONYX) -> Slide:
        """
        Synthesize and decode narration audio for one slide.

        A slide the TTS declines to voice keeps audio=None and exports as a still frame.
        """
        slide = self._require_slide(slide_id)
        narration = self.narration
        self.project.update_slide(slide_id, is_generating_audio=True)
        try:
            audio_bytes = narration.generate_speech(slide.script, voice)
            track = decode_audio(audio_bytes) if audio_bytes else None
        except AudioDecodeError:
            logger.error(f"Slide {slide_id}: narration audio could not be decoded", exc_info=True)
            track = None
        finally:
            self.project.update_slide(slide_id, is_generating_audio=False)

        if track is None:
            logger.warning(f"Slide {slide_id}: no narration audio")
        else:
            logger.info(f"Slide {slide_id}: narration audio {track.duration:.2f}s")
        return self.project.update_slide(slide_id, audio=track)

    def run_export(
        self,
        job_id: str,
        aspect_ratio: AspectRatio = AspectRatio.VIDEO_16_9,
        include_subtitles: bool = True,
    ) -> Optional[Path]:
        """
        Export the current deck for a job and store the video under the job directory.

        Runs as a background task: failures are recorded on the job, never raised.
        """
        job_dir = self.job_service.job_dir(job_id)
        job_dir.mkdir(parents=True, exist_ok=True)
        slides, style = self.project.snapshot()

        logger.info(f"=== EXPORT STARTED FOR JOB: {job_id} ({len(slides)} slides, {aspect_ratio.value}) ===")
        self.job_service.update_job(job_id, status="processing", message="Starting export...", progress=0.0)

        def on_progress(percent: float, message: str):
            self.job_service.update_job(job_id, status="processing", message=message, progress=percent)

        try:
            artifact = export_aspect_ratio(
                slides,
                aspect_ratio,
                style,
                on_progress=on_progress,
                include_subtitles=include_subtitles,
                cancel_event=self.job_service.cancel_event(job_id),
                encoder_factory=self.encoder_factory,
            )
        except ExportCancelledError:
            self.job_service.update_job(job_id, status="cancelled", message="Export cancelled")
            return None
        except ExportError as e:
            logger.error(f"Export failed for job {job_id}: {e}", exc_info=True)
            self.job_service.update_job(job_id, status="failed", message=str(e))
            return None
        except Exception as e:
            logger.error(f"Unexpected export error for job {job_id}: {e}", exc_info=True)
            self.job_service.update_job(job_id, status="failed", message="Video export failed")
            return None

        video_path = job_dir / artifact.suggested_filename
        try:
            video_path.write_bytes(artifact.data)
        except OSError as e:
            logger.error(f"Could not save video for job {job_id}: {e}", exc_info=True)
            self.job_service.update_job(job_id, status="failed", message="Could not save the exported video")
            return None
        self.job_service.update_job(
            job_id,
            status="completed",
            message="Export complete",
            progress=100.0,
            metadata={"video_path": str(video_path), "media_type": artifact.media_type},
        )
        logger.info(f"=== EXPORT COMPLETE FOR JOB: {job_id} -> {video_path} ===")
        return video_path
