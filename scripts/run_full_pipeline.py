import sys
import logging
from pathlib import Path
import time
from datetime import datetime
import argparse

script_dir = Path(__file__).parent
project_root = script_dir.parent
sys.path.append(str(project_root))

from slidereel.config import settings
from slidereel.logging_config import setup_logging

from slidereel.api.job_service import JobService
from slidereel.api.pipeline_service import PipelineService
from slidereel.models import AspectRatio, ScriptLevel, VoiceName
from slidereel.orchestration.project import ProjectSession

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp")


def find_slide_images(images_dir: Path):
    """Slide images in the folder, ordered by file name."""
    return sorted(p for p in images_dir.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS)


def main(
    images_dir: Path,
    output_path: Path = None,
    aspect_ratio: AspectRatio = AspectRatio.VIDEO_16_9,
    voice: VoiceName = VoiceName(settings.DEFAULT_VOICE),
    level: ScriptLevel = ScriptLevel.UNIVERSITY,
    include_subtitles: bool = True,
) -> bool:
    start_time = time.time()

    # --- A. Setup ---
    job_id = f"{images_dir.name}_{datetime.now().strftime('%Y%m%d_%H%M')}"
    job_dir = settings.JOBS_OUTPUT_PATH / job_id
    job_dir.mkdir(parents=True, exist_ok=True)

    setup_logging(job_id=job_id)
    logger = logging.getLogger(__name__)

    logger.info(f"--- STARTING FULL PIPELINE FOR JOB: {job_id} ---")
    logger.info(f"Input slides: {images_dir}")
    logger.info(f"Job output will be in: {job_dir}")

    try:
        # ===== PHASE 1: SLIDE INGESTION =====
        logger.info("--- PHASE 1: Loading slide images ---")
        image_paths = find_slide_images(images_dir)
        if not image_paths:
            raise ValueError(f"No slide images found in {images_dir}")

        project = ProjectSession()
        slides = project.add_slides(p.read_bytes() for p in image_paths)
        logger.info(f"Loaded {len(slides)} slides")

        job_service = JobService()
        pipeline = PipelineService(project=project, job_service=job_service)

        # ===== PHASE 2: NARRATION =====
        logger.info(f"--- PHASE 2: Writing scripts ({level.value}) ---")
        for index, slide in enumerate(slides, start=1):
            logger.info(f"Script {index}/{len(slides)}")
            pipeline.write_script(slide.id, level)

        # ===== PHASE 3: SPEECH =====
        logger.info(f"--- PHASE 3: Synthesizing speech (Voice: {voice.value}) ---")
        for index, slide in enumerate(slides, start=1):
            logger.info(f"Speech {index}/{len(slides)}")
            pipeline.voice_slide(slide.id, voice)

        # ===== PHASE 4: VIDEO EXPORT =====
        logger.info(f"--- PHASE 4: Video Export ({aspect_ratio.value}) ---")
        job_service.create_job(
            job_id=job_id,
            aspect_ratio=aspect_ratio.value,
            include_subtitles=include_subtitles,
            slide_count=len(slides),
        )
        video_path = pipeline.run_export(job_id, aspect_ratio=aspect_ratio, include_subtitles=include_subtitles)
        if video_path is None:
            job = job_service.get_job(job_id)
            raise RuntimeError(f"Export did not complete: {job['message'] if job else 'unknown error'}")

        if output_path is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(video_path.read_bytes())
            video_path = output_path

        end_time = time.time()
        logger.info(f"--- FULL PIPELINE SUCCESS (Total time: {end_time - start_time:.2f}s) ---")
        logger.info(f"Final Video: {video_path}")
        return True

    except Exception as e:
        logger.error(f"--- FULL PIPELINE FAILED {e} ---", exc_info=True)
        end_time = time.time()
        logger.error(f"Failed after {end_time - start_time:.2f} seconds.")
        return False


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the full slides-to-video pipeline.")
    parser.add_argument("images_dir", type=str, help="Folder containing slide images (ordered by file name).")
    parser.add_argument("-o", "--output", type=str, default=None, help="Where to write the final mp4.")
    parser.add_argument(
        "--aspect-ratio", choices=[a.value for a in AspectRatio], default=AspectRatio.VIDEO_16_9.value
    )
    parser.add_argument("--voice", choices=[v.value for v in VoiceName], default=settings.DEFAULT_VOICE)
    parser.add_argument("--level", choices=[l.value for l in ScriptLevel], default=ScriptLevel.UNIVERSITY.value)
    parser.add_argument("--no-subtitles", action="store_true", help="Export without burned-in subtitles.")
    args = parser.parse_args()

    input_dir = Path(args.images_dir)
    if not input_dir.is_dir():
        print(f"Error: slide folder not found at {input_dir}")
        sys.exit(1)

    ok = main(
        images_dir=input_dir,
        output_path=Path(args.output) if args.output else None,
        aspect_ratio=AspectRatio(args.aspect_ratio),
        voice=VoiceName(args.voice),
        level=ScriptLevel(args.level),
        include_subtitles=not args.no_subtitles,
    )
    sys.exit(0 if ok else 1)
