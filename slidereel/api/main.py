"""
FastAPI backend for the SlideReel slide-to-video service.
"""
import io
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, Query, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from PIL import Image
from pydantic import BaseModel

from slidereel.api.job_service import JobService
from slidereel.api.pipeline_service import PipelineService, SlideNotFoundError
from slidereel.config import settings
from slidereel.errors import NarrationError, RenderError
from slidereel.models import AspectRatio, ScriptLevel, Slide, SubtitleStyle, VoiceName
from slidereel.orchestration.project import ProjectSession
from slidereel.phase4_video_generation.compositor import render_frame
from slidereel.phase4_video_generation.exporter import is_export_running

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp")

app = FastAPI(
    title="SlideReel API",
    description="API for turning slide images into narrated, subtitled videos",
    version="1.0.0",
)

# CORS middleware for the editor frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services - share the same project and job_service instances
project = ProjectSession()
job_service = JobService()
pipeline_service = PipelineService(project=project, job_service=job_service)


class SlideResponse(BaseModel):
    id: str
    script: str
    subtitle: str
    has_audio: bool
    audio_duration: Optional[float] = None
    is_generating_audio: bool = False

    @classmethod
    def from_slide(cls, slide: Slide) -> "SlideResponse":
        return cls(
            id=slide.id,
            script=slide.script,
            subtitle=slide.subtitle,
            has_audio=slide.audio is not None,
            audio_duration=slide.audio.duration if slide.audio is not None else None,
            is_generating_audio=slide.is_generating_audio,
        )


class SlideUpdate(BaseModel):
    script: Optional[str] = None
    subtitle: Optional[str] = None


class ScriptRequest(BaseModel):
    level: ScriptLevel = ScriptLevel.UNIVERSITY


class SpeechRequest(BaseModel):
    voice: VoiceName = VoiceName(settings.DEFAULT_VOICE)


class ExportRequest(BaseModel):
    aspect_ratio: AspectRatio = AspectRatio.VIDEO_16_9
    include_subtitles: bool = True


class JobResponse(BaseModel):
    """Response model for job status."""
    job_id: str
    status: str
    message: str
    created_at: str
    metadata: Optional[Dict[str, Any]] = None
    progress: Optional[float] = None


def _job_response(job: Dict[str, Any]) -> JobResponse:
    return JobResponse(
        job_id=job["job_id"],
        status=job.get("status", "unknown"),
        message=job.get("message", ""),
        created_at=job.get("created_at", ""),
        metadata=job.get("metadata", {}),
        progress=job.get("progress"),
    )


def _get_slide_or_404(slide_id: str) -> Slide:
    slide = project.get_slide(slide_id)
    if slide is None:
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    return slide


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "SlideReel API is running"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "jobs_path": str(settings.JOBS_OUTPUT_PATH),
        "exporting": is_export_running(),
    }


@app.post("/api/slides", response_model=List[SlideResponse])
async def upload_slides(files: List[UploadFile] = File(...)):
    """
    Upload slide images. Slides are appended in upload order with no script or audio yet.
    """
    blobs = []
    for file in files:
        if not (file.filename or "").lower().endswith(IMAGE_EXTENSIONS):
            raise HTTPException(status_code=400, detail=f"File {file.filename} must be an image")
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail=f"File {file.filename} is empty")
        blobs.append(content)

    slides = project.add_slides(blobs)
    logger.info(f"Uploaded {len(slides)} slide images")
    return [SlideResponse.from_slide(s) for s in slides]


@app.get("/api/slides", response_model=List[SlideResponse])
async def list_slides():
    return [SlideResponse.from_slide(s) for s in project.list_slides()]


@app.patch("/api/slides/{slide_id}", response_model=SlideResponse)
async def update_slide(slide_id: str, update: SlideUpdate):
    """Edit a slide's script or subtitle text."""
    _get_slide_or_404(slide_id)
    fields = update.model_dump(exclude_none=True)
    slide = project.update_slide(slide_id, **fields) if fields else project.get_slide(slide_id)
    if slide is None:
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    return SlideResponse.from_slide(slide)


@app.delete("/api/slides/{slide_id}")
async def delete_slide(slide_id: str):
    if not project.remove_slide(slide_id):
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    return {"status": "deleted", "slide_id": slide_id}


@app.post("/api/slides/{slide_id}/script", response_model=SlideResponse)
def generate_slide_script(slide_id: str, request: Optional[ScriptRequest] = None):
    """Ask the narration model for a script and subtitle for this slide."""
    request = request or ScriptRequest()
    try:
        slide = pipeline_service.write_script(slide_id, request.level)
    except SlideNotFoundError:
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    except ValueError as e:
        logger.warning(f"Narration service not available: {e}")
        raise HTTPException(status_code=503, detail="Narration service not available. Please configure OPENAI_API_KEY.")
    except NarrationError as e:
        logger.error(f"Script generation failed for slide {slide_id}: {e}")
        raise HTTPException(status_code=502, detail="Script generation failed")
    if slide is None:
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    return SlideResponse.from_slide(slide)


@app.post("/api/slides/{slide_id}/speech", response_model=SlideResponse)
def generate_slide_speech(slide_id: str, request: Optional[SpeechRequest] = None):
    """Synthesize narration audio for this slide's script."""
    request = request or SpeechRequest()
    try:
        slide = pipeline_service.voice_slide(slide_id, request.voice)
    except SlideNotFoundError:
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    except ValueError as e:
        logger.warning(f"Narration service not available: {e}")
        raise HTTPException(status_code=503, detail="Narration service not available. Please configure OPENAI_API_KEY.")
    if slide is None:
        raise HTTPException(status_code=404, detail=f"Slide {slide_id} not found")
    return SlideResponse.from_slide(slide)


@app.get("/api/slides/{slide_id}/frame")
def get_slide_frame(
    slide_id: str,
    aspect_ratio: AspectRatio = Query(AspectRatio.VIDEO_16_9),
    progress: float = Query(0.0, ge=0.0, le=1.0),
    include_subtitles: bool = Query(True),
):
    """
    Render the frame the exporter would produce for this slide at `progress`, as PNG.
    """
    slide = _get_slide_or_404(slide_id)
    width, height = aspect_ratio.dimensions
    try:
        frame = render_frame(slide, project.style, width, height, progress, include_subtitles)
    except RenderError as e:
        raise HTTPException(status_code=422, detail=str(e))

    buffer = io.BytesIO()
    Image.fromarray(frame).save(buffer, format="PNG")
    return Response(content=buffer.getvalue(), media_type="image/png")


@app.get("/api/style", response_model=SubtitleStyle)
async def get_style():
    return project.style


@app.put("/api/style", response_model=SubtitleStyle)
async def set_style(style: SubtitleStyle):
    project.style = style
    logger.info(f"Subtitle style updated: {style.model_dump()}")
    return style


@app.post("/api/export", response_model=JobResponse)
async def start_export(background_tasks: BackgroundTasks, request: Optional[ExportRequest] = None):
    """
    Start exporting the current deck. Only one export can run at a time.
    """
    request = request or ExportRequest()
    if is_export_running() or job_service.has_active_job():
        raise HTTPException(status_code=409, detail="An export is already in progress")

    slides = project.list_slides()
    if not slides:
        raise HTTPException(status_code=400, detail="There are no slides to export")

    job_id = f"export_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
    job = job_service.create_job(
        job_id=job_id,
        aspect_ratio=request.aspect_ratio.value,
        include_subtitles=request.include_subtitles,
        slide_count=len(slides),
    )

    logger.info(f"Starting background export for job {job_id}")
    background_tasks.add_task(
        pipeline_service.run_export,
        job_id=job_id,
        aspect_ratio=request.aspect_ratio,
        include_subtitles=request.include_subtitles,
    )
    return _job_response(job)


@app.get("/api/jobs/{job_id}", response_model=JobResponse)
async def get_job_status(job_id: str):
    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return _job_response(job)


@app.get("/api/jobs/{job_id}/download")
async def download_video(job_id: str):
    """Download the exported video of a completed job."""
    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    if job.get("status") != "completed":
        raise HTTPException(status_code=400, detail=f"Job {job_id} is not completed yet (Status: {job.get('status')})")

    path_str = job.get("metadata", {}).get("video_path")
    if not path_str or not Path(path_str).exists():
        raise HTTPException(status_code=404, detail="Video file not found")

    video_file = Path(path_str)
    return FileResponse(
        path=str(video_file),
        filename=video_file.name,
        media_type=job["metadata"].get("media_type", "video/mp4"),
    )


@app.post("/api/jobs/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(job_id: str):
    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    if not job_service.request_cancel(job_id):
        raise HTTPException(status_code=409, detail=f"Job {job_id} is not running (Status: {job.get('status')})")
    return _job_response(job_service.get_job(job_id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
