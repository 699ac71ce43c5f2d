"""
Job management service for tracking export status and artifacts.
"""
import logging
import threading
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from slidereel.config import settings

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("pending", "processing")


class JobService:
    """Service for managing export job status. Jobs live in memory for the life of the process."""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.cancel_events: Dict[str, threading.Event] = {}
        self.lock = Lock()

    def job_dir(self, job_id: str) -> Path:
        return settings.JOBS_OUTPUT_PATH / job_id

    def create_job(self, job_id: str, aspect_ratio: str, include_subtitles: bool, slide_count: int) -> Dict[str, Any]:
        """Create a new job record."""
        with self.lock:
            self.jobs[job_id] = {
                "job_id": job_id,
                "status": "pending",
                "message": "Job created, waiting to start",
                "created_at": datetime.now().isoformat(),
                "progress": 0.0,
                "metadata": {
                    "aspect_ratio": aspect_ratio,
                    "include_subtitles": include_subtitles,
                    "slide_count": slide_count,
                },
            }
            self.cancel_events[job_id] = threading.Event()
            return dict(self.jobs[job_id])

    def update_job(
        self,
        job_id: str,
        status: str,
        message: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        progress: Optional[float] = None,
    ):
        """Update job status."""
        with self.lock:
            job = self.jobs.get(job_id)
            if job is None:
                logger.warning(f"Update for unknown job {job_id}")
                return
            job["status"] = status
            job["message"] = message
            if progress is not None:
                job["progress"] = progress
            if metadata:
                job["metadata"].update(metadata)

        if progress is not None:
            logger.debug(f"Job {job_id}: Progress updated to {progress:.1f}% - {message}")
        if status in ("completed", "failed", "cancelled"):
            logger.info(f"Job {job_id} {status}: {message}")

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get job by ID."""
        with self.lock:
            job = self.jobs.get(job_id)
            return dict(job) if job is not None else None

    def list_jobs(self, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        """List jobs with pagination, newest first."""
        with self.lock:
            sorted_jobs = sorted(self.jobs.values(), key=lambda x: x.get("created_at", ""), reverse=True)
            return [dict(job) for job in sorted_jobs[offset:offset + limit]]

    def has_active_job(self) -> bool:
        with self.lock:
            return any(job["status"] in ACTIVE_STATUSES for job in self.jobs.values())

    def cancel_event(self, job_id: str) -> Optional[threading.Event]:
        with self.lock:
            return self.cancel_events.get(job_id)

    def request_cancel(self, job_id: str) -> bool:
        """Ask a running export to stop at its next slide boundary."""
        with self.lock:
            job = self.jobs.get(job_id)
            event = self.cancel_events.get(job_id)
            if job is None or event is None or job["status"] not in ACTIVE_STATUSES:
                return False
            event.set()
        logger.info(f"Cancellation requested for job {job_id}")
        return True
