"""
API tests for the FastAPI app, with narration and encoding replaced by fakes.
"""

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from conftest import make_png, make_track
from slidereel.api import main
from slidereel.api import pipeline_service as pipeline_module
from slidereel.api.job_service import JobService
from slidereel.api.pipeline_service import PipelineService
from slidereel.config import settings
from slidereel.errors import NarrationError
from slidereel.orchestration.project import ProjectSession
from slidereel.phase2_ai_services.narration_client import ScriptResult
from slidereel.phase4_video_generation import exporter


class FakeNarration:
    def __init__(self):
        self.fail_script = False
        self.speech = b"fake-mp3"

    def generate_script(self, image_bytes, level):
        if self.fail_script:
            raise NarrationError("model returned nothing")
        return ScriptResult(script=f"A {level.value} level script", subtitle="Short subtitle")

    def generate_speech(self, text, voice):
        return self.speech


@pytest.fixture
def narration():
    return FakeNarration()


@pytest.fixture
def client(monkeypatch, tmp_path, narration, recording_encoders):
    monkeypatch.setattr(settings, "JOBS_OUTPUT_PATH", tmp_path)
    project = ProjectSession()
    job_service = JobService()
    pipeline = PipelineService(
        project=project,
        job_service=job_service,
        narration_factory=lambda: narration,
        encoder_factory=recording_encoders,
    )
    monkeypatch.setattr(main, "project", project)
    monkeypatch.setattr(main, "job_service", job_service)
    monkeypatch.setattr(main, "pipeline_service", pipeline)
    monkeypatch.setattr(pipeline_module, "decode_audio", lambda data: make_track(0.5))
    return TestClient(main.app)


def _upload(client, count=2):
    files = [("files", (f"slide{i}.png", make_png(), "image/png")) for i in range(count)]
    response = client.post("/api/slides", files=files)
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/").json()["status"] == "ok"
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["exporting"] is False


def test_upload_and_list_slides(client):
    uploaded = _upload(client, 3)

    listed = client.get("/api/slides").json()

    assert [s["id"] for s in listed] == [s["id"] for s in uploaded]
    assert all(not s["has_audio"] for s in listed)


def test_upload_rejects_non_images(client):
    response = client.post("/api/slides", files=[("files", ("notes.txt", b"hello", "text/plain"))])

    assert response.status_code == 400


def test_patch_and_delete_slide(client):
    slide_id = _upload(client, 1)[0]["id"]

    patched = client.patch(f"/api/slides/{slide_id}", json={"script": "Edited script"})
    assert patched.json()["script"] == "Edited script"

    assert client.delete(f"/api/slides/{slide_id}").status_code == 200
    assert client.delete(f"/api/slides/{slide_id}").status_code == 404
    assert client.patch(f"/api/slides/{slide_id}", json={"script": "x"}).status_code == 404


def test_generate_script_and_speech(client):
    slide_id = _upload(client, 1)[0]["id"]

    script = client.post(f"/api/slides/{slide_id}/script", json={"level": "senior"})
    assert script.status_code == 200
    assert script.json()["script"] == "A senior level script"
    assert script.json()["subtitle"] == "Short subtitle"

    speech = client.post(f"/api/slides/{slide_id}/speech", json={"voice": "alloy"})
    assert speech.status_code == 200
    assert speech.json()["has_audio"] is True
    assert speech.json()["audio_duration"] == pytest.approx(0.5)


def test_script_failure_keeps_previous_text(client, narration):
    slide_id = _upload(client, 1)[0]["id"]
    client.patch(f"/api/slides/{slide_id}", json={"script": "Keep me"})
    narration.fail_script = True

    response = client.post(f"/api/slides/{slide_id}/script")

    assert response.status_code == 502
    assert main.project.get_slide(slide_id).script == "Keep me"


def test_declined_speech_leaves_slide_silent(client, narration):
    slide_id = _upload(client, 1)[0]["id"]
    narration.speech = None

    response = client.post(f"/api/slides/{slide_id}/speech")

    assert response.status_code == 200
    assert response.json()["has_audio"] is False
    assert response.json()["is_generating_audio"] is False


def test_missing_api_key_returns_503(client, monkeypatch):
    def no_key():
        raise ValueError("OpenAI API key not configured.")

    monkeypatch.setattr(main.pipeline_service, "narration_factory", no_key)
    slide_id = _upload(client, 1)[0]["id"]

    response = client.post(f"/api/slides/{slide_id}/script")

    assert response.status_code == 503
    assert main.project.get_slide(slide_id).script == ""


def test_frame_endpoint_returns_png(client):
    slide_id = _upload(client, 1)[0]["id"]
    client.patch(f"/api/slides/{slide_id}", json={"script": "Frame caption"})

    response = client.get(
        f"/api/slides/{slide_id}/frame",
        params={"aspect_ratio": "1:1", "progress": 0.5, "include_subtitles": True},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(response.content)).size == (1080, 1080)


def test_frame_endpoint_rejects_bad_progress(client):
    slide_id = _upload(client, 1)[0]["id"]

    assert client.get(f"/api/slides/{slide_id}/frame", params={"progress": 2}).status_code == 422
    assert client.get("/api/slides/missing/frame").status_code == 404


def test_style_roundtrip_and_validation(client):
    assert client.get("/api/style").json()["font_size"] == 32

    updated = client.put("/api/style", json={"font_size": 40, "background_opacity": 0.2, "color": "#ffcc00"})
    assert updated.status_code == 200
    assert client.get("/api/style").json()["font_size"] == 40

    assert client.put("/api/style", json={"background_opacity": 2}).status_code == 422
    assert client.put("/api/style", json={"color": "not-a-color"}).status_code == 422


def test_export_flow(client, recording_encoders):
    _upload(client, 2)

    response = client.post("/api/export", json={"aspect_ratio": "9:16", "include_subtitles": False})
    assert response.status_code == 200
    job_id = response.json()["job_id"]

    # TestClient runs background tasks before returning
    job = client.get(f"/api/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert job["progress"] == 100.0
    assert recording_encoders.created[0].width == 1080

    download = client.get(f"/api/jobs/{job_id}/download")
    assert download.status_code == 200
    assert download.content == b"fake-mp4"
    assert download.headers["content-type"] == "video/mp4"


def test_export_without_slides_is_rejected(client):
    assert client.post("/api/export").status_code == 400


def test_export_while_running_returns_409(client):
    _upload(client, 1)

    assert exporter._export_lock.acquire(blocking=False)
    try:
        response = client.post("/api/export")
    finally:
        exporter._export_lock.release()

    assert response.status_code == 409


def test_export_rejected_while_job_active(client):
    _upload(client, 1)
    main.job_service.create_job("busy", "16:9", True, 1)

    assert client.post("/api/export").status_code == 409


def test_job_lookup_errors(client):
    assert client.get("/api/jobs/unknown").status_code == 404
    assert client.get("/api/jobs/unknown/download").status_code == 404
    assert client.post("/api/jobs/unknown/cancel").status_code == 404

    main.job_service.create_job("pending-job", "16:9", True, 1)
    assert client.get("/api/jobs/pending-job/download").status_code == 400


def test_cancel_pending_and_finished_jobs(client):
    main.job_service.create_job("job1", "16:9", True, 1)

    response = client.post("/api/jobs/job1/cancel")
    assert response.status_code == 200
    assert main.job_service.cancel_event("job1").is_set()

    main.job_service.update_job("job1", status="completed")
    assert client.post("/api/jobs/job1/cancel").status_code == 409


class DiskFullEncoder:
    fps = 30
    sample_rate = 8000

    def __init__(self, width, height):
        self.width = width
        self.height = height

    def open(self):
        pass

    def write_frame(self, frame):
        pass

    def write_audio(self, samples):
        raise OSError(28, "No space left on device")

    def finalize(self):
        raise AssertionError("finalize must not be reached")

    def abort(self):
        pass


def test_failed_export_does_not_block_next_export(client, monkeypatch, recording_encoders):
    _upload(client, 1)
    monkeypatch.setattr(main.pipeline_service, "encoder_factory", DiskFullEncoder)

    failed_id = client.post("/api/export").json()["job_id"]

    failed = client.get(f"/api/jobs/{failed_id}").json()
    assert failed["status"] == "failed"
    assert failed["message"] == "Video export failed"
    assert not main.job_service.has_active_job()

    monkeypatch.setattr(main.pipeline_service, "encoder_factory", recording_encoders)
    response = client.post("/api/export")
    assert response.status_code == 200
    assert client.get(f"/api/jobs/{response.json()['job_id']}").json()["status"] == "completed"


def test_unsaved_video_marks_job_failed(client, monkeypatch):
    _upload(client, 1)

    def disk_full(self, data):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(pipeline_module.Path, "write_bytes", disk_full)
    main.job_service.create_job("job1", "16:9", True, 1)

    assert main.pipeline_service.run_export("job1") is None

    job = main.job_service.get_job("job1")
    assert job["status"] == "failed"
    assert not main.job_service.has_active_job()
