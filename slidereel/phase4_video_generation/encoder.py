"""
FFmpeg backed encoder/muxer.

Frames are piped to an ffmpeg process as raw RGB while the matching audio is
appended to a raw PCM file. `finalize()` closes the video stream and muxes it
with the audio into the final mp4, the same two-pass approach used for the
temp-video + audio encode.
"""
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol

import numpy as np

from slidereel.config import settings
from slidereel.errors import EncodeError
from slidereel.models import VideoArtifact
from slidereel.utils.ffmpeg_utils import get_ffmpeg_path, run_ffmpeg_command

logger = logging.getLogger(__name__)


class Encoder(Protocol):
    """Boundary the export orchestrator drives. Timestamps are implied by call order."""

    fps: int
    sample_rate: int

    def open(self) -> None: ...

    def write_frame(self, frame: np.ndarray) -> None: ...

    def write_audio(self, samples: np.ndarray) -> None: ...

    def finalize(self) -> VideoArtifact: ...

    def abort(self) -> None: ...


class FFmpegEncoder:
    """Encodes a constant frame-rate H.264/AAC mp4 from raw frames and mono PCM audio."""

    def __init__(
        self,
        width: int,
        height: int,
        fps: Optional[int] = None,
        sample_rate: Optional[int] = None,
        work_dir: Optional[Path] = None,
    ):
        self.width = width
        self.height = height
        self.fps = fps or settings.VIDEO_FPS
        self.sample_rate = sample_rate or settings.AUDIO_SAMPLE_RATE
        self._parent_dir = work_dir
        self._work_dir: Optional[Path] = None
        self._process: Optional[subprocess.Popen] = None
        self._audio_file = None
        self.frames_written = 0
        self.samples_written = 0

    @property
    def _video_path(self) -> Path:
        return self._work_dir / "video_only.mp4"

    @property
    def _audio_path(self) -> Path:
        return self._work_dir / "audio.f32le"

    @property
    def _output_path(self) -> Path:
        return self._work_dir / "output.mp4"

    def _video_command(self) -> List[str]:
        cmd = [
            get_ffmpeg_path(),
            "-y",
            "-loglevel", "error",
            "-nostats",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{self.width}x{self.height}",
            "-r", str(self.fps),
            "-i", "-",  # Read from stdin
            "-c:v", settings.VIDEO_CODEC,
            "-pix_fmt", "yuv420p",
        ]
        cmd.extend(settings.VIDEO_CODEC_PARAMS)
        cmd.append(str(self._video_path))
        return cmd

    def _mux_command(self) -> List[str]:
        return [
            get_ffmpeg_path(),
            "-y",
            "-i", str(self._video_path),
            "-f", "f32le",
            "-ar", str(self.sample_rate),
            "-ac", "1",
            "-i", str(self._audio_path),
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", settings.AUDIO_BITRATE,
            "-movflags", "+faststart",
            str(self._output_path),
        ]

    def open(self) -> None:
        if self._process is not None:
            raise EncodeError("Encoder is already open")
        self._work_dir = Path(tempfile.mkdtemp(prefix="slidereel_", dir=self._parent_dir))
        self._audio_file = open(self._audio_path, "wb")
        cmd = self._video_command()
        logger.info(f"Starting FFmpeg encoding with {settings.VIDEO_CODEC} ({self.width}x{self.height} @ {self.fps}fps)...")
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            self.abort()
            raise EncodeError(f"Could not start ffmpeg: {e}") from e

    def write_frame(self, frame: np.ndarray) -> None:
        if self._process is None or self._process.stdin is None:
            raise EncodeError("Encoder is not open")
        if frame.shape != (self.height, self.width, 3):
            raise EncodeError(f"Frame shape {frame.shape} does not match {self.height}x{self.width}x3")
        try:
            self._process.stdin.write(np.ascontiguousarray(frame, dtype=np.uint8).tobytes())
        except (BrokenPipeError, OSError) as e:
            raise EncodeError(f"FFmpeg stopped accepting frames: {e}") from e
        self.frames_written += 1

    def write_audio(self, samples: np.ndarray) -> None:
        if self._audio_file is None:
            raise EncodeError("Encoder is not open")
        pcm = np.asarray(samples, dtype="<f4")
        try:
            self._audio_file.write(pcm.tobytes())
        except OSError as e:
            raise EncodeError(f"Could not write audio: {e}") from e
        self.samples_written += len(pcm)

    def finalize(self) -> VideoArtifact:
        if self._process is None:
            raise EncodeError("Encoder is not open")
        try:
            self._audio_file.close()
            self._process.stdin.close()
            stderr = self._process.stderr.read() if self._process.stderr else b""
            returncode = self._process.wait()
            if returncode != 0:
                logger.error(f"FFmpeg encoding failed with return code {returncode}")
                logger.error(f"FFmpeg stderr: {stderr.decode('utf-8', errors='ignore')}")
                raise EncodeError(f"FFmpeg exited with code {returncode}")
            self._process = None

            logger.info(f"Muxing {self.frames_written} frames with {self.samples_written / self.sample_rate:.2f}s of audio...")
            try:
                run_ffmpeg_command(self._mux_command())
            except subprocess.CalledProcessError as e:
                raise EncodeError(f"FFmpeg mux failed with code {e.returncode}") from e

            artifact = VideoArtifact(data=self._output_path.read_bytes(), media_type="video/mp4")
            logger.info(f"Video encoding complete ({len(artifact.data)} bytes)")
            return artifact
        except EncodeError:
            self.abort()
            raise
        except OSError as e:
            self.abort()
            raise EncodeError(f"Encoder I/O failed: {e}") from e
        finally:
            self._cleanup()

    def abort(self) -> None:
        """Kill ffmpeg and remove temporary files. Safe to call more than once."""
        if self._process is not None:
            logger.warning("Aborting FFmpeg encoder")
            try:
                if self._process.stdin and not self._process.stdin.closed:
                    self._process.stdin.close()
            except OSError as e:
                logger.debug(f"Ignoring error while closing ffmpeg stdin: {e}")
            if self._process.poll() is None:
                self._process.kill()
            self._process.wait()
            self._process = None
        self._cleanup()

    def _cleanup(self) -> None:
        if self._audio_file is not None and not self._audio_file.closed:
            self._audio_file.close()
        self._audio_file = None
        if self._work_dir is not None and self._work_dir.exists():
            shutil.rmtree(self._work_dir, ignore_errors=True)
            logger.debug(f"Cleaned up encoder work dir: {self._work_dir}")
        self._work_dir = None
