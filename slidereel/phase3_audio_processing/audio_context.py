"""
Process-wide audio playback context used by the interactive preview.

The context is created lazily by the first `acquire_audio_context()` and
closed when the last consumer calls `release_audio_context()`. Only one
playback stream is active at a time: starting a new one stops the previous.
"""
import logging
import shutil
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from slidereel.config import settings
from slidereel.errors import PlaybackUnavailableError
from slidereel.models import AudioTrack
from slidereel.utils.ffmpeg_utils import get_ffmpeg_path, run_ffmpeg_command

logger = logging.getLogger(__name__)


class PlaybackStream:
    """Interface of a single playing track."""

    def start(self) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    @property
    def is_active(self) -> bool:
        raise NotImplementedError


class FfplayStream(PlaybackStream):
    """Plays a track through ffplay. The track is first written to a temporary wav with ffmpeg."""

    def __init__(self, track: AudioTrack):
        self.track = track
        self._process: Optional[subprocess.Popen] = None
        self._work_dir: Optional[Path] = None

    def start(self) -> None:
        ffplay_path = shutil.which(settings.FFPLAY_BINARY)
        if not ffplay_path:
            raise PlaybackUnavailableError(f"'{settings.FFPLAY_BINARY}' not found on PATH")

        self._work_dir = Path(tempfile.mkdtemp(prefix="slidereel_play_"))
        pcm_path = self._work_dir / "track.f32le"
        wav_path = self._work_dir / "track.wav"
        pcm_path.write_bytes(np.asarray(self.track.samples, dtype="<f4").tobytes())
        try:
            run_ffmpeg_command([
                get_ffmpeg_path(), "-y",
                "-f", "f32le", "-ar", str(self.track.sample_rate), "-ac", "1",
                "-i", str(pcm_path),
                str(wav_path),
            ])
            self._process = subprocess.Popen(
                [ffplay_path, "-nodisp", "-autoexit", "-loglevel", "error", str(wav_path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            self.stop()
            raise PlaybackUnavailableError(f"Could not start playback: {e}") from e

    def stop(self) -> None:
        if self._process is not None:
            if self._process.poll() is None:
                self._process.terminate()
                try:
                    self._process.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    self._process.kill()
                    self._process.wait()
            self._process = None
        if self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            self._work_dir = None

    @property
    def is_active(self) -> bool:
        return self._process is not None and self._process.poll() is None


StreamFactory = Callable[[AudioTrack], PlaybackStream]


class AudioContext:
    """
    Owns the playback clock and the single active playback stream.

    `current_time` is a monotonic clock in seconds since the context was created.
    """

    def __init__(
        self,
        stream_factory: StreamFactory = FfplayStream,
        clock: Callable[[], float] = time.monotonic,
        sample_rate: Optional[int] = None,
    ):
        self.stream_factory = stream_factory
        self.sample_rate = sample_rate or settings.AUDIO_SAMPLE_RATE
        self._clock = clock
        self._origin = clock()
        self._active: Optional[PlaybackStream] = None
        self._lock = threading.Lock()
        self.closed = False

    @property
    def current_time(self) -> float:
        return self._clock() - self._origin

    def play(self, track: AudioTrack) -> PlaybackStream:
        """Start playing `track`, stopping whatever was playing before."""
        if self.closed:
            raise PlaybackUnavailableError("Audio context is closed")
        with self._lock:
            self._stop_active()
            stream = self.stream_factory(track)
            stream.start()
            self._active = stream
            logger.debug(f"Started playback of {track.duration:.2f}s track")
            return stream

    def stop(self, stream: Optional[PlaybackStream] = None) -> None:
        """Stop the active stream (or only `stream` if it is still the active one). Idempotent."""
        with self._lock:
            if stream is None or stream is self._active:
                self._stop_active()

    def _stop_active(self) -> None:
        if self._active is not None:
            self._active.stop()
            self._active = None

    def close(self) -> None:
        self.stop()
        self.closed = True


_context: Optional[AudioContext] = None
_ref_count = 0
_registry_lock = threading.Lock()


def acquire_audio_context(factory: Callable[[], AudioContext] = AudioContext) -> AudioContext:
    """Return the shared audio context, creating it on first use."""
    global _context, _ref_count
    with _registry_lock:
        if _context is None:
            _context = factory()
            logger.info("Audio context created")
        _ref_count += 1
        return _context


def release_audio_context() -> None:
    """Drop one reference; the context is closed when no consumer is left."""
    global _context, _ref_count
    with _registry_lock:
        if _context is None:
            return
        _ref_count = max(0, _ref_count - 1)
        if _ref_count == 0:
            _context.close()
            _context = None
            logger.info("Audio context released")
