"""
Decoding of generated speech audio into in-memory sample tracks.
"""
import logging
import tempfile
from pathlib import Path
from typing import Optional

import numpy as np
from moviepy import AudioFileClip

from slidereel.config import settings
from slidereel.errors import AudioDecodeError
from slidereel.models import AudioTrack

logger = logging.getLogger(__name__)


def decode_audio(audio_bytes: bytes, sample_rate: Optional[int] = None, suffix: str = ".mp3") -> AudioTrack:
    """
    Decode encoded audio (mp3/wav/...) into a mono AudioTrack.

    Args:
        audio_bytes: Encoded audio as returned by the speech service.
        sample_rate: Target sample rate, defaults to AUDIO_SAMPLE_RATE.
        suffix: File extension hint for the decoder.

    Returns:
        The decoded track.

    Raises:
        AudioDecodeError: empty input or undecodable data.
    """
    if not audio_bytes:
        raise AudioDecodeError("No audio data to decode")
    sample_rate = sample_rate or settings.AUDIO_SAMPLE_RATE

    with tempfile.TemporaryDirectory(prefix="slidereel_audio_") as tmp_dir:
        audio_path = Path(tmp_dir) / f"speech{suffix}"
        audio_path.write_bytes(audio_bytes)

        clip = None
        try:
            clip = AudioFileClip(str(audio_path), fps=sample_rate)
            samples = clip.to_soundarray(fps=sample_rate)
        except Exception as e:
            logger.error(f"Audio decoding failed: {e}", exc_info=True)
            raise AudioDecodeError(f"Could not decode audio: {e}") from e
        finally:
            if clip is not None:
                clip.close()

    samples = np.asarray(samples, dtype=np.float32)
    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    track = AudioTrack(samples=samples, sample_rate=sample_rate)
    logger.info(f"Decoded {len(audio_bytes)} bytes of audio into {track.duration:.2f}s @ {sample_rate}Hz")
    return track
