import logging
import subprocess
from typing import List

import imageio_ffmpeg

from slidereel.config import settings

logger = logging.getLogger(__name__)


def get_ffmpeg_path() -> str:
    """Get the path to ffmpeg executable."""
    if settings.FFMPEG_BINARY:
        return settings.FFMPEG_BINARY
    return imageio_ffmpeg.get_ffmpeg_exe()


def run_ffmpeg_command(command: List[str]) -> None:
    """Helper function to run an FFmpeg command."""
    try:
        logger.debug(f"Running command: {' '.join(command)}")
        subprocess.run(command, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        logger.error("FFmpeg command failed!", exc_info=True)
        logger.error(f"FFmpeg STDERR: {e.stderr}")
        raise
