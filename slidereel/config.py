import os
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings

# This is the root directory of *entire* project
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """
    Main application settings. Loads from .env file.
    """

    # --- Project Paths ---
    ASSETS_PATH: Path = PROJECT_ROOT / "assets"
    FONTS_PATH: Path = ASSETS_PATH / "fonts"
    JOBS_OUTPUT_PATH: Path = PROJECT_ROOT / "jobs"

    # --- API Keys (Loaded from .env) ---
    OPENAI_API_KEY: str = "sk-..." # Default,

    # --- Narration service ---
    OPENAI_SCRIPT_MODEL: str = "gpt-4o-mini"
    OPENAI_TTS_MODEL: str = "gpt-4o-mini-tts"
    NARRATION_LANGUAGE: str = "English"
    DEFAULT_VOICE: str = "onyx"

    # --- Video & Audio Settings ---
    VIDEO_FPS: int = 30
    VIDEO_CODEC: str = "libx264"
    VIDEO_CODEC_PARAMS: List[str] = ["-preset", "veryfast", "-crf", "23"]
    AUDIO_SAMPLE_RATE: int = 44100
    AUDIO_BITRATE: str = "192k"
    FFMPEG_BINARY: Optional[str] = None  # None -> bundled imageio-ffmpeg binary
    FFPLAY_BINARY: str = "ffplay"

    # --- Export behaviour ---
    STILL_SLIDE_DURATION: float = 3.0  # seconds shown for a slide without narration audio
    PROGRESS_FRAME_INTERVAL: int = 30

    # --- Subtitle layout ---
    LAYOUT_REFERENCE_DIMENSION: int = 720
    SUBTITLE_MAX_CHARS_PORTRAIT: int = 20
    SUBTITLE_MAX_CHARS_LANDSCAPE: int = 45
    DEFAULT_FONT_FAMILY: str = "Inter"

    # --- Preview ---
    PREVIEW_FONT_CORRECTION: float = 0.95  # interactive display only, never exported
    PREVIEW_TICK_SECONDS: float = 1 / 60

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = PROJECT_ROOT / ".env"
        case_sensitive = False

settings = Settings()
