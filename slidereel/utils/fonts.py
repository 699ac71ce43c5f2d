import logging
from functools import lru_cache
from pathlib import Path
from typing import List

from PIL import ImageFont

from slidereel.config import settings

logger = logging.getLogger(__name__)

# Used when the requested family is not installed anywhere
FALLBACK_SYSTEM_FONTS = ["DejaVuSans-Bold.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf"]


def _candidate_files(family: str) -> List[str]:
    compact = family.replace(" ", "")
    return [
        f"{compact}-Bold.ttf",
        f"{family}-Bold.ttf",
        f"{compact}-Bold.otf",
        f"{compact}.ttf",
        f"{family}.ttf",
        f"{compact}.otf",
    ]


@lru_cache(maxsize=64)
def load_font(family: str, size: int) -> ImageFont.FreeTypeFont:
    """
    Load a bold subtitle font of the given pixel size.

    Lookup order: FONTS_PATH, system font directories, then Pillow's built-in font.
    """
    size = max(1, int(size))
    fonts_dir = Path(settings.FONTS_PATH)

    for name in _candidate_files(family):
        font_path = fonts_dir / name
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size)
            except OSError as e:
                logger.warning(f"Could not load font file {font_path}: {e}")

    # PIL resolves bare file names against the platform font directories
    for name in _candidate_files(family) + FALLBACK_SYSTEM_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue

    logger.warning(f"Font family '{family}' not found in {fonts_dir} or system fonts. Falling back to default font.")
    return ImageFont.load_default(size=size)
