"""
Resolution independent subtitle metrics.

Style values are defined against a 720 pixel reference. Every renderer (the
exporter and the interactive preview) must go through these functions so the
same style produces the same proportions at any output size.
"""
from typing import NamedTuple, Optional

from slidereel.config import settings
from slidereel.models import SubtitleStyle


class ScaledFont(NamedTuple):
    font_size_px: float
    padding_x_px: float
    padding_y_px: float


def scale_factor(width: Optional[float], height: Optional[float]) -> float:
    """
    Scale of an output surface relative to the 720 pixel reference.

    Uses the smaller dimension so portrait and landscape outputs keep the same
    proportions. An unmeasured surface (zero or missing size) falls back to the
    reference itself so text never collapses to zero.
    """
    reference = settings.LAYOUT_REFERENCE_DIMENSION
    if not width or not height or width <= 0 or height <= 0:
        return 1.0
    return min(width, height) / reference


def scaled_font(style: SubtitleStyle, scale: float) -> ScaledFont:
    font_size = style.font_size * scale
    return ScaledFont(
        font_size_px=font_size,
        padding_x_px=font_size * 0.5,
        padding_y_px=font_size * 0.25,
    )


def max_chars_for(width: int, height: int) -> int:
    """Characters per subtitle line: narrow (portrait) outputs wrap sooner."""
    if width < height:
        return settings.SUBTITLE_MAX_CHARS_PORTRAIT
    return settings.SUBTITLE_MAX_CHARS_LANDSCAPE
