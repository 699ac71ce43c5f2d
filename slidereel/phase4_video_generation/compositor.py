"""
Renders single video frames: the slide image letterboxed onto the output
canvas plus the styled subtitle chunk for a given playback progress.

The same functions back the offline exporter and the interactive preview.
Only the preview may pass `preview=True`, which applies the cosmetic font
correction; exported frames always use the unmodified layout.
"""
import io
import logging
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw

from slidereel.config import settings
from slidereel.errors import RenderError
from slidereel.models import Slide, SubtitleStyle
from slidereel.phase1_subtitle_timing.layout import max_chars_for, scale_factor, scaled_font
from slidereel.phase1_subtitle_timing.text_chunker import chunk_text
from slidereel.phase1_subtitle_timing.timeline import chunk_at
from slidereel.utils.fonts import load_font

logger = logging.getLogger(__name__)

LETTERBOX_COLOR = (0, 0, 0)
LINE_HEIGHT = 1.2
SHADOW_OPACITY_THRESHOLD = 0.3
SHADOW_COLOR = (0, 0, 0, 204)


def prepare_background(slide: Slide, width: int, height: int) -> Image.Image:
    """
    Decode the slide image and fit it inside a width x height canvas.

    The image keeps its aspect ratio, is centered, and is letterboxed on black.
    It is never cropped.

    Raises:
        RenderError: the image bytes are missing or cannot be decoded.
    """
    if not slide.image_bytes:
        raise RenderError(f"Slide {slide.id} has no image", slide_id=slide.id)
    try:
        with Image.open(io.BytesIO(slide.image_bytes)) as source:
            source.load()
            image = source.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise RenderError(f"Could not decode image for slide {slide.id}: {e}", slide_id=slide.id) from e

    canvas = Image.new("RGB", (width, height), LETTERBOX_COLOR)
    fit = min(width / image.width, height / image.height)
    fitted_size = (max(1, round(image.width * fit)), max(1, round(image.height * fit)))
    if fitted_size != image.size:
        image = image.resize(fitted_size, Image.Resampling.LANCZOS)

    offset = ((width - fitted_size[0]) // 2, (height - fitted_size[1]) // 2)
    canvas.paste(image, offset)
    return canvas


def placeholder_background(width: int, height: int) -> Image.Image:
    """Substitute canvas for a slide whose image failed to render."""
    return Image.new("RGB", (width, height), LETTERBOX_COLOR)


def _rgba(color: str, opacity: float = 1.0) -> Tuple[int, int, int, int]:
    r, g, b = ImageColor.getrgb(color)[:3]
    return r, g, b, round(max(0.0, min(opacity, 1.0)) * 255)


def draw_subtitle(
    canvas: Image.Image,
    caption: str,
    style: SubtitleStyle,
    preview: bool = False,
) -> Image.Image:
    """
    Draw a single, non-wrapping caption line with its background box onto `canvas`.

    The box is centered horizontally and its vertical center sits at
    `style.vertical_position` percent of the canvas height. A caption wider than
    the frame is drawn past its (frame-wide) box rather than wrapped.
    """
    width, height = canvas.size
    scale = scale_factor(width, height)
    if preview:
        scale *= settings.PREVIEW_FONT_CORRECTION
    metrics = scaled_font(style, scale)

    font = load_font(style.font_family, round(metrics.font_size_px))
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    left, top, right, bottom = draw.textbbox((0, 0), caption, font=font)
    text_width = right - left
    line_height = metrics.font_size_px * LINE_HEIGHT

    box_width = min(text_width + 2 * metrics.padding_x_px, width)
    box_height = line_height + 2 * metrics.padding_y_px
    center_x = width / 2
    center_y = height * style.vertical_position / 100

    box = (
        center_x - box_width / 2,
        center_y - box_height / 2,
        center_x + box_width / 2,
        center_y + box_height / 2,
    )
    if style.background_opacity > 0:
        draw.rounded_rectangle(
            box,
            radius=metrics.padding_y_px,
            fill=_rgba(style.background_color, style.background_opacity),
        )

    # Center the glyphs on the box center regardless of font bearings
    text_x = center_x - text_width / 2 - left
    text_y = center_y - (bottom - top) / 2 - top

    if style.background_opacity < SHADOW_OPACITY_THRESHOLD:
        shadow_offset = max(1, round(2 * scale))
        draw.text((text_x, text_y + shadow_offset), caption, font=font, fill=SHADOW_COLOR)
    draw.text((text_x, text_y), caption, font=font, fill=_rgba(style.color))

    return Image.alpha_composite(canvas.convert("RGBA"), overlay).convert("RGB")


def current_caption(slide: Slide, width: int, height: int, progress: float) -> Optional[str]:
    """Chunk of the slide script visible at `progress` for this output size."""
    chunks = chunk_text(slide.script, max_chars_for(width, height))
    return chunk_at(chunks, progress)


def render_caption_frame(
    slide: Slide,
    style: SubtitleStyle,
    width: int,
    height: int,
    caption: Optional[str],
    preview: bool = False,
    background: Optional[Image.Image] = None,
) -> np.ndarray:
    """Render a frame with an explicit caption (or none) over the slide background."""
    canvas = background.copy() if background is not None else prepare_background(slide, width, height)
    if caption:
        canvas = draw_subtitle(canvas, caption, style, preview=preview)
    return np.asarray(canvas.convert("RGB"), dtype=np.uint8)


def render_frame(
    slide: Slide,
    style: SubtitleStyle,
    width: int,
    height: int,
    progress: float,
    include_subtitles: bool,
    preview: bool = False,
    background: Optional[Image.Image] = None,
) -> np.ndarray:
    """
    Render one output frame for `slide` at playback `progress`.

    Args:
        slide: Slide to render.
        style: Subtitle style (values relative to the 720 pixel reference).
        width: Output width in pixels.
        height: Output height in pixels.
        progress: Elapsed / duration of the slide audio, supplied by the caller's clock.
        include_subtitles: When False only the background is drawn.
        preview: Apply the interactive-only font correction. Never set for exports.
        background: Optional canvas from `prepare_background` to skip decoding the image again.

    Returns:
        (height, width, 3) uint8 RGB array.

    Raises:
        RenderError: when no background is given and the slide image cannot be decoded.
    """
    caption = current_caption(slide, width, height, progress) if include_subtitles else None
    return render_caption_frame(
        slide, style, width, height, caption, preview=preview, background=background
    )
