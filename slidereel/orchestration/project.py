"""
In-memory project session: the ordered slide deck and the subtitle style.

Slides are immutable; every edit swaps in a new instance under the lock, so
readers (exports, frame previews) always see a consistent snapshot.
"""
import logging
from threading import Lock
from typing import Iterable, List, Optional, Tuple

from slidereel.models import Slide, SubtitleStyle

logger = logging.getLogger(__name__)


class ProjectSession:
    """Holds the slides and subtitle style being edited."""

    def __init__(self, slides: Optional[Iterable[Slide]] = None, style: Optional[SubtitleStyle] = None):
        self._slides: List[Slide] = list(slides or [])
        self._style = style or SubtitleStyle()
        self.lock = Lock()

    def add_slides(self, image_blobs: Iterable[bytes]) -> List[Slide]:
        """Append one new slide per image, with no script or audio yet."""
        created = [Slide(image_bytes=data) for data in image_blobs]
        with self.lock:
            self._slides.extend(created)
        logger.info(f"Added {len(created)} slides (total: {len(self._slides)})")
        return created

    def list_slides(self) -> List[Slide]:
        with self.lock:
            return list(self._slides)

    def snapshot(self) -> Tuple[Tuple[Slide, ...], SubtitleStyle]:
        """Slides and style as they are right now, for an export."""
        with self.lock:
            return tuple(self._slides), self._style

    def get_slide(self, slide_id: str) -> Optional[Slide]:
        with self.lock:
            for slide in self._slides:
                if slide.id == slide_id:
                    return slide
        return None

    def update_slide(self, slide_id: str, **fields) -> Optional[Slide]:
        """Replace a slide with an updated copy. Returns None for an unknown id."""
        with self.lock:
            for index, slide in enumerate(self._slides):
                if slide.id == slide_id:
                    new_slide = slide.updated(**fields)
                    self._slides[index] = new_slide
                    return new_slide
        logger.warning(f"Update for unknown slide {slide_id}")
        return None

    def remove_slide(self, slide_id: str) -> bool:
        with self.lock:
            before = len(self._slides)
            self._slides = [s for s in self._slides if s.id != slide_id]
            removed = len(self._slides) < before
        if removed:
            logger.info(f"Removed slide {slide_id}")
        return removed

    @property
    def style(self) -> SubtitleStyle:
        with self.lock:
            return self._style

    @style.setter
    def style(self, style: SubtitleStyle) -> None:
        with self.lock:
            self._style = style
