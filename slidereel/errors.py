"""
Exception hierarchy shared by the rendering, export and narration layers.
"""


class SlideReelError(Exception):
    """Base class for all SlideReel errors."""


class ChunkingError(SlideReelError):
    """Reserved. Chunking has no failure path, only edge-case fallbacks."""


class TimelineError(SlideReelError):
    """Raised when the timeline mapper is called with a meaningless progress value."""


class RenderError(SlideReelError):
    """A slide could not be rendered (e.g. its image does not decode)."""

    def __init__(self, message: str, slide_id: str = ""):
        super().__init__(message)
        self.slide_id = slide_id


class EncodeError(SlideReelError):
    """The underlying ffmpeg encoder/muxer failed."""


class ExportError(SlideReelError):
    """An export failed. The message is safe to show to users; the cause is chained."""


class ExportInProgressError(ExportError):
    """Another export is already running in this process."""


class ExportCancelledError(ExportError):
    """The export was cancelled by the caller between slides."""


class NarrationError(SlideReelError):
    """The narration model returned empty or malformed output."""


class AudioDecodeError(SlideReelError):
    """Speech audio bytes could not be decoded into samples."""


class PlaybackUnavailableError(SlideReelError):
    """No audio output device/player is available for preview playback."""
