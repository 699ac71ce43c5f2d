"""
Maps playback progress to the subtitle chunk that should be visible.
"""
import math
from typing import Optional, Sequence

from slidereel.errors import TimelineError


def select_chunk(chunks: Sequence[str], progress: float) -> int:
    """
    Select the chunk index for a playback progress fraction.

    Chunks are weighted by character count rather than given equal time, so
    long chunks stay on screen proportionally longer. When the running
    character count lands exactly on the target offset the earlier chunk wins.

    Args:
        chunks: Chunk sequence produced by `chunk_text`.
        progress: Elapsed / duration of the slide audio. Values outside [0, 1] are clamped.

    Returns:
        Index into `chunks`. 0 for an empty sequence (caller shows no subtitle).
    """
    if progress is None or math.isnan(progress):
        raise TimelineError(f"Progress must be a number, got {progress!r}")
    if not chunks:
        return 0
    if progress >= 1:
        return len(chunks) - 1
    if progress <= 0:
        return 0

    total_length = sum(len(chunk) for chunk in chunks)
    target_offset = progress * total_length

    running_length = 0
    for index, chunk in enumerate(chunks):
        running_length += len(chunk)
        if running_length >= target_offset:
            return index

    return len(chunks) - 1


def chunk_at(chunks: Sequence[str], progress: float) -> Optional[str]:
    """Text of the chunk visible at `progress`, or None when there are no chunks."""
    if not chunks:
        return None
    return chunks[select_chunk(chunks, progress)]
