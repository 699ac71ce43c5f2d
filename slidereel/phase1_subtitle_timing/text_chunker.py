"""
Word-boundary safe splitting of narration text into subtitle-sized chunks.
"""
from typing import List, Optional


def chunk_text(text: Optional[str], max_chars: int) -> List[str]:
    """
    Split narration text into display chunks of at most `max_chars` characters.

    Words are packed greedily with single spaces. A word is never split: a word
    longer than `max_chars` becomes its own (oversized) chunk.

    Args:
        text: Narration script. Any run of whitespace separates words.
        max_chars: Maximum characters per chunk, separating spaces included.

    Returns:
        Ordered list of non-empty chunks. Empty for blank input.
    """
    if not text:
        return []

    max_chars = max(1, max_chars)
    chunks: List[str] = []
    current = ""

    for word in text.split():
        # +1 for the joining space when the chunk already has content
        candidate_length = len(current) + (1 if current else 0) + len(word)
        if candidate_length <= max_chars:
            current = f"{current} {word}" if current else word
        else:
            if current:
                chunks.append(current)
            current = word

    if current:
        chunks.append(current)

    return chunks
