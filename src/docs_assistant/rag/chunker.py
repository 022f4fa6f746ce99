"""Word-window chunking for RAG indexing.

Documents are split on whitespace into consecutive windows of a fixed number
of words. The split is deterministic, so re-chunking stored content always
reproduces the stored chunk positions.
"""

import logging
from typing import List


logger = logging.getLogger(__name__)


def split_into_chunks(text: str, words_per_chunk: int) -> List[str]:
    """Split text into chunks of at most ``words_per_chunk`` words.

    Words keep their original order and are joined with single spaces; the
    last chunk may be shorter. Empty or whitespace-only text yields no chunks.

    Args:
        text: Document text
        words_per_chunk: Window size in words

    Returns:
        List of chunk strings

    Raises:
        ValueError: If words_per_chunk is not positive
    """
    if words_per_chunk <= 0:
        raise ValueError(f"words_per_chunk must be positive, got {words_per_chunk}")

    words = text.split() if text else []
    chunks = [
        " ".join(words[start:start + words_per_chunk])
        for start in range(0, len(words), words_per_chunk)
    ]
    logger.debug(f"Split {len(words)} words into {len(chunks)} chunks")
    return chunks


def make_snippet(chunk: str, max_chars: int = 160) -> str:
    """Bounded prefix of a chunk, shown next to citations."""
    return chunk[:max_chars]
