"""
Text Chunking

Recursive character splitter: splits on the coarsest separator present
(paragraphs, then lines, then words, then characters) and merges the
pieces back into windows of at most chunk_size characters, carrying up
to `overlap` characters from the end of one window into the next.
"""

from typing import List, Optional

DEFAULT_SEPARATORS = ["\n\n", "\n", " ", ""]


def split_chunks(
    text: str,
    chunk_size: int = 512,
    overlap: int = 20,
    separators: Optional[List[str]] = None,
) -> List[str]:
    """
    Split text into overlapping chunks.

    Raises:
        ValueError: If overlap is not smaller than chunk_size
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap >= chunk_size:
        raise ValueError(f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})")
    if not text:
        return []
    return _split(text, separators or DEFAULT_SEPARATORS, chunk_size, overlap)


def _split(text: str, separators: List[str], chunk_size: int, overlap: int) -> List[str]:
    separator = separators[-1]
    remaining: List[str] = []
    for i, candidate in enumerate(separators):
        if candidate == "":
            separator = candidate
            break
        if candidate in text:
            separator = candidate
            remaining = separators[i + 1:]
            break

    pieces = text.split(separator) if separator else list(text)
    pieces = [p for p in pieces if p]

    chunks: List[str] = []
    small: List[str] = []
    for piece in pieces:
        if len(piece) < chunk_size:
            small.append(piece)
            continue
        if small:
            chunks.extend(_merge(small, separator, chunk_size, overlap))
            small = []
        if remaining:
            chunks.extend(_split(piece, remaining, chunk_size, overlap))
        else:
            chunks.append(piece)

    if small:
        chunks.extend(_merge(small, separator, chunk_size, overlap))
    return chunks


def _merge(pieces: List[str], separator: str, chunk_size: int, overlap: int) -> List[str]:
    """Greedily pack pieces into windows, keeping a tail of at most `overlap` chars."""
    sep_len = len(separator)
    chunks: List[str] = []
    window: List[str] = []
    total = 0

    for piece in pieces:
        length = len(piece)
        if total + length + (sep_len if window else 0) > chunk_size and window:
            chunk = separator.join(window).strip()
            if chunk:
                chunks.append(chunk)
            while total > overlap or (
                total + length + (sep_len if window else 0) > chunk_size and total > 0
            ):
                total -= len(window[0]) + (sep_len if len(window) > 1 else 0)
                window.pop(0)
        window.append(piece)
        total += length + (sep_len if len(window) > 1 else 0)

    chunk = separator.join(window).strip()
    if chunk:
        chunks.append(chunk)
    return chunks
