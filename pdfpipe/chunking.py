# pdfpipe/chunking.py
"""
Chunking engine.

Two stateless policies:
 - chunk_text: word-safe, overlapping character windows (text layer pages)
 - chunk_bytes: byte-bounded, non-overlapping slices (very large markdown bodies)

Chunking is purely size driven; no sentence or semantic segmentation.
"""
import re
from typing import List

from pdfpipe.errors import InvalidChunkParams

DEFAULT_CHUNK_SIZE = 1600
DEFAULT_OVERLAP = 200
DEFAULT_BYTE_SIZE = 200_000

# the right edge may only snap back into the last 40% of a window
SNAP_WINDOW_START = 0.6

_WS_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def validate_chunk_params(size: int, overlap: int) -> None:
    if not isinstance(size, int) or not isinstance(overlap, int):
        raise InvalidChunkParams(f"size ({size!r}) and overlap ({overlap!r}) must be integers.")
    if size <= 0:
        raise InvalidChunkParams(f"chunk size ({size}) must be > 0.")
    if overlap < 0:
        raise InvalidChunkParams(f"chunk overlap ({overlap}) must be >= 0.")
    if overlap >= size:
        raise InvalidChunkParams(f"chunk overlap ({overlap}) must be < chunk size ({size}).")


def chunk_text(text: str, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> List[str]:
    """
    Split text into overlapping windows of at most `size` characters.

    A window that does not reach the end of the text has its right edge moved back
    to the last space inside the final 40% of the window so words are not cut.
    The next window starts `overlap` characters before the previous end (one more if
    that lands on a space), so neighbouring chunks share at least `overlap` characters.
    """
    validate_chunk_params(size, overlap)
    clean = normalize_whitespace(text)
    if not clean:
        return []

    chunks: List[str] = []
    length = len(clean)
    start = 0
    while start < length:
        end = min(start + size, length)

        if end < length:
            window_start = min(start + int(size * SNAP_WINDOW_START), end)
            last_space = clean.rfind(" ", window_start, end)
            if last_space > window_start:
                end = last_space

        piece = clean[start:end].strip()
        if piece:
            chunks.append(piece)

        if end >= length:
            break
        # always make progress, even when overlap is close to size
        next_start = max(0, end - overlap, start + 1)
        # a window starting on a space loses it to strip(); take one more character
        if overlap and clean[next_start] == " " and next_start - 1 > start:
            next_start -= 1
        start = next_start

    return chunks


def chunk_bytes(text: str, byte_size: int = DEFAULT_BYTE_SIZE) -> List[str]:
    """
    Split text into non-overlapping pieces of at most `byte_size` UTF-8 bytes.

    Boundaries that fall inside a multi-byte character are moved back to the start
    of that character, so every piece decodes on its own.
    """
    if not isinstance(byte_size, int) or byte_size <= 0:
        raise InvalidChunkParams(f"byte size ({byte_size!r}) must be a positive integer.")
    if not text:
        return []

    data = text.encode("utf-8")
    total = len(data)
    pieces: List[str] = []
    start = 0
    while start < total:
        end = min(start + byte_size, total)
        while start < end < total and _is_continuation(data[end]):
            end -= 1
        if end == start:
            # a single character wider than byte_size: emit it whole
            end = start + 1
            while end < total and _is_continuation(data[end]):
                end += 1
        pieces.append(data[start:end].decode("utf-8"))
        start = end
    return pieces


def _is_continuation(byte: int) -> bool:
    # UTF-8 continuation bytes look like 10xxxxxx
    return byte & 0xC0 == 0x80
