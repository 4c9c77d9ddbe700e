from __future__ import annotations

from dataclasses import dataclass

DEFAULT_LARGE_FILE_THRESHOLD = 500_000
DEFAULT_CHUNK_SIZE = 300_000
DEFAULT_CHUNK_LOOKBACK = 100
_LINE_BREAKS = ("\n", "\r")


@dataclass(frozen=True)
class ChunkSpan:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def plan_chunks(
    text: str,
    *,
    threshold: int = DEFAULT_LARGE_FILE_THRESHOLD,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    lookback: int = DEFAULT_CHUNK_LOOKBACK,
) -> list[ChunkSpan]:
    """
    Partition ``text`` into scan windows.

    Small texts get one window. Larger ones are cut every ``chunk_size``
    characters; each window after the first starts just after the closest
    line break found at most ``lookback`` characters before its nominal
    start, so a heading cut by the seam is scanned whole by the next window.
    """
    length = len(text)
    if length <= threshold:
        return [ChunkSpan(0, length)]
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    chunks: list[ChunkSpan] = []
    offset = 0
    while offset < length:
        end = min(offset + chunk_size, length)
        start = offset
        if offset > 0:
            start = _line_start_before(text, offset, lookback)
        chunks.append(ChunkSpan(start, end))
        offset = end
    return chunks


def _line_start_before(text: str, offset: int, lookback: int) -> int:
    floor = max(0, offset - max(0, lookback))
    idx = offset
    while idx > floor:
        if text[idx - 1] in _LINE_BREAKS:
            return idx
        idx -= 1
    return offset


__all__ = [
    "ChunkSpan",
    "DEFAULT_CHUNK_LOOKBACK",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_LARGE_FILE_THRESHOLD",
    "plan_chunks",
]
