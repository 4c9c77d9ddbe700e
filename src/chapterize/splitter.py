from __future__ import annotations

import logging
import re
from typing import Iterable

from .chapters import SPLIT_TITLE_TEMPLATE, Chapter

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHAPTER_CHARS = 15_000
DEFAULT_SPLIT_PART_CHARS = 5_000
DEFAULT_SPLIT_LOOKAHEAD = 200

_PARAGRAPH_BREAK = re.compile(r"\n[ \t\r　]*\n")
_SENTENCE_BREAK = re.compile(r"[。！？.!?](?=\s)")


def find_split_point(text: str, target: int, end: int, lookahead: int = DEFAULT_SPLIT_LOOKAHEAD) -> int:
    """
    Choose where to cut ``text`` near ``target`` (never past ``end``).

    Within ``lookahead`` characters after ``target`` prefer the end of a
    paragraph break, then the end of a sentence terminator followed by
    whitespace; otherwise cut exactly at ``target``.
    """
    if target >= end:
        return end
    window_end = min(end, target + lookahead)
    paragraph = _PARAGRAPH_BREAK.search(text, target, window_end)
    if paragraph is not None and paragraph.end() < end:
        return paragraph.end()
    # One extra character so a terminator on the window edge can see its space.
    sentence = _SENTENCE_BREAK.search(text, target, min(end, window_end + 1))
    if sentence is not None and sentence.end() <= window_end and sentence.end() < end:
        return sentence.end()
    return target


def split_offsets(
    text: str,
    start: int,
    end: int,
    *,
    part_chars: int = DEFAULT_SPLIT_PART_CHARS,
    lookahead: int = DEFAULT_SPLIT_LOOKAHEAD,
) -> list[tuple[int, int]]:
    """Return consecutive ``[start, end)`` ranges tiling ``text[start:end]``."""
    if part_chars <= 0:
        raise ValueError("part_chars must be positive")
    ranges: list[tuple[int, int]] = []
    cursor = start
    while cursor < end:
        cut = find_split_point(text, min(cursor + part_chars, end), end, lookahead)
        ranges.append((cursor, cut))
        cursor = cut
    return ranges


def split_large_chapter(
    chapter: Chapter,
    text: str,
    *,
    max_chars: int = DEFAULT_MAX_CHAPTER_CHARS,
    part_chars: int = DEFAULT_SPLIT_PART_CHARS,
    lookahead: int = DEFAULT_SPLIT_LOOKAHEAD,
) -> list[Chapter]:
    if chapter.length <= max_chars:
        return [chapter]
    ranges = split_offsets(
        text,
        chapter.start_offset,
        chapter.end_offset,
        part_chars=part_chars,
        lookahead=lookahead,
    )
    parts = [
        Chapter.create(
            SPLIT_TITLE_TEMPLATE.format(title=chapter.title, index=index),
            part_start,
            part_end,
            chapter.document_id,
        )
        for index, (part_start, part_end) in enumerate(ranges, start=1)
    ]
    logger.debug("Split %r (%d chars) into %d parts", chapter.title, chapter.length, len(parts))
    return parts


def split_chapters(
    chapters: Iterable[Chapter],
    text: str,
    *,
    max_chars: int = DEFAULT_MAX_CHAPTER_CHARS,
    part_chars: int = DEFAULT_SPLIT_PART_CHARS,
    lookahead: int = DEFAULT_SPLIT_LOOKAHEAD,
) -> list[Chapter]:
    result: list[Chapter] = []
    for chapter in chapters:
        result.extend(
            split_large_chapter(
                chapter,
                text,
                max_chars=max_chars,
                part_chars=part_chars,
                lookahead=lookahead,
            )
        )
    return result


__all__ = [
    "DEFAULT_MAX_CHAPTER_CHARS",
    "DEFAULT_SPLIT_LOOKAHEAD",
    "DEFAULT_SPLIT_PART_CHARS",
    "find_split_point",
    "split_chapters",
    "split_large_chapter",
    "split_offsets",
]
