from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from .patterns import DEFAULT_PATTERNS, ChapterPattern, compile_patterns, match_heading
from .validation import is_denylisted

LANG_ZH = "zh-CN"
LANG_EN = "en-US"
_LANGUAGE_SAMPLE = 10
_HAN_THRESHOLD = 2


@dataclass(frozen=True, slots=True)
class TextParagraph:
    text: str
    start: int
    end: int
    language: str
    is_chapter_title: bool = False

    def relative_span(self, total: int) -> tuple[float, float]:
        if total <= 0:
            return (0.0, 0.0)
        return (self.start / total, self.end / total)


def _is_han(char: str) -> bool:
    code = ord(char)
    return 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF or 0x20000 <= code <= 0x2A6DF


def detect_language(text: str) -> str:
    """Guess ``zh-CN`` or ``en-US`` from the first few characters."""
    sample = text[:_LANGUAGE_SAMPLE]
    han = sum(1 for char in sample if _is_han(char))
    return LANG_ZH if han > _HAN_THRESHOLD else LANG_EN


def _iter_lines_with_positions(text: str) -> Iterator[tuple[str, int, int]]:
    cursor = 0
    for raw in text.splitlines(keepends=True):
        line = raw.rstrip("\r\n")
        yield (line, cursor, cursor + len(line))
        cursor += len(raw)


def split_paragraphs(
    text: str,
    patterns: Sequence[ChapterPattern] | Iterable[ChapterPattern] = DEFAULT_PATTERNS,
) -> list[TextParagraph]:
    """
    One paragraph per non-blank line, trimmed, with offsets into ``text``.

    Lines that read as chapter headings are flagged so callers can style or
    announce them differently.
    """
    compiled = compile_patterns(tuple(patterns))
    paragraphs: list[TextParagraph] = []
    for line, start, _end in _iter_lines_with_positions(text):
        stripped = line.strip()
        if not stripped:
            continue
        lead = len(line) - len(line.lstrip())
        para_start = start + lead
        para_end = para_start + len(stripped)
        is_title = match_heading(line, compiled) is not None and not is_denylisted(stripped)
        paragraphs.append(
            TextParagraph(
                text=stripped,
                start=para_start,
                end=para_end,
                language=detect_language(stripped),
                is_chapter_title=is_title,
            )
        )
    return paragraphs


__all__ = ["LANG_EN", "LANG_ZH", "TextParagraph", "detect_language", "split_paragraphs"]
