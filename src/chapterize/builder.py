from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Sequence

from .chapters import FULL_CONTENT_TITLE, PART_TITLE_TEMPLATE, PREFACE_TITLE, Chapter
from .deadline import StopSignal
from .progress import SCAN_SHARE, ProgressReporter
from .scanner import BoundaryCandidate
from .splitter import DEFAULT_SPLIT_LOOKAHEAD, split_offsets

logger = logging.getLogger(__name__)

DEFAULT_BUILD_BATCH = 30
DEFAULT_MIN_CHAPTER_CHARS = 10


@dataclass
class BuildResult:
    chapters: list[Chapter] = field(default_factory=list)
    aborted: bool = False
    fallback: bool = False
    dropped: int = 0


@dataclass
class _Span:
    title: str
    start: int
    end: int


def fallback_chapter(text: str, document_id: str, title: str = FULL_CONTENT_TITLE) -> Chapter:
    """The single chapter covering the whole document."""
    return Chapter.create(title, 0, len(text), document_id)


def auto_segment(
    text: str,
    document_id: str,
    part_chars: int,
    *,
    lookahead: int = DEFAULT_SPLIT_LOOKAHEAD,
) -> list[Chapter]:
    """Cut a text without headings into ``Part N`` chapters of about ``part_chars``."""
    if not text:
        return [fallback_chapter(text, document_id)]
    ranges = split_offsets(text, 0, len(text), part_chars=part_chars, lookahead=lookahead)
    return [
        Chapter.create(PART_TITLE_TEMPLATE.format(index=index), start, end, document_id)
        for index, (start, end) in enumerate(ranges, start=1)
    ]


def _is_thin(text: str, start: int, end: int, min_chars: int) -> bool:
    return end - start < min_chars or not text[start:end].strip()


def plan_spans(
    text: str,
    boundaries: Sequence[BoundaryCandidate],
    *,
    min_chapter_chars: int = DEFAULT_MIN_CHAPTER_CHARS,
) -> tuple[list[_Span], int]:
    """
    Turn ordered boundaries into contiguous spans covering the whole text.

    Returns the spans and how many boundary chapters were merged away for
    being too short or blank. An empty list means "use the fallback".
    """
    length = len(text)
    offsets = [b for b in boundaries if 0 <= b.offset < length]
    if not offsets:
        return [], 0

    raw: list[_Span] = []
    for idx, boundary in enumerate(offsets):
        end = offsets[idx + 1].offset if idx + 1 < len(offsets) else length
        if end > boundary.offset:
            raw.append(_Span(boundary.title, boundary.offset, end))
    if not raw:
        return [], 0

    preface: _Span | None = None
    first_start = raw[0].start
    if first_start > 0:
        if text[:first_start].strip():
            preface = _Span(PREFACE_TITLE, 0, first_start)
        else:
            raw[0].start = 0

    kept: list[_Span] = []
    carry: int | None = None
    dropped = 0
    for span in raw:
        if _is_thin(text, span.start, span.end, min_chapter_chars):
            dropped += 1
            if carry is None:
                carry = span.start
            continue
        if carry is not None:
            span.start = carry
            carry = None
        kept.append(span)
    if carry is not None:
        if kept:
            kept[-1].end = length
        elif preface is not None:
            preface.end = length

    spans = ([preface] if preface is not None else []) + kept
    if not kept and preface is None:
        return [], dropped
    return spans, dropped


def build_chapters(
    text: str,
    boundaries: Sequence[BoundaryCandidate],
    document_id: str,
    *,
    stop: StopSignal | None = None,
    progress: ProgressReporter | None = None,
    batch_size: int = DEFAULT_BUILD_BATCH,
    min_chapter_chars: int = DEFAULT_MIN_CHAPTER_CHARS,
) -> BuildResult:
    stop = stop if stop is not None else StopSignal()
    batch_size = max(1, batch_size)
    spans, dropped = plan_spans(text, boundaries, min_chapter_chars=min_chapter_chars)
    if not spans:
        return BuildResult(chapters=[fallback_chapter(text, document_id)], fallback=True, dropped=dropped)

    result = BuildResult(dropped=dropped)
    total = len(spans)
    for batch_start in range(0, total, batch_size):
        if stop.should_stop():
            result.aborted = True
            break
        for span in spans[batch_start : batch_start + batch_size]:
            result.chapters.append(Chapter.create(span.title, span.start, span.end, document_id))
        if progress is not None:
            done = min(total, batch_start + batch_size)
            progress.report(
                "build",
                SCAN_SHARE + done / total * (100.0 - SCAN_SHARE),
                index=done,
                total=total,
            )

    if result.aborted:
        if not result.chapters:
            logger.info("Build stopped (%s) before any chapter; using fallback", stop.reason)
            result.chapters = [fallback_chapter(text, document_id)]
            result.fallback = True
        elif result.chapters[-1].end_offset != len(text):
            logger.info(
                "Build stopped (%s) after %d/%d chapters; last chapter runs to the end",
                stop.reason,
                len(result.chapters),
                total,
            )
            result.chapters[-1] = replace(result.chapters[-1], end_offset=len(text))
    if dropped:
        logger.debug("Merged %d short or blank chapter(s) into neighbours", dropped)
    return result


__all__ = [
    "BuildResult",
    "DEFAULT_BUILD_BATCH",
    "DEFAULT_MIN_CHAPTER_CHARS",
    "auto_segment",
    "build_chapters",
    "fallback_chapter",
    "plan_spans",
]
