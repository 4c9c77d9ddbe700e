from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from .builder import (
    DEFAULT_BUILD_BATCH,
    DEFAULT_MIN_CHAPTER_CHARS,
    auto_segment,
    build_chapters,
    fallback_chapter,
)
from .chapters import Chapter
from .chunking import (
    DEFAULT_CHUNK_LOOKBACK,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_LARGE_FILE_THRESHOLD,
    plan_chunks,
)
from .deadline import DEFAULT_TIMEOUT_SECONDS, Deadline, StopSignal
from .errors import PatternCompileError
from .patterns import DEFAULT_PATTERNS, LOOSE_PATTERNS, ChapterPattern, compile_patterns
from .progress import ProgressCallback, ProgressReporter
from .scanner import DEFAULT_SCAN_BATCH, BoundaryCandidate, scan_boundaries
from .splitter import (
    DEFAULT_MAX_CHAPTER_CHARS,
    DEFAULT_SPLIT_LOOKAHEAD,
    DEFAULT_SPLIT_PART_CHARS,
    split_chapters,
)
from .validation import (
    DEFAULT_DENSITY_COUNT,
    DEFAULT_DENSITY_MIN_GAP,
    DEFAULT_HEADER_ZONE_RATIO,
    ValidationRules,
    validate_candidates,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHAPTERIZE_"


@dataclass(slots=True)
class SegmentConfig:
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    large_file_threshold: int = DEFAULT_LARGE_FILE_THRESHOLD
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_lookback: int = DEFAULT_CHUNK_LOOKBACK
    scan_batch_lines: int = DEFAULT_SCAN_BATCH
    build_batch_size: int = DEFAULT_BUILD_BATCH
    min_chapter_chars: int = DEFAULT_MIN_CHAPTER_CHARS
    max_chapter_chars: int = DEFAULT_MAX_CHAPTER_CHARS
    split_part_chars: int = DEFAULT_SPLIT_PART_CHARS
    split_lookahead: int = DEFAULT_SPLIT_LOOKAHEAD
    density_count: int = DEFAULT_DENSITY_COUNT
    density_min_gap: int = DEFAULT_DENSITY_MIN_GAP
    header_zone_ratio: float = DEFAULT_HEADER_ZONE_RATIO
    allow_loose: bool = False
    auto_segment_chars: int | None = None
    force_auto: bool = False
    patterns: tuple[ChapterPattern, ...] = DEFAULT_PATTERNS

    def validation_rules(self) -> ValidationRules:
        return ValidationRules(
            density_count=self.density_count,
            density_min_gap=self.density_min_gap,
            header_zone_ratio=self.header_zone_ratio,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SegmentConfig":
        """Defaults overlaid with ``CHAPTERIZE_*`` variables; bad values are ignored."""
        env = os.environ if environ is None else environ
        config = cls()
        timeout = _env_float(env, "TIMEOUT", None)
        if timeout is not None:
            config.timeout_seconds = timeout if timeout > 0 else None
        for name, attr in (
            ("LARGE_FILE_THRESHOLD", "large_file_threshold"),
            ("CHUNK_SIZE", "chunk_size"),
            ("CHUNK_LOOKBACK", "chunk_lookback"),
            ("BUILD_BATCH", "build_batch_size"),
            ("MIN_CHAPTER_CHARS", "min_chapter_chars"),
            ("MAX_CHAPTER_CHARS", "max_chapter_chars"),
            ("SPLIT_PART_CHARS", "split_part_chars"),
            ("AUTO_SEGMENT_CHARS", "auto_segment_chars"),
        ):
            value = _env_int(env, name)
            if value is not None:
                setattr(config, attr, value)
        loose = env.get(f"{ENV_PREFIX}ALLOW_LOOSE")
        if loose is not None:
            config.allow_loose = loose.strip().lower() in {"1", "true", "yes", "on"}
        return config


def _env_int(env: Mapping[str, str], name: str) -> int | None:
    raw = env.get(f"{ENV_PREFIX}{name}")
    if not raw:
        return None
    try:
        parsed = int(raw)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _env_float(env: Mapping[str, str], name: str, default: float | None) -> float | None:
    raw = env.get(f"{ENV_PREFIX}{name}")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class SegmentationResult:
    document_id: str
    chapters: list[Chapter] = field(default_factory=list)
    stopped: str | None = None
    fallback: bool = False
    from_cache: bool = False
    candidate_count: int = 0
    elapsed: float = 0.0

    @property
    def degraded(self) -> bool:
        return self.stopped is not None

    def to_payload(self) -> dict[str, object]:
        return {
            "document_id": self.document_id,
            "chapters": [chapter.to_payload() for chapter in self.chapters],
            "stopped": self.stopped,
            "fallback": self.fallback,
            "from_cache": self.from_cache,
            "candidate_count": self.candidate_count,
            "elapsed": self.elapsed,
        }


def find_boundaries(
    text: str,
    config: SegmentConfig,
    stop: StopSignal,
    reporter: ProgressReporter | None = None,
) -> tuple[list[BoundaryCandidate], int, bool]:
    """Scan and validate; returns (boundaries, raw candidate count, aborted)."""
    chunks = plan_chunks(
        text,
        threshold=config.large_file_threshold,
        chunk_size=config.chunk_size,
        lookback=config.chunk_lookback,
    )
    rules = config.validation_rules()
    scan = scan_boundaries(
        text,
        compile_patterns(config.patterns),
        chunks=chunks,
        stop=stop,
        progress=reporter,
        batch_size=config.scan_batch_lines,
    )
    if scan.aborted:
        return [], len(scan.candidates), True
    boundaries = validate_candidates(scan.candidates, len(text), rules)
    candidate_count = len(scan.candidates)
    if boundaries or not config.allow_loose:
        return boundaries, candidate_count, False

    logger.info("No strict headings found; retrying with loose patterns")
    loose = scan_boundaries(
        text,
        compile_patterns(LOOSE_PATTERNS),
        chunks=chunks,
        stop=stop,
        progress=None,
        batch_size=config.scan_batch_lines,
    )
    if loose.aborted:
        return [], candidate_count + len(loose.candidates), True
    boundaries = validate_candidates(loose.candidates, len(text), rules)
    return boundaries, candidate_count + len(loose.candidates), False


def segment_text(
    text: str,
    document_id: str,
    *,
    config: SegmentConfig | None = None,
    stop: StopSignal | None = None,
    progress: ProgressCallback | None = None,
) -> SegmentationResult:
    """
    Segment ``text`` into chapters.

    Always returns at least one chapter. The chapters tile the text in
    order, even when the run is stopped by its deadline or cancelled; a stop
    before any chapter exists yields the single "Full Content" chapter.
    """
    config = config or SegmentConfig()
    if stop is None:
        stop = StopSignal(Deadline(config.timeout_seconds))
    reporter = ProgressReporter(progress, stop)
    reporter.report("start", 0.0, length=len(text))
    result = SegmentationResult(document_id=document_id)

    if not text.strip():
        result.chapters = [fallback_chapter(text, document_id)]
        result.fallback = True
        return _finish(result, reporter, stop)

    if config.force_auto and config.auto_segment_chars:
        result.chapters = auto_segment(
            text, document_id, config.auto_segment_chars, lookahead=config.split_lookahead
        )
        return _finish(result, reporter, stop)

    try:
        boundaries, candidate_count, aborted = find_boundaries(text, config, stop, reporter)
    except PatternCompileError as exc:
        logger.warning("Chapter patterns unusable, using one chapter: %s", exc)
        result.chapters = [fallback_chapter(text, document_id)]
        result.fallback = True
        return _finish(result, reporter, stop)

    result.candidate_count = candidate_count
    if aborted:
        logger.warning(
            "Segmentation of %s stopped (%s) while scanning; using one chapter",
            document_id,
            stop.reason,
        )
        result.stopped = stop.reason
        result.chapters = [fallback_chapter(text, document_id)]
        result.fallback = True
        return _finish(result, reporter, stop)

    if not boundaries and config.auto_segment_chars:
        chapters = auto_segment(
            text, document_id, config.auto_segment_chars, lookahead=config.split_lookahead
        )
    else:
        built = build_chapters(
            text,
            boundaries,
            document_id,
            stop=stop,
            progress=reporter,
            batch_size=config.build_batch_size,
            min_chapter_chars=config.min_chapter_chars,
        )
        chapters = built.chapters
        result.fallback = built.fallback
        if built.aborted:
            result.stopped = stop.reason

    if result.stopped is None:
        chapters = split_chapters(
            chapters,
            text,
            max_chars=config.max_chapter_chars,
            part_chars=config.split_part_chars,
            lookahead=config.split_lookahead,
        )
    result.chapters = chapters
    return _finish(result, reporter, stop)


def _finish(
    result: SegmentationResult,
    reporter: ProgressReporter,
    stop: StopSignal,
) -> SegmentationResult:
    result.elapsed = stop.elapsed
    reporter.report("complete", 100.0, chapters=len(result.chapters))
    logger.info(
        "Segmented %s into %d chapter(s) in %.2fs%s",
        result.document_id,
        len(result.chapters),
        result.elapsed,
        f" ({result.stopped})" if result.stopped else "",
    )
    return result


__all__ = [
    "ENV_PREFIX",
    "SegmentConfig",
    "SegmentationResult",
    "find_boundaries",
    "segment_text",
]
