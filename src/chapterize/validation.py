from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from .patterns import CN_NUMERALS, CN_UNITS
from .scanner import BoundaryCandidate

logger = logging.getLogger(__name__)

DEFAULT_DENSITY_COUNT = 300
DEFAULT_DENSITY_MIN_GAP = 200
DEFAULT_HEADER_ZONE_RATIO = 0.05

_STRICTEST_CN = re.compile(rf"^第\s*[{CN_NUMERALS}\d]+\s*章")
_STRICTEST_CN_MAX_LEN = 15
_STRICTEST_WESTERN = re.compile(r"^chapter\s*\d+", re.IGNORECASE)
_STRICTEST_WESTERN_MAX_LEN = 12

_NUMERAL_WITH_UNIT = re.compile(
    rf"第\s*[{CN_NUMERALS}\d]+\s*[{CN_UNITS}]|\b(?:chapter|part)\s+(?:\d+|[IVXLCDM]+)\b",
    re.IGNORECASE,
)

DENYLIST_TITLES = frozenset(
    {
        "目录",
        "目 录",
        "目次",
        "contents",
        "content",
        "table of contents",
    }
)
# Section tags emitted by some EPUB/MOBI converters ("Chapter_3").
_CONVERTER_TAG = re.compile(r"^chapter_\d+$", re.IGNORECASE)


@dataclass(frozen=True)
class ValidationRules:
    density_count: int = DEFAULT_DENSITY_COUNT
    density_min_gap: int = DEFAULT_DENSITY_MIN_GAP
    header_zone_ratio: float = DEFAULT_HEADER_ZONE_RATIO


def order_candidates(candidates: Iterable[BoundaryCandidate]) -> list[BoundaryCandidate]:
    """
    Sort by offset and keep one candidate per offset.

    For a shared offset the earliest rule wins; within one rule the longest
    title wins, which keeps the whole heading when overlapping chunks saw a
    truncated copy.
    """
    ordered = sorted(
        candidates,
        key=lambda item: (item.offset, item.rule_index, -len(item.title)),
    )
    unique: list[BoundaryCandidate] = []
    for candidate in ordered:
        if unique and unique[-1].offset == candidate.offset:
            continue
        unique.append(candidate)
    return unique


def is_denylisted(title: str) -> bool:
    normalized = " ".join(title.split()).casefold()
    if normalized in DENYLIST_TITLES:
        return True
    return bool(_CONVERTER_TAG.match(title.strip()))


def has_numeral_unit(title: str) -> bool:
    return bool(_NUMERAL_WITH_UNIT.search(title))


def is_strictest_heading(title: str) -> bool:
    stripped = title.strip()
    if _STRICTEST_CN.match(stripped) and len(stripped) < _STRICTEST_CN_MAX_LEN:
        return True
    return bool(_STRICTEST_WESTERN.match(stripped)) and len(stripped) < _STRICTEST_WESTERN_MAX_LEN


def apply_density_guard(
    candidates: list[BoundaryCandidate],
    rules: ValidationRules,
) -> list[BoundaryCandidate]:
    if len(candidates) <= rules.density_count:
        return candidates
    span = candidates[-1].offset - candidates[0].offset
    average_gap = span / (len(candidates) - 1)
    if average_gap >= rules.density_min_gap:
        return candidates
    kept = [candidate for candidate in candidates if is_strictest_heading(candidate.title)]
    logger.info(
        "Density guard: %d candidates averaging %.0f chars apart; kept %d strict headings",
        len(candidates),
        average_gap,
        len(kept),
    )
    return kept


def validate_candidates(
    candidates: Iterable[BoundaryCandidate],
    text_length: int,
    rules: ValidationRules | None = None,
) -> list[BoundaryCandidate]:
    """Return the boundary list: ordered, de-duplicated and filtered."""
    rules = rules or ValidationRules()
    ordered = order_candidates(candidates)
    if not ordered:
        return []
    ordered = apply_density_guard(ordered, rules)
    header_limit = int(text_length * rules.header_zone_ratio)
    accepted: list[BoundaryCandidate] = []
    for candidate in ordered:
        if is_denylisted(candidate.title):
            logger.debug("Dropped denylisted heading %r at %d", candidate.title, candidate.offset)
            continue
        if candidate.offset < header_limit and not has_numeral_unit(candidate.title):
            logger.debug("Dropped header-zone heading %r at %d", candidate.title, candidate.offset)
            continue
        accepted.append(candidate)
    return accepted


__all__ = [
    "DENYLIST_TITLES",
    "ValidationRules",
    "apply_density_guard",
    "has_numeral_unit",
    "is_denylisted",
    "is_strictest_heading",
    "order_candidates",
    "validate_candidates",
]
