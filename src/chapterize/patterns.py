from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .errors import PatternCompileError

CN_NUMERALS = "零〇一二两三四五六七八九十百千万"
CN_UNITS = "章节回集卷部篇"

_HSPACE = r"[ \t\r　]"
# Heading text after the marker: either ":"/"：" plus anything, or a short title
# separated by whitespace. Long trailing text is body prose, not a heading.
_TITLE_TAIL = rf"(?:{_HSPACE}*[:：][^\n]*|{_HSPACE}+[^\n]{{1,30}})?{_HSPACE}*$"


@dataclass(frozen=True)
class ChapterPattern:
    """One boundary rule. ``strict`` rules only accept a heading on its own line."""

    name: str
    category: str
    regex: str
    strict: bool = True


@dataclass(frozen=True)
class CompiledPattern:
    rule: ChapterPattern
    pattern: re.Pattern[str]
    index: int

    @property
    def name(self) -> str:
        return self.rule.name

    def match_line(self, line: str) -> str | None:
        """Return the trimmed heading if ``line`` is a boundary for this rule."""
        match = self.pattern.match(line.rstrip("\r\n"))
        if match is None:
            return None
        return match.group(0).strip()


NUMERAL_PATTERN = ChapterPattern(
    name="numeral",
    category="numeral",
    regex=rf"^{_HSPACE}*第{_HSPACE}*[{CN_NUMERALS}\d]+{_HSPACE}*[{CN_UNITS}]{_TITLE_TAIL}",
)
STRUCTURAL_PATTERN = ChapterPattern(
    name="structural",
    category="structural",
    regex=(
        rf"^{_HSPACE}*(?:序章|引子|楔子|前言|序言|尾声|后记|"
        r"Preface|PREFACE|Introduction|INTRODUCTION|Prologue|PROLOGUE|"
        r"Epilogue|EPILOGUE|Afterword|AFTERWORD)"
        rf"(?:{_HSPACE}*[:：][^\n]*)?{_HSPACE}*$"
    ),
)
WESTERN_PATTERN = ChapterPattern(
    name="western",
    category="western",
    regex=(
        rf"^{_HSPACE}*(?:CHAPTER|Chapter|chapter|PART|Part){_HSPACE}+(?:\d+|[IVXLCDM]+)\b"
        rf"(?:{_HSPACE}*[:：.\-–—][^\n]*|{_HSPACE}+[^\n]{{1,40}})?{_HSPACE}*$"
    ),
)
LOOSE_NUMBERED_PATTERN = ChapterPattern(
    name="loose_numbered",
    category="loose",
    regex=rf"^{_HSPACE}*\d+[.．、，][^\n]{{0,40}}$",
    strict=False,
)

DEFAULT_PATTERNS: tuple[ChapterPattern, ...] = (
    NUMERAL_PATTERN,
    STRUCTURAL_PATTERN,
    WESTERN_PATTERN,
)
LOOSE_PATTERNS: tuple[ChapterPattern, ...] = (LOOSE_NUMBERED_PATTERN,)

_COMPILED_CACHE: dict[tuple[ChapterPattern, ...], tuple[CompiledPattern, ...]] = {}


def compile_patterns(rules: Iterable[ChapterPattern]) -> tuple[CompiledPattern, ...]:
    """Compile ``rules`` once; repeated calls with the same rules reuse the result."""
    key = tuple(rules)
    cached = _COMPILED_CACHE.get(key)
    if cached is not None:
        return cached
    compiled: list[CompiledPattern] = []
    for index, rule in enumerate(key):
        try:
            pattern = re.compile(rule.regex, re.MULTILINE)
        except re.error as exc:
            raise PatternCompileError(f"Invalid chapter pattern {rule.name!r}: {exc}") from exc
        compiled.append(CompiledPattern(rule=rule, pattern=pattern, index=index))
    result = tuple(compiled)
    _COMPILED_CACHE[key] = result
    return result


def match_heading(line: str, patterns: Iterable[CompiledPattern]) -> CompiledPattern | None:
    for compiled in patterns:
        if compiled.match_line(line) is not None:
            return compiled
    return None


__all__ = [
    "CN_NUMERALS",
    "CN_UNITS",
    "ChapterPattern",
    "CompiledPattern",
    "DEFAULT_PATTERNS",
    "LOOSE_NUMBERED_PATTERN",
    "LOOSE_PATTERNS",
    "NUMERAL_PATTERN",
    "STRUCTURAL_PATTERN",
    "WESTERN_PATTERN",
    "compile_patterns",
    "match_heading",
]
