from __future__ import annotations

import pytest

from chapterize.errors import PatternCompileError
from chapterize.patterns import (
    DEFAULT_PATTERNS,
    LOOSE_PATTERNS,
    ChapterPattern,
    compile_patterns,
    match_heading,
)


@pytest.fixture(scope="module")
def compiled():
    return compile_patterns(DEFAULT_PATTERNS)


@pytest.mark.parametrize(
    "line, rule",
    [
        ("第一章 开始", "numeral"),
        ("  第 12 回：风起", "numeral"),
        ("第三百二十一章", "numeral"),
        ("第二卷 江湖", "numeral"),
        ("序章", "structural"),
        ("后记：写在最后", "structural"),
        ("Prologue", "structural"),
        ("Chapter 3", "western"),
        ("CHAPTER IV", "western"),
        ("Part 2: The Return", "western"),
    ],
)
def test_headings_match_expected_rule(compiled, line: str, rule: str) -> None:
    matched = match_heading(line, compiled)
    assert matched is not None
    assert matched.name == rule


@pytest.mark.parametrize(
    "line",
    [
        "前言文字",
        "第一章的故事讲到这里就结束了",
        "He read chapter after chapter.",
        "1. 开端",
        "",
    ],
)
def test_prose_lines_are_not_headings(compiled, line: str) -> None:
    assert match_heading(line, compiled) is None


def test_loose_pattern_accepts_numbered_lines() -> None:
    loose = compile_patterns(LOOSE_PATTERNS)
    assert match_heading("1. 开端", loose) is not None
    assert match_heading("12、归来", loose) is not None
    assert match_heading("正文 1. 开端", loose) is None


def test_compile_patterns_reuses_compiled_rules() -> None:
    assert compile_patterns(DEFAULT_PATTERNS) is compile_patterns(DEFAULT_PATTERNS)


def test_compile_patterns_reports_broken_rule() -> None:
    broken = ChapterPattern(name="broken", category="custom", regex="(第")
    with pytest.raises(PatternCompileError) as excinfo:
        compile_patterns((broken,))
    assert "broken" in str(excinfo.value)


def test_match_line_returns_trimmed_heading(compiled) -> None:
    numeral = compiled[0]
    assert numeral.match_line("　第五章 重逢  \n") == "第五章 重逢"
