from __future__ import annotations

from chapterize.chapters import Chapter, check_contiguous
from chapterize.splitter import find_split_point, split_chapters, split_large_chapter, split_offsets


def test_split_point_prefers_paragraph_break() -> None:
    text = "a" * 100 + "\n\n" + "b." + " " + "b" * 100
    assert find_split_point(text, 90, len(text), lookahead=50) == 102


def test_split_point_falls_back_to_sentence_end() -> None:
    text = "a" * 95 + "。 " + "b" * 100
    assert find_split_point(text, 90, len(text), lookahead=50) == 96


def test_split_point_cuts_at_target_without_breaks() -> None:
    text = "a" * 300
    assert find_split_point(text, 120, len(text), lookahead=50) == 120


def test_split_point_never_passes_end() -> None:
    assert find_split_point("abc", 10, 3) == 3


def test_split_offsets_concatenate_to_original() -> None:
    text = "前言。\n\n" + ("很长的段落内容。" * 40 + "\n\n") * 20
    ranges = split_offsets(text, 0, len(text), part_chars=500, lookahead=100)

    assert ranges[0][0] == 0
    assert ranges[-1][1] == len(text)
    assert "".join(text[start:end] for start, end in ranges) == text
    assert all(end - start <= 600 for start, end in ranges)


def test_long_chapter_splits_into_numbered_parts() -> None:
    text = "第一章 长\n" + "句子。\n" * 4000
    chapter = Chapter.create("第一章 长", 0, len(text), "doc")

    parts = split_large_chapter(chapter, text, max_chars=15_000, part_chars=5_000)

    assert len(parts) > 1
    assert parts[0].title == "第一章 长（1）"
    assert parts[1].title == "第一章 长（2）"
    assert check_contiguous(parts, len(text))
    assert len({part.id for part in parts}) == len(parts)


def test_short_chapters_pass_through_unchanged() -> None:
    text = "第一章\n短\n第二章\n短\n"
    first = Chapter.create("第一章", 0, 5, "doc")
    second = Chapter.create("第二章", 5, len(text), "doc")

    assert split_chapters([first, second], text, max_chars=100) == [first, second]
