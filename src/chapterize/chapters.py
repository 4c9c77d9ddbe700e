from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable, Mapping
from uuid import uuid4

from .errors import ChapterRangeError

PREFACE_TITLE = "Preface"
FULL_CONTENT_TITLE = "Full Content"
PART_TITLE_TEMPLATE = "Part {index}"
SPLIT_TITLE_TEMPLATE = "{title}（{index}）"

_CN_DIGITS = {
    "零": 0,
    "〇": 0,
    "一": 1,
    "二": 2,
    "两": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
}
_CN_UNITS = {"十": 10, "百": 100, "千": 1000}
_CN_MYRIAD = "万"
_ROMAN_VALUES = {"I": 1, "V": 5, "X": 10, "L": 50, "C": 100, "D": 500, "M": 1000}

_NUMBER_PATTERNS = (
    re.compile(r"第\s*([0-9零〇一二两三四五六七八九十百千万]+)\s*[章回节集卷部篇]"),
    re.compile(r"(?:chapter|part)\s*([0-9]+)", re.IGNORECASE),
    re.compile(r"(?:CHAPTER|Chapter|PART|Part)\s+([IVXLCDM]+)\b"),
    re.compile(r"^\s*([0-9]+)[.．、]"),
)


def new_chapter_id() -> str:
    return uuid4().hex


def parse_chinese_numeral(text: str) -> int | None:
    """
    Convert a Chinese numeral (or plain digits) to an int.

    Numerals without unit characters are read positionally, so both
    一百零三 and 一〇三 give 103.
    """
    value = text.strip()
    if not value:
        return None
    if value.isdigit():
        return int(value)
    if any(ch not in _CN_DIGITS and ch not in _CN_UNITS and ch != _CN_MYRIAD for ch in value):
        return None
    if not any(ch in _CN_UNITS or ch == _CN_MYRIAD for ch in value):
        result = 0
        for ch in value:
            result = result * 10 + _CN_DIGITS[ch]
        return result
    total = 0
    section = 0
    number = 0
    for ch in value:
        if ch in _CN_DIGITS:
            number = _CN_DIGITS[ch]
        elif ch in _CN_UNITS:
            section += (number or 1) * _CN_UNITS[ch]
            number = 0
        else:
            total += (section + number) * 10000
            section = 0
            number = 0
    return total + section + number


def parse_roman_numeral(text: str) -> int | None:
    value = text.strip().upper()
    if not value or any(ch not in _ROMAN_VALUES for ch in value):
        return None
    total = 0
    for idx, ch in enumerate(value):
        current = _ROMAN_VALUES[ch]
        following = _ROMAN_VALUES[value[idx + 1]] if idx + 1 < len(value) else 0
        total += -current if current < following else current
    return total if total > 0 else None


def chapter_number_from_title(title: str) -> int | None:
    for pattern in _NUMBER_PATTERNS:
        match = pattern.search(title)
        if match is None:
            continue
        raw = match.group(1)
        if raw.isdigit():
            return int(raw)
        parsed = parse_chinese_numeral(raw)
        if parsed is None:
            parsed = parse_roman_numeral(raw)
        if parsed is not None:
            return parsed
    return None


@dataclass(frozen=True, slots=True)
class Chapter:
    id: str
    title: str
    start_offset: int
    end_offset: int
    document_id: str
    list_id: str

    def __post_init__(self) -> None:
        if self.start_offset < 0:
            raise ChapterRangeError(
                f"Chapter {self.title!r} starts before the document: {self.start_offset}"
            )
        if self.end_offset < self.start_offset:
            raise ChapterRangeError(
                f"Chapter {self.title!r} ends before it starts: "
                f"[{self.start_offset}, {self.end_offset})"
            )
        if self.end_offset == self.start_offset and self.start_offset != 0:
            raise ChapterRangeError(
                f"Chapter {self.title!r} is empty at offset {self.start_offset}"
            )
        if not self.id:
            raise ChapterRangeError("Chapter id must not be empty")

    @classmethod
    def create(
        cls,
        title: str,
        start_offset: int,
        end_offset: int,
        document_id: str,
    ) -> "Chapter":
        return cls(
            id=new_chapter_id(),
            title=title.strip(),
            start_offset=start_offset,
            end_offset=end_offset,
            document_id=document_id,
            list_id=document_id,
        )

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    @property
    def chapter_number(self) -> int | None:
        return chapter_number_from_title(self.title)

    def content(self, text: str) -> str:
        return text[self.start_offset : self.end_offset]

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "document_id": self.document_id,
            "list_id": self.list_id,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Chapter":
        chapter_id = payload.get("id")
        title = payload.get("title")
        start = payload.get("start_offset")
        end = payload.get("end_offset")
        document_id = payload.get("document_id")
        list_id = payload.get("list_id", document_id)
        if not isinstance(chapter_id, str) or not isinstance(title, str):
            raise ValueError("Chapter payload requires string id and title.")
        if not isinstance(start, int) or not isinstance(end, int):
            raise ValueError("Chapter payload requires integer offsets.")
        if not isinstance(document_id, str) or not isinstance(list_id, str):
            raise ValueError("Chapter payload requires a document id.")
        return cls(
            id=chapter_id,
            title=title,
            start_offset=start,
            end_offset=end,
            document_id=document_id,
            list_id=list_id,
        )


def normalize_chapters(chapters: Iterable[Chapter], document_id: str) -> list[Chapter]:
    """Point every chapter at ``document_id`` for both ownership fields."""
    normalized: list[Chapter] = []
    for chapter in chapters:
        if chapter.document_id == document_id and chapter.list_id == document_id:
            normalized.append(chapter)
        else:
            normalized.append(replace(chapter, document_id=document_id, list_id=document_id))
    return normalized


def repair_duplicate_ids(
    chapters: Iterable[Chapter],
    reserved: Iterable[str] = (),
) -> tuple[list[Chapter], bool]:
    """
    Give a fresh id to every chapter whose id was already seen.

    ``reserved`` holds ids owned elsewhere (other documents); a chapter using
    one of them is reassigned as well. The first occurrence of an id inside
    ``chapters`` keeps it.
    """
    seen: set[str] = set(reserved)
    repaired: list[Chapter] = []
    changed = False
    for chapter in chapters:
        if chapter.id in seen:
            chapter_id = new_chapter_id()
            while chapter_id in seen:
                chapter_id = new_chapter_id()
            chapter = replace(chapter, id=chapter_id)
            changed = True
        seen.add(chapter.id)
        repaired.append(chapter)
    return repaired, changed


def check_contiguous(chapters: list[Chapter], length: int) -> bool:
    """Return True when ``chapters`` tile ``[0, length)`` in order."""
    if not chapters:
        return False
    if length == 0:
        return len(chapters) == 1 and chapters[0].end_offset == 0
    if chapters[0].start_offset != 0 or chapters[-1].end_offset != length:
        return False
    return all(
        prev.end_offset == nxt.start_offset for prev, nxt in zip(chapters, chapters[1:])
    )


__all__ = [
    "Chapter",
    "FULL_CONTENT_TITLE",
    "PART_TITLE_TEMPLATE",
    "PREFACE_TITLE",
    "SPLIT_TITLE_TEMPLATE",
    "chapter_number_from_title",
    "check_contiguous",
    "new_chapter_id",
    "normalize_chapters",
    "parse_chinese_numeral",
    "parse_roman_numeral",
    "repair_duplicate_ids",
]
