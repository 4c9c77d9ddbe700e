from __future__ import annotations

import json

import pytest

from chapterize.cache import ChapterCache, cache_key, decode_chapters, encode_chapters
from chapterize.chapters import Chapter
from chapterize.errors import CacheCorruptError
from chapterize.store import DirectoryStore, MemoryStore


def _chapters(document_id: str, count: int = 3) -> list[Chapter]:
    return [
        Chapter.create(f"第{idx}章", idx * 10, idx * 10 + 10, document_id)
        for idx in range(count)
    ]


def test_save_then_load_returns_same_chapters() -> None:
    cache = ChapterCache(MemoryStore())
    saved = cache.save("doc", _chapters("doc"))
    loaded = cache.load("doc")
    assert loaded == saved


def test_missing_entry_loads_as_none() -> None:
    assert ChapterCache(MemoryStore()).load("unknown") is None


def test_duplicate_ids_are_repaired_and_rewritten() -> None:
    store = MemoryStore()
    chapters = _chapters("doc")
    payload = [chapter.to_payload() for chapter in chapters]
    payload[2]["id"] = payload[0]["id"]
    store.set(cache_key("doc"), json.dumps(payload).encode("utf-8"))
    cache = ChapterCache(store)

    first = cache.load("doc")
    assert first is not None
    ids = [chapter.id for chapter in first]
    assert len(set(ids)) == 3
    assert ids[0] == chapters[0].id

    stored = json.loads(store.get(cache_key("doc")).decode("utf-8"))
    assert [entry["id"] for entry in stored] == ids

    second = cache.load("doc")
    assert [chapter.id for chapter in second] == ids


def test_chapter_ids_are_unique_across_documents() -> None:
    cache = ChapterCache(MemoryStore())
    first = cache.save("doc-a", _chapters("doc-a", 1))
    borrowed = Chapter(
        id=first[0].id,
        title="第一章",
        start_offset=0,
        end_offset=5,
        document_id="doc-b",
        list_id="doc-b",
    )

    second = cache.save("doc-b", [borrowed])

    assert second[0].id != first[0].id
    assert cache.load("doc-a")[0].id == first[0].id


def test_ownership_survives_a_new_cache_instance(tmp_path) -> None:
    store = DirectoryStore(tmp_path)
    first = ChapterCache(store).save("doc-a", _chapters("doc-a", 1))
    borrowed = Chapter(
        id=first[0].id,
        title="x",
        start_offset=0,
        end_offset=5,
        document_id="doc-b",
        list_id="doc-b",
    )

    second = ChapterCache(DirectoryStore(tmp_path)).save("doc-b", [borrowed])

    assert second[0].id != first[0].id


def test_save_normalizes_document_ownership() -> None:
    cache = ChapterCache(MemoryStore())
    saved = cache.save("doc", _chapters("elsewhere", 2))
    assert all(c.document_id == "doc" and c.list_id == "doc" for c in saved)


@pytest.mark.parametrize("raw", [b"not json", b"{}", b"[1, 2]", b"\xff\xfe"])
def test_corrupt_entry_is_ignored(raw: bytes) -> None:
    store = MemoryStore()
    store.set(cache_key("doc"), raw)
    assert ChapterCache(store).load("doc") is None


def test_empty_list_is_treated_as_missing() -> None:
    store = MemoryStore()
    store.set(cache_key("doc"), b"[]")
    assert ChapterCache(store).load("doc") is None


def test_decode_rejects_invalid_chapter() -> None:
    payload = [{"id": "a", "title": "t", "start_offset": 9, "end_offset": 3, "document_id": "d"}]
    with pytest.raises(CacheCorruptError):
        decode_chapters(json.dumps(payload).encode("utf-8"))


def test_encoded_titles_stay_readable() -> None:
    raw = encode_chapters(_chapters("doc", 1))
    assert "第0章" in raw.decode("utf-8")


def test_clear_reports_whether_entry_existed() -> None:
    cache = ChapterCache(MemoryStore())
    cache.save("doc", _chapters("doc"))
    assert cache.clear("doc") is True
    assert cache.load("doc") is None
    assert cache.clear("doc") is False


def test_directory_store_round_trip(tmp_path) -> None:
    store = DirectoryStore(tmp_path / "cache")
    assert store.get("documentChapters_abc") is None

    store.set("documentChapters_abc", b"[]")
    assert store.get("documentChapters_abc") == b"[]"
    assert list(store.keys()) == ["documentChapters_abc"]
    assert not list((tmp_path / "cache").glob(".chapterize-*"))

    store.remove("documentChapters_abc")
    store.remove("documentChapters_abc")
    assert store.get("documentChapters_abc") is None


def test_directory_store_sanitizes_keys(tmp_path) -> None:
    store = DirectoryStore(tmp_path)
    store.set("../escape", b"x")
    assert not (tmp_path.parent / "escape.json").exists()
    assert store.get("../escape") == b"x"
