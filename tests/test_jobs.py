from __future__ import annotations

import threading

import pytest

import chapterize.jobs as jobs
from chapterize.cache import ChapterCache
from chapterize.chapters import check_contiguous
from chapterize.core import SegmentConfig, segment_text
from chapterize.errors import DocumentUnavailableError
from chapterize.library import InMemoryDocumentRegistry, document_from_text
from chapterize.store import MemoryStore


def _book_text(count: int = 4) -> str:
    return "".join(f"第{idx}章 标题{idx}\n" + "内容。" * 100 + "\n" for idx in range(1, count + 1))


@pytest.fixture
def registry() -> InMemoryDocumentRegistry:
    return InMemoryDocumentRegistry()


@pytest.fixture
def manager(registry):
    mgr = jobs.SegmentationManager(ChapterCache(MemoryStore()), registry, max_workers=2)
    yield mgr
    mgr.shutdown(wait=True)


def _gated_segment(monkeypatch, started: threading.Event, release: threading.Event) -> None:
    def _slow(text, document_id, *, config, stop, progress):
        started.set()
        release.wait(5)
        return segment_text(text, document_id, config=config, stop=stop, progress=progress)

    monkeypatch.setattr(jobs, "segment_text", _slow)


def test_segment_caches_and_publishes_chapters(manager, registry) -> None:
    document = document_from_text(_book_text(), "book")
    registry.update(document)

    chapters = manager.segment(document, timeout=10)

    assert [c.title for c in chapters] == [f"第{idx}章 标题{idx}" for idx in range(1, 5)]
    assert manager.get_cached(document.id) == chapters
    assert registry.get(document.id).chapter_ids == tuple(c.id for c in chapters)
    assert registry.group(document.id) == [c.id for c in chapters]


def test_second_run_is_served_from_cache(manager) -> None:
    document = document_from_text(_book_text(), "book")
    first = manager.submit(document).result(10)
    second = manager.submit(document).result(10)

    assert not first.from_cache
    assert second.from_cache
    assert [c.id for c in second.chapters] == [c.id for c in first.chapters]


def test_force_resegments_despite_cache(manager) -> None:
    document = document_from_text(_book_text(), "book")
    manager.segment(document, timeout=10)
    forced = manager.submit(document, force=True).result(10)
    assert not forced.from_cache


def test_concurrent_request_joins_in_flight_job(manager, monkeypatch) -> None:
    started, release = threading.Event(), threading.Event()
    _gated_segment(monkeypatch, started, release)
    document = document_from_text(_book_text(), "book")

    first = manager.submit(document)
    assert started.wait(5)
    second = manager.submit(document)
    release.set()

    assert second is first
    assert len(first.result(10).chapters) == 4


def test_cancel_returns_partial_result_and_skips_cache(manager, monkeypatch) -> None:
    started, release = threading.Event(), threading.Event()
    _gated_segment(monkeypatch, started, release)
    document = document_from_text(_book_text(), "book")

    job = manager.submit(document)
    assert started.wait(5)
    job.cancel()
    release.set()
    result = job.result(10)

    assert result.stopped == "cancelled"
    assert len(result.chapters) == 1
    assert manager.get_cached(document.id) is None
    assert job.to_payload()["stopped"] == "cancelled"


def test_timed_out_run_is_not_cached(registry) -> None:
    config = SegmentConfig(timeout_seconds=0.0)
    manager = jobs.SegmentationManager(ChapterCache(MemoryStore()), registry, config)
    try:
        document = document_from_text(_book_text(), "book")
        result = manager.submit(document).result(10)
    finally:
        manager.shutdown(wait=True)

    assert result.stopped == "timeout"
    assert manager.get_cached(document.id) is None
    assert registry.group(document.id) == []


def test_hard_failure_propagates_and_marks_job(manager, monkeypatch) -> None:
    def _fail(text, document_id, *, config, stop, progress):
        raise DocumentUnavailableError("source vanished")

    monkeypatch.setattr(jobs, "segment_text", _fail)
    document = document_from_text(_book_text(), "book")

    job = manager.submit(document)
    with pytest.raises(DocumentUnavailableError):
        job.result(10)

    payload = job.to_payload()
    assert payload["status"] == "error"
    assert "source vanished" in payload["error"]
    assert manager.submit(document) is not job


def test_callbacks_go_through_dispatch(registry) -> None:
    dispatched: list[object] = []
    events: list[dict] = []
    finished: list[object] = []

    def _dispatch(func) -> None:
        dispatched.append(func)
        func()

    manager = jobs.SegmentationManager(ChapterCache(MemoryStore()), registry, dispatch=_dispatch)
    try:
        document = document_from_text(_book_text(), "book")
        job = manager.submit(document, progress=events.append, on_done=finished.append)
        job.result(10)
    finally:
        manager.shutdown(wait=True)

    assert finished == [job]
    assert len(dispatched) == len(events) + 1
    percentages = [event["percentage"] for event in events]
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100.0


def test_clear_removes_cache_and_group(manager, registry) -> None:
    document = document_from_text(_book_text(), "book")
    manager.segment(document, timeout=10)

    assert manager.clear(document.id) is True
    assert manager.get_cached(document.id) is None
    assert registry.group(document.id) == []
    assert manager.clear(document.id) is False


def test_job_payload_reports_success(manager) -> None:
    document = document_from_text(_book_text(), "book")
    job = manager.submit(document)
    job.result(10)
    payload = job.to_payload()

    assert payload["status"] == "success"
    assert payload["document_id"] == document.id
    assert payload["chapter_count"] == 4
    assert payload["progress"]["percentage"] == 100.0
    assert manager.get_job(job.id) is job


def test_worker_count_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("CHAPTERIZE_WORKERS", "3")
    manager = jobs.SegmentationManager(ChapterCache(MemoryStore()))
    try:
        assert manager.executor._max_workers == 3
    finally:
        manager.shutdown()


def test_cache_entry_for_other_text_is_resegmented(manager, registry) -> None:
    longer = document_from_text(_book_text(4), "book", "same-id")
    manager.segment(longer, timeout=10)

    shorter = document_from_text(_book_text(1), "book", "same-id")
    result = manager.submit(shorter).result(10)

    assert not result.from_cache
    assert [c.title for c in result.chapters] == ["第1章 标题1"]
    assert check_contiguous(result.chapters, len(shorter.content))
    assert manager.get_cached("same-id") == result.chapters
    assert registry.group("same-id") == [c.id for c in result.chapters]


def test_clear_after_run_finishes_but_before_save_wins(manager, registry, monkeypatch) -> None:
    finished, release = threading.Event(), threading.Event()

    def _finish_then_wait(text, document_id, *, config, stop, progress):
        result = segment_text(text, document_id, config=config, stop=stop, progress=progress)
        finished.set()
        release.wait(5)
        return result

    monkeypatch.setattr(jobs, "segment_text", _finish_then_wait)
    document = document_from_text(_book_text(), "book")

    job = manager.submit(document)
    assert finished.wait(5)
    assert manager.clear(document.id) is False
    release.set()
    result = job.result(10)

    assert result.stopped == "cancelled"
    assert manager.get_cached(document.id) is None
    assert registry.group(document.id) == []
