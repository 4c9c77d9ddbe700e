from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Mapping
from uuid import uuid4

from .cache import ChapterCache
from .chapters import Chapter, check_contiguous
from .core import SegmentationResult, SegmentConfig, segment_text
from .deadline import STOP_CANCELLED, Deadline, StopSignal
from .library import Document, DocumentRegistry, with_chapter_ids
from .progress import ProgressCallback

logger = logging.getLogger(__name__)

DoneCallback = Callable[["SegmentationJob"], None]
Dispatcher = Callable[[Callable[[], None]], None]


def _call_inline(func: Callable[[], None]) -> None:
    func()


class SegmentationJob:
    def __init__(self, document: Document, config: SegmentConfig) -> None:
        self.id = uuid4().hex
        self.document_id = document.id
        self.title = document.title
        self.config = config
        self.stop = StopSignal(Deadline(config.timeout_seconds))
        self.status = "pending"
        self.message: str | None = "Waiting to start"
        self.error: str | None = None
        self.percentage = 0.0
        self.elapsed = 0.0
        self.result_value: SegmentationResult | None = None
        self.future: Future[SegmentationResult] | None = None
        self.created_at = datetime.now(timezone.utc)
        self.updated_at = self.created_at
        self.lock = threading.Lock()
        self._progress_listeners: list[ProgressCallback] = []
        self._done_listeners: list[DoneCallback] = []

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    @property
    def done(self) -> bool:
        with self.lock:
            return self.status in {"success", "error"}

    def set_status(self, status: str, message: str | None = None) -> None:
        with self.lock:
            self.status = status
            if message is not None:
                self.message = message
            self._touch()

    def set_error(self, message: str) -> None:
        with self.lock:
            self.status = "error"
            self.error = message
            self.message = message
            self._touch()

    def update_progress(self, event: Mapping[str, object]) -> None:
        percentage = event.get("percentage")
        elapsed = event.get("elapsed")
        with self.lock:
            if isinstance(percentage, (int, float)):
                self.percentage = max(self.percentage, float(percentage))
            if isinstance(elapsed, (int, float)):
                self.elapsed = float(elapsed)
            event_type = event.get("event")
            if isinstance(event_type, str):
                self.message = f"{event_type} {self.percentage:.0f}%"
            self._touch()

    def mark_success(self, result: SegmentationResult) -> None:
        with self.lock:
            self.status = "success"
            self.result_value = result
            self.percentage = 100.0
            self.elapsed = result.elapsed
            count = len(result.chapters)
            if result.from_cache:
                self.message = f"Loaded {count} cached chapter(s)"
            elif result.stopped:
                self.message = f"Stopped ({result.stopped}): {count} chapter(s)"
            else:
                self.message = f"Ready: {count} chapter(s)"
            self._touch()

    def add_listeners(
        self,
        progress: ProgressCallback | None = None,
        on_done: DoneCallback | None = None,
    ) -> bool:
        """Attach callbacks; returns False when the job had already finished."""
        with self.lock:
            finished = self.status in {"success", "error"}
            if progress is not None and not finished:
                self._progress_listeners.append(progress)
            if on_done is not None and not finished:
                self._done_listeners.append(on_done)
        return not finished

    def progress_listeners(self) -> list[ProgressCallback]:
        with self.lock:
            return list(self._progress_listeners)

    def done_listeners(self) -> list[DoneCallback]:
        with self.lock:
            return list(self._done_listeners)

    def cancel(self) -> None:
        self.stop.cancel()

    def result(self, timeout: float | None = None) -> SegmentationResult:
        if self.future is None:
            raise RuntimeError("Job has not been scheduled.")
        return self.future.result(timeout=timeout)

    def to_payload(self) -> dict[str, object]:
        with self.lock:
            result = self.result_value
            return {
                "id": self.id,
                "document_id": self.document_id,
                "title": self.title,
                "status": self.status,
                "message": self.message,
                "error": self.error,
                "progress": {"percentage": self.percentage, "elapsed": self.elapsed},
                "stopped": result.stopped if result else None,
                "from_cache": result.from_cache if result else None,
                "chapter_count": len(result.chapters) if result else None,
                "created": self.created_at.isoformat(),
                "updated": self.updated_at.isoformat(),
            }


class SegmentationManager:
    """
    Runs segmentation on worker threads, one run per document at a time.

    A request for a document whose run is still in flight joins that run.
    Progress and completion callbacks go through ``dispatch`` so callers can
    route them onto their own thread or event loop.
    """

    def __init__(
        self,
        cache: ChapterCache,
        registry: DocumentRegistry | None = None,
        config: SegmentConfig | None = None,
        *,
        max_workers: int = 2,
        dispatch: Dispatcher | None = None,
    ) -> None:
        self.cache = cache
        self.registry = registry
        self.config = config or SegmentConfig()
        self.dispatch = dispatch or _call_inline
        self.lock = threading.Lock()
        workers = max_workers
        env_workers = os.getenv("CHAPTERIZE_WORKERS")
        if env_workers:
            try:
                parsed = int(env_workers)
                if parsed > 0:
                    workers = parsed
            except ValueError:
                workers = max_workers
        workers = max(1, min(workers, 8))
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chapterize")
        self.jobs: dict[str, SegmentationJob] = {}
        self._active: dict[str, SegmentationJob] = {}

    def submit(
        self,
        document: Document,
        *,
        progress: ProgressCallback | None = None,
        on_done: DoneCallback | None = None,
        force: bool = False,
        config: SegmentConfig | None = None,
    ) -> SegmentationJob:
        with self.lock:
            active = self._active.get(document.id)
            if active is not None and active.add_listeners(progress, on_done):
                logger.debug("Joining in-flight segmentation of %s", document.id)
                return active
            job = SegmentationJob(document, config or self.config)
            job.add_listeners(progress, on_done)
            self.jobs[job.id] = job
            self._active[document.id] = job
            job.future = self.executor.submit(self._run_job, job, document, force)
        return job

    def segment(
        self,
        document: Document,
        *,
        progress: ProgressCallback | None = None,
        force: bool = False,
        timeout: float | None = None,
    ) -> list[Chapter]:
        return self.submit(document, progress=progress, force=force).result(timeout=timeout).chapters

    def get_cached(self, document_id: str) -> list[Chapter] | None:
        return self.cache.load(document_id)

    def clear(self, document_id: str) -> bool:
        with self.lock:
            active = self._active.get(document_id)
        if active is not None:
            active.cancel()
        with self.cache.locked(document_id):
            cleared = self.cache.clear(document_id)
            clear_group = getattr(self.registry, "clear_group", None)
            if callable(clear_group):
                clear_group(document_id)
        return cleared

    def get_job(self, job_id: str) -> SegmentationJob | None:
        with self.lock:
            return self.jobs.get(job_id)

    def list_jobs(self) -> list[dict[str, object]]:
        with self.lock:
            snapshot = list(self.jobs.values())
        snapshot.sort(key=lambda job: job.updated_at, reverse=True)
        return [job.to_payload() for job in snapshot]

    def shutdown(self, wait: bool = False) -> None:
        with self.lock:
            active = list(self._active.values())
        for job in active:
            job.cancel()
        self.executor.shutdown(wait=wait, cancel_futures=False)

    def _emit_progress(self, job: SegmentationJob, event: Mapping[str, object]) -> None:
        job.update_progress(event)
        for listener in job.progress_listeners():
            self.dispatch(lambda listener=listener: listener(event))

    def _publish(self, document: Document, chapters: list[Chapter]) -> None:
        if self.registry is None:
            return
        self.registry.update(with_chapter_ids(document, [chapter.id for chapter in chapters]))
        clear_group = getattr(self.registry, "clear_group", None)
        if callable(clear_group):
            clear_group(document.id)
        for chapter in chapters:
            self.registry.add_to_group(chapter.id, document.id)

    def _run_job(self, job: SegmentationJob, document: Document, force: bool) -> SegmentationResult:
        job.stop.deadline = Deadline(job.config.timeout_seconds)
        job.set_status("running", "Checking cache…")
        try:
            cached = None if force else self.cache.load(document.id)
            if cached and not check_contiguous(cached, len(document.content)):
                logger.warning(
                    "Cached chapters for %s do not cover the current text; segmenting again",
                    document.id,
                )
                cached = None
            if cached:
                result = SegmentationResult(
                    document_id=document.id,
                    chapters=cached,
                    from_cache=True,
                )
                self._emit_progress(job, {"event": "complete", "percentage": 100.0, "elapsed": 0.0})
            else:
                job.set_status("running", "Segmenting…")
                result = segment_text(
                    document.content,
                    document.id,
                    config=job.config,
                    stop=job.stop,
                    progress=lambda event: self._emit_progress(job, event),
                )
                with self.cache.locked(document.id):
                    # A clear() that lands after the run finished still wins.
                    if not result.degraded and job.stop.reason == STOP_CANCELLED:
                        result = replace(result, stopped=STOP_CANCELLED)
                    if result.degraded:
                        logger.info(
                            "Not caching %s result for %s", result.stopped, document.id
                        )
                    else:
                        saved = self.cache.save(document.id, result.chapters)
                        result = replace(result, chapters=saved)
                        self._publish(document, saved)
            job.mark_success(result)
            return result
        except Exception as exc:
            logger.exception("Segmentation of %s failed", document.id)
            job.set_error(f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            with self.lock:
                if self._active.get(document.id) is job:
                    del self._active[document.id]
            for listener in job.done_listeners():
                self.dispatch(lambda listener=listener: listener(job))


__all__ = ["SegmentationJob", "SegmentationManager"]
