from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from .chapters import Chapter, normalize_chapters, repair_duplicate_ids
from .errors import CacheCorruptError
from .store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "documentChapters_"


def cache_key(document_id: str) -> str:
    return f"{KEY_PREFIX}{document_id}"


def encode_chapters(chapters: Iterable[Chapter]) -> bytes:
    payload = [chapter.to_payload() for chapter in chapters]
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def decode_chapters(raw: bytes) -> list[Chapter]:
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CacheCorruptError(f"Cached chapters are not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise CacheCorruptError("Cached chapters must be a JSON array.")
    chapters: list[Chapter] = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise CacheCorruptError("Cached chapter entries must be objects.")
        try:
            chapters.append(Chapter.from_payload(entry))
        except ValueError as exc:
            raise CacheCorruptError(f"Invalid cached chapter: {exc}") from exc
    return chapters


class ChapterCache:
    """
    Chapter lists keyed by document id, on top of a :class:`KeyValueStore`.

    Every read and write for one document id runs under that id's lock. The
    cache also remembers which document owns each chapter id it has seen, so
    an id can never be persisted for two documents.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._owners: dict[str, str] = {}
        self._owners_lock = threading.Lock()
        self._index_existing()

    def _index_existing(self) -> None:
        keys = getattr(self.store, "keys", None)
        if not callable(keys):
            return
        for key in keys():
            if not key.startswith(KEY_PREFIX):
                continue
            raw = self.store.get(key)
            if raw is None:
                continue
            try:
                chapters = decode_chapters(raw)
            except CacheCorruptError:
                continue
            document_id = key[len(KEY_PREFIX) :]
            with self._owners_lock:
                for chapter in chapters:
                    self._owners.setdefault(chapter.id, document_id)

    @contextmanager
    def locked(self, document_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[document_id] = lock
        with lock:
            yield

    def _reserved_ids(self, document_id: str) -> set[str]:
        with self._owners_lock:
            return {cid for cid, owner in self._owners.items() if owner != document_id}

    def _register(self, document_id: str, chapters: Iterable[Chapter]) -> None:
        with self._owners_lock:
            for cid in [cid for cid, owner in self._owners.items() if owner == document_id]:
                del self._owners[cid]
            for chapter in chapters:
                self._owners[chapter.id] = document_id

    def load(self, document_id: str) -> list[Chapter] | None:
        """Return the cached chapters, repairing duplicate ids in place."""
        with self.locked(document_id):
            raw = self.store.get(cache_key(document_id))
            if raw is None:
                return None
            try:
                chapters = decode_chapters(raw)
            except CacheCorruptError as exc:
                logger.warning("Ignoring cached chapters for %s: %s", document_id, exc)
                return None
            if not chapters:
                return None
            repaired, changed = repair_duplicate_ids(chapters, self._reserved_ids(document_id))
            if changed:
                logger.warning(
                    "Repaired duplicate chapter ids for %s; rewriting cache", document_id
                )
                repaired = normalize_chapters(repaired, document_id)
                self.store.set(cache_key(document_id), encode_chapters(repaired))
            self._register(document_id, repaired)
            return repaired

    def save(self, document_id: str, chapters: Iterable[Chapter]) -> list[Chapter]:
        """Persist ``chapters`` for ``document_id`` and return what was written."""
        with self.locked(document_id):
            normalized = normalize_chapters(chapters, document_id)
            repaired, changed = repair_duplicate_ids(normalized, self._reserved_ids(document_id))
            if changed:
                logger.warning("Reassigned colliding chapter ids before saving %s", document_id)
            self.store.set(cache_key(document_id), encode_chapters(repaired))
            self._register(document_id, repaired)
            return repaired

    def clear(self, document_id: str) -> bool:
        with self.locked(document_id):
            key = cache_key(document_id)
            existed = self.store.get(key) is not None
            self.store.remove(key)
            self._register(document_id, ())
            return existed


__all__ = [
    "ChapterCache",
    "KEY_PREFIX",
    "cache_key",
    "decode_chapters",
    "encode_chapters",
]
