"""
Key-value backends for cached chapter lists.

The cache only needs ``get``/``set``/``remove`` on opaque bytes. ``MemoryStore``
serves tests and the HTTP service without a root; ``DirectoryStore`` keeps one
file per key so cached chapters survive restarts.
"""

from __future__ import annotations

import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Iterator, Protocol

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        with self._lock:
            snapshot = list(self._data)
        return iter(snapshot)


class DirectoryStore:
    """Each key is a ``<key>.json`` file under ``root``; writes replace atomically."""

    suffix = ".json"

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key)
        if not safe or safe.strip(".") == "":
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root / f"{safe}{self.suffix}"

    def get(self, key: str) -> bytes | None:
        try:
            return self._path_for(key).read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path_for(key)
        fd, temp_name = tempfile.mkstemp(prefix=".chapterize-", dir=self.root)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def keys(self) -> Iterator[str]:
        if not self.root.is_dir():
            return iter(())
        return iter(
            sorted(
                path.name[: -len(self.suffix)]
                for path in self.root.iterdir()
                if path.is_file() and path.name.endswith(self.suffix)
            )
        )


__all__ = ["DirectoryStore", "KeyValueStore", "MemoryStore"]
