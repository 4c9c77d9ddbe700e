from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from .errors import DocumentUnavailableError

TEXT_EXTS = (".txt", ".text", ".md")
_TEXT_ENCODINGS = ("utf-8", "gb18030")


@dataclass(frozen=True)
class Document:
    id: str
    title: str
    content: str
    chapter_ids: tuple[str, ...] = field(default=())

    @property
    def length(self) -> int:
        return len(self.content)


class DocumentRegistry(Protocol):
    def update(self, document: Document) -> None:
        ...

    def add_to_group(self, item_id: str, group_id: str) -> None:
        ...


class InMemoryDocumentRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: dict[str, Document] = {}
        self._groups: dict[str, list[str]] = {}

    def update(self, document: Document) -> None:
        with self._lock:
            self._documents[document.id] = document

    def get(self, document_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def remove(self, document_id: str) -> None:
        with self._lock:
            self._documents.pop(document_id, None)
            self._groups.pop(document_id, None)

    def add_to_group(self, item_id: str, group_id: str) -> None:
        with self._lock:
            members = self._groups.setdefault(group_id, [])
            if item_id not in members:
                members.append(item_id)

    def clear_group(self, group_id: str) -> None:
        with self._lock:
            self._groups.pop(group_id, None)

    def group(self, group_id: str) -> list[str]:
        with self._lock:
            return list(self._groups.get(group_id, ()))


def document_id_for_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def document_from_text(text: str, title: str, document_id: str | None = None) -> Document:
    return Document(
        id=document_id or document_id_for_text(text),
        title=title.strip() or "Untitled",
        content=text,
    )


def with_chapter_ids(document: Document, chapter_ids: list[str]) -> Document:
    return replace(document, chapter_ids=tuple(chapter_ids))


def _decode_text(raw: bytes) -> str:
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8", errors="replace")
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        return raw.decode("utf-16", errors="replace")
    for enc in _TEXT_ENCODINGS:
        try:
            return raw.decode(enc)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


def load_document(path: Path) -> Document:
    """Read a plain-text file; the document id is the sha1 of its text."""
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise DocumentUnavailableError(f"Cannot read document {path}: {exc}") from exc
    text = _decode_text(raw).replace("\r\n", "\n")
    return document_from_text(text, Path(path).stem)


def list_text_documents(root: Path) -> list[Path]:
    root = Path(root)
    if not root.is_dir():
        raise DocumentUnavailableError(f"Not a directory: {root}")
    return sorted(
        (entry for entry in root.iterdir() if entry.is_file() and entry.suffix.lower() in TEXT_EXTS),
        key=lambda entry: entry.name.casefold(),
    )


__all__ = [
    "Document",
    "DocumentRegistry",
    "InMemoryDocumentRegistry",
    "TEXT_EXTS",
    "document_from_text",
    "document_id_for_text",
    "list_text_documents",
    "load_document",
    "with_chapter_ids",
]
