from __future__ import annotations


class ChapterizeError(RuntimeError):
    """Base class for chapterize failures."""


class PatternCompileError(ChapterizeError):
    """Raised when a chapter pattern cannot be compiled."""


class ChapterRangeError(ChapterizeError, ValueError):
    """Raised when a chapter is constructed with an invalid offset range."""


class DocumentUnavailableError(ChapterizeError):
    """Raised when the document text cannot be read."""


class CacheCorruptError(ChapterizeError):
    """Raised when a cached chapter list cannot be decoded."""


__all__ = [
    "CacheCorruptError",
    "ChapterRangeError",
    "ChapterizeError",
    "DocumentUnavailableError",
    "PatternCompileError",
]
