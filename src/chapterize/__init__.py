from .cache import ChapterCache
from .chapters import Chapter, chapter_number_from_title, parse_chinese_numeral
from .core import SegmentationResult, SegmentConfig, segment_text
from .deadline import Deadline, StopSignal
from .errors import (
    CacheCorruptError,
    ChapterizeError,
    ChapterRangeError,
    DocumentUnavailableError,
    PatternCompileError,
)
from .jobs import SegmentationJob, SegmentationManager
from .library import Document, InMemoryDocumentRegistry, document_from_text, load_document
from .paragraphs import TextParagraph, split_paragraphs
from .store import DirectoryStore, MemoryStore

__all__ = [
    "Chapter",
    "ChapterCache",
    "SegmentConfig",
    "SegmentationResult",
    "segment_text",
    "SegmentationJob",
    "SegmentationManager",
    "Document",
    "InMemoryDocumentRegistry",
    "document_from_text",
    "load_document",
    "Deadline",
    "StopSignal",
    "DirectoryStore",
    "MemoryStore",
    "TextParagraph",
    "split_paragraphs",
    "chapter_number_from_title",
    "parse_chinese_numeral",
    "ChapterizeError",
    "ChapterRangeError",
    "CacheCorruptError",
    "DocumentUnavailableError",
    "PatternCompileError",
]
