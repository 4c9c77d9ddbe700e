from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from .chunking import ChunkSpan
from .deadline import StopSignal
from .patterns import CompiledPattern
from .progress import SCAN_SHARE, ProgressReporter

logger = logging.getLogger(__name__)

DEFAULT_SCAN_BATCH = 1000


@dataclass(frozen=True)
class BoundaryCandidate:
    title: str
    offset: int
    rule_index: int = 0
    rule_name: str = ""


@dataclass
class ScanResult:
    candidates: list[BoundaryCandidate] = field(default_factory=list)
    aborted: bool = False
    chunk_count: int = 0


def scan_boundaries(
    text: str,
    patterns: Sequence[CompiledPattern],
    *,
    chunks: Sequence[ChunkSpan] | None = None,
    stop: StopSignal | None = None,
    progress: ProgressReporter | None = None,
    batch_size: int = DEFAULT_SCAN_BATCH,
) -> ScanResult:
    """
    Run every pattern over every chunk and collect heading candidates.

    Offsets are global: patterns search ``text`` between the chunk bounds,
    so ``^`` still only matches at real line starts. A match running into
    a seam that splits a line is skipped. The stop signal is
    polled after each rule pass and every ``batch_size`` matches; when it
    trips, the candidates gathered so far are returned with ``aborted`` set.
    Progress goes out at the same points, scaled to the first half of the run.
    """
    stop = stop if stop is not None else StopSignal()
    if chunks is None:
        chunks = [ChunkSpan(0, len(text))]
    batch_size = max(1, batch_size)
    total = max(1, len(text))
    result = ScanResult(chunk_count=len(chunks))

    rule_count = max(1, len(patterns))

    def _report(chunk_index: int, chunk: ChunkSpan, rule_pos: int, position: int) -> None:
        if progress is None:
            return
        within = (rule_pos + (position - chunk.start) / max(1, chunk.length)) / rule_count
        done = chunk.start + within * chunk.length
        progress.report(
            "scan",
            min(SCAN_SHARE, done / total * SCAN_SHARE),
            chunk_index=chunk_index,
            chunk_count=len(chunks),
        )

    for chunk_index, chunk in enumerate(chunks, start=1):
        cut_mid_line = chunk.end < len(text) and text[chunk.end] not in "\r\n"
        for rule_pos, compiled in enumerate(patterns):
            matched = 0
            for match in compiled.pattern.finditer(text, chunk.start, chunk.end):
                title = match.group(0).strip()
                # The next chunk rescans this line in full.
                if cut_mid_line and match.end() == chunk.end:
                    title = ""
                if title:
                    offset = match.start() + _leading_space(match.group(0))
                    result.candidates.append(
                        BoundaryCandidate(
                            title=title,
                            offset=offset,
                            rule_index=compiled.index,
                            rule_name=compiled.name,
                        )
                    )
                matched += 1
                if matched % batch_size == 0:
                    if stop.should_stop():
                        result.aborted = True
                        return result
                    _report(chunk_index, chunk, rule_pos, match.end())
            if stop.should_stop():
                result.aborted = True
                logger.debug(
                    "Scan stopped (%s) in chunk %d/%d after rule %s",
                    stop.reason,
                    chunk_index,
                    len(chunks),
                    compiled.name,
                )
                return result
            _report(chunk_index, chunk, rule_pos, chunk.end)
    logger.debug(
        "Scanned %d chars in %d chunk(s): %d candidates",
        len(text),
        len(chunks),
        len(result.candidates),
    )
    return result


def _leading_space(matched: str) -> int:
    idx = 0
    while idx < len(matched) and matched[idx].isspace():
        idx += 1
    return idx


__all__ = ["BoundaryCandidate", "DEFAULT_SCAN_BATCH", "ScanResult", "scan_boundaries"]
