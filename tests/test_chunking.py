from __future__ import annotations

from chapterize.chunking import ChunkSpan, plan_chunks


def test_small_text_is_one_chunk() -> None:
    text = "第一章\n" + "字" * 100
    assert plan_chunks(text, threshold=1000) == [ChunkSpan(0, len(text))]


def test_chunks_start_on_line_boundaries_and_cover_text() -> None:
    text = ("x" * 59 + "\n") * 60
    chunks = plan_chunks(text, threshold=1000, chunk_size=250, lookback=100)

    assert len(chunks) > 1
    assert chunks[0].start == 0
    assert chunks[-1].end == len(text)
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start <= previous.end
        assert previous.end - current.start <= 100
        assert text[current.start - 1] == "\n"


def test_chunk_start_unchanged_without_nearby_line_break() -> None:
    text = "a" * 3000
    chunks = plan_chunks(text, threshold=1000, chunk_size=1000, lookback=100)
    assert [chunk.start for chunk in chunks] == [0, 1000, 2000]
    assert [chunk.end for chunk in chunks] == [1000, 2000, 3000]


def test_empty_text_has_single_empty_chunk() -> None:
    chunks = plan_chunks("")
    assert chunks == [ChunkSpan(0, 0)]
    assert chunks[0].length == 0
