from __future__ import annotations

import argparse
import json
import sys
from importlib import metadata
from pathlib import Path
from typing import Mapping

import tomllib
import uvicorn
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .cache import ChapterCache
from .chapters import Chapter
from .core import SegmentationResult, SegmentConfig
from .errors import DocumentUnavailableError
from .jobs import SegmentationManager
from .library import Document, list_text_documents, load_document
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .store import DirectoryStore, KeyValueStore, MemoryStore
from .web import WebConfig, create_app


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("chapterize")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"chapterize {__version__}",
    )


def _add_store_flag(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument(
        "--store",
        required=required,
        help="Directory holding cached chapter lists.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="chapterize",
        description=(
            "Split long plain-text books into chapters. Subcommands: "
            "segment, show, clear, serve."
        ),
    )
    _add_version_flag(ap)
    return ap


def build_segment_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="chapterize segment",
        description="Segment a text file (or every text file in a directory) into chapters.",
    )
    _add_version_flag(ap)
    ap.add_argument("path", help="Path to a .txt file or a directory of text files.")
    _add_store_flag(ap, required=False)
    ap.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds before segmentation stops and returns what it has (0 disables).",
    )
    ap.add_argument(
        "--loose",
        action="store_true",
        help="Retry with loose numbered-line headings when no chapter heading is found.",
    )
    ap.add_argument(
        "--max-chapter-chars",
        type=int,
        default=None,
        help="Chapters longer than this are split into parts.",
    )
    ap.add_argument(
        "--part-chars",
        type=int,
        default=None,
        help="Target length of each part when splitting long chapters.",
    )
    ap.add_argument(
        "--auto-segment",
        type=int,
        default=None,
        metavar="N",
        help="Cut headingless text into 'Part N' chunks of about N characters.",
    )
    ap.add_argument("--json", action="store_true", help="Print the result as JSON.")
    ap.add_argument(
        "--force",
        action="store_true",
        help="Ignore cached chapters and segment again.",
    )
    ap.add_argument("--debug", action="store_true", help="Enable verbose debug logging.")
    return ap


def build_show_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="chapterize show",
        description="Print the cached chapters of a document.",
    )
    ap.add_argument("document_id", help="Document id (sha1 of the text).")
    _add_store_flag(ap, required=True)
    ap.add_argument("--json", action="store_true", help="Print the chapters as JSON.")
    return ap


def build_clear_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="chapterize clear",
        description="Remove the cached chapters of a document.",
    )
    ap.add_argument("document_id", help="Document id (sha1 of the text).")
    _add_store_flag(ap, required=True)
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="chapterize serve",
        description="Run the chapter segmentation HTTP service.",
    )
    _add_version_flag(ap)
    _add_store_flag(ap, required=False)
    ap.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1).")
    ap.add_argument("--port", type=int, default=2345, help="Port to bind (default: 2345).")
    ap.add_argument(
        "--workers",
        type=int,
        default=2,
        help="Segmentation worker threads (default: 2, env CHAPTERIZE_WORKERS).",
    )
    ap.add_argument("--debug", action="store_true", help="Enable verbose debug logging.")
    return ap


def _open_store(raw: str | None) -> KeyValueStore:
    if not raw:
        return MemoryStore()
    return DirectoryStore(Path(raw).expanduser().resolve())


def _config_from_args(args: argparse.Namespace) -> SegmentConfig:
    config = SegmentConfig.from_env()
    if args.timeout is not None:
        config.timeout_seconds = args.timeout if args.timeout > 0 else None
    if args.loose:
        config.allow_loose = True
    if args.max_chapter_chars is not None:
        if args.max_chapter_chars <= 0:
            raise SystemExit("--max-chapter-chars must be positive.")
        config.max_chapter_chars = args.max_chapter_chars
    if args.part_chars is not None:
        if args.part_chars <= 0:
            raise SystemExit("--part-chars must be positive.")
        config.split_part_chars = args.part_chars
    if args.auto_segment is not None:
        if args.auto_segment <= 0:
            raise SystemExit("--auto-segment must be positive.")
        config.auto_segment_chars = args.auto_segment
    return config


def _truncate(text: str, width: int = 40) -> str:
    text = text.strip()
    if len(text) <= width:
        return text
    return text[: max(0, width - 1)] + "…"


def _chapters_table(title: str, chapters: list[Chapter]) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Chars", justify="right")
    table.add_column("Id", style="dim")
    for index, chapter in enumerate(chapters, start=1):
        table.add_row(
            str(index),
            _truncate(chapter.title),
            str(chapter.start_offset),
            str(chapter.end_offset),
            str(chapter.length),
            chapter.id[:8],
        )
    return table


def _segment_one(
    manager: SegmentationManager,
    document: Document,
    *,
    force: bool,
    show_progress: bool,
    console: Console,
) -> SegmentationResult:
    if not show_progress:
        return manager.submit(document, force=force).result()
    with Progress(
        TextColumn("{task.description}", justify="left"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TextColumn("{task.fields[detail]}", justify="left"),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task(_truncate(document.title, 24), total=100, detail="")

        def _on_progress(event: Mapping[str, object]) -> None:
            percentage = event.get("percentage")
            detail = str(event.get("event") or "")
            if isinstance(percentage, (int, float)):
                progress.update(task_id, completed=float(percentage), detail=detail)

        job = manager.submit(document, progress=_on_progress, force=force)
        try:
            return job.result()
        except KeyboardInterrupt:
            job.cancel()
            console.print("[yellow]Cancelling; keeping the chapters found so far…[/yellow]")
            return job.result()


def _run_segment(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))
    console = Console(stderr=True)
    out = Console()
    config = _config_from_args(args)
    target = Path(args.path).expanduser()
    try:
        paths = list_text_documents(target) if target.is_dir() else [target]
    except DocumentUnavailableError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    if not paths:
        console.print(f"[yellow]No text files found in {target}[/yellow]")
        return 1

    manager = SegmentationManager(ChapterCache(_open_store(args.store)), config=config, max_workers=1)
    payloads: list[dict[str, object]] = []
    exit_code = 0
    try:
        for path in paths:
            try:
                document = load_document(path)
            except DocumentUnavailableError as exc:
                console.print(f"[red]{exc}[/red]")
                exit_code = 1
                continue
            result = _segment_one(
                manager,
                document,
                force=args.force,
                show_progress=not args.json,
                console=console,
            )
            if args.json:
                payload = result.to_payload()
                payload["title"] = document.title
                payloads.append(payload)
                continue
            out.print(_chapters_table(f"{document.title} ({document.id[:12]})", result.chapters))
            note = "cached" if result.from_cache else f"{result.elapsed:.2f}s"
            if result.stopped:
                console.print(
                    f"[yellow]Stopped ({result.stopped}); result was not cached.[/yellow]"
                )
            console.print(f"{len(result.chapters)} chapter(s), {note}")
    finally:
        manager.shutdown(wait=True)

    if args.json:
        body: object = payloads[0] if len(payloads) == 1 else payloads
        print(json.dumps(body, ensure_ascii=False, indent=2))
    return exit_code


def _run_show(args: argparse.Namespace) -> int:
    cache = ChapterCache(_open_store(args.store))
    chapters = cache.load(args.document_id)
    if chapters is None:
        Console(stderr=True).print(f"[red]No cached chapters for {args.document_id}[/red]")
        return 1
    if args.json:
        payload = [chapter.to_payload() for chapter in chapters]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0
    Console().print(_chapters_table(args.document_id, chapters))
    return 0


def _run_clear(args: argparse.Namespace) -> int:
    cache = ChapterCache(_open_store(args.store))
    if cache.clear(args.document_id):
        print(f"Cleared cached chapters for {args.document_id}")
    else:
        print(f"No cached chapters for {args.document_id}")
    return 0


def _run_serve(args: argparse.Namespace) -> None:
    set_debug_logging(bool(args.debug))
    store_dir = Path(args.store).expanduser().resolve() if args.store else None
    config = WebConfig(
        store_dir=store_dir,
        workers=max(1, args.workers),
        segment=SegmentConfig.from_env(),
    )
    app = create_app(config)
    print(f"Serving chapterize on http://{args.host}:{args.port}/")
    print(f"Cache: {store_dir or 'in memory'}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
        log_config=build_uvicorn_log_config(bool(args.debug)),
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "segment":
        return _run_segment(build_segment_parser().parse_args(argv[1:]))
    if argv and argv[0] == "show":
        return _run_show(build_show_parser().parse_args(argv[1:]))
    if argv and argv[0] == "clear":
        return _run_clear(build_clear_parser().parse_args(argv[1:]))
    if argv and argv[0] == "serve":
        _run_serve(build_serve_parser().parse_args(argv[1:]))
        return 0

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    parser.error(f"Unknown command: {argv[0]}")
    return 2


__all__ = ["build_parser", "main"]
