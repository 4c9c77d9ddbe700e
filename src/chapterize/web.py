from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .cache import ChapterCache
from .core import SegmentConfig
from .jobs import SegmentationManager
from .library import InMemoryDocumentRegistry, document_from_text
from .store import DirectoryStore, KeyValueStore, MemoryStore

MAX_TITLE_CHARS = 200


@dataclass
class WebConfig:
    store_dir: Path | None = None
    workers: int = 2
    segment: SegmentConfig = field(default_factory=SegmentConfig.from_env)


def _open_store(store_dir: Path | None) -> KeyValueStore:
    if store_dir is None:
        return MemoryStore()
    root = store_dir.expanduser().resolve()
    if root.exists() and not root.is_dir():
        raise NotADirectoryError(f"Store path is not a directory: {root}")
    return DirectoryStore(root)


def create_app(config: WebConfig) -> FastAPI:
    cache = ChapterCache(_open_store(config.store_dir))
    registry = InMemoryDocumentRegistry()
    manager = SegmentationManager(
        cache,
        registry,
        config.segment,
        max_workers=config.workers,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        manager.shutdown()

    app = FastAPI(title="chapterize", lifespan=lifespan)
    app.state.manager = manager
    app.state.registry = registry

    @app.get("/api/jobs")
    def api_jobs() -> JSONResponse:
        return JSONResponse({"jobs": manager.list_jobs()})

    @app.get("/api/jobs/{job_id}")
    def api_job(job_id: str) -> JSONResponse:
        job = manager.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return JSONResponse({"job": job.to_payload()})

    @app.post("/api/documents")
    def api_submit_document(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        content = payload.get("content")
        if not isinstance(content, str):
            raise HTTPException(status_code=400, detail="content must be a string.")
        title = payload.get("title") or "Untitled"
        if not isinstance(title, str):
            raise HTTPException(status_code=400, detail="title must be a string.")
        document_id = payload.get("id")
        if document_id is not None and (not isinstance(document_id, str) or not document_id.strip()):
            raise HTTPException(status_code=400, detail="id must be a non-empty string.")
        force = payload.get("force", False)
        if not isinstance(force, bool):
            raise HTTPException(status_code=400, detail="force must be a boolean.")
        document = document_from_text(
            content.replace("\r\n", "\n"),
            title[:MAX_TITLE_CHARS],
            document_id.strip() if isinstance(document_id, str) else None,
        )
        registry.update(document)
        job = manager.submit(document, force=force)
        return JSONResponse({"job": job.to_payload()})

    @app.get("/api/documents/{document_id}/chapters")
    def api_chapters(document_id: str) -> JSONResponse:
        chapters = manager.get_cached(document_id)
        if chapters is None:
            raise HTTPException(status_code=404, detail="No chapters for document")
        return JSONResponse(
            {
                "document_id": document_id,
                "chapters": [chapter.to_payload() for chapter in chapters],
            }
        )

    @app.get("/api/documents/{document_id}/chapters/{chapter_id}")
    def api_chapter(document_id: str, chapter_id: str) -> JSONResponse:
        chapters = manager.get_cached(document_id) or []
        chapter = next((item for item in chapters if item.id == chapter_id), None)
        if chapter is None:
            raise HTTPException(status_code=404, detail="Chapter not found")
        document = registry.get(document_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Document text not loaded")
        payload = chapter.to_payload()
        payload["number"] = chapter.chapter_number
        payload["text"] = chapter.content(document.content)
        return JSONResponse(payload)

    @app.delete("/api/documents/{document_id}/chapters")
    def api_clear_chapters(document_id: str) -> JSONResponse:
        cleared = manager.clear(document_id)
        return JSONResponse({"document_id": document_id, "cleared": cleared})

    return app


__all__ = ["WebConfig", "create_app"]
