"""FastAPI application backing the PageSync web UI."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from pagesync import __version__
from pagesync.bridge.external import WindowOpener
from pagesync.config import AppConfig, SyncConfig
from pagesync.paging.estimator import PageEstimator
from pagesync.paging.index import ChunkPageIndex
from pagesync.session import StoreDocumentSource, ViewerSession
from pagesync.store.storage import SQLiteChunkStore
from pagesync.sync.timers import AsyncioScheduler
from pagesync.utils.files import resolve_within
from pagesync.utils.text import normalize_display_text
from pagesync.web.frontend import router as frontend_router
from pagesync.web.panel import EventQueue, RemoteWindowOpener, SessionController, WebSocketPanel

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="PageSync Web", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(frontend_router)

app.state.config = AppConfig()
app.state.sync_config = SyncConfig()
# Desktop shell installs a native window opener; browsers get a remote proxy.
app.state.window_opener_factory = None


def get_config() -> AppConfig:
    return app.state.config


def _resolve_db_path(db: Path | None) -> Path:
    config = get_config()
    if db is not None:
        config = AppConfig(db_path=db)
    return config.resolve_db_path(Path.cwd())


def _open_store(db: Path | None) -> SQLiteChunkStore:
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        raise HTTPException(status_code=404, detail=f"Database not found at {resolved_db}")
    return SQLiteChunkStore(resolved_db)


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/documents")
async def list_documents(db: Path | None = None) -> dict[str, Any]:
    """List all ingested documents."""
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        return {"documents": [], "stats": {"document_count": 0, "chunk_count": 0}}

    store = SQLiteChunkStore(resolved_db)
    try:
        documents = store.list_documents()
        stats = store.get_stats()
    finally:
        store.close()
    return {"documents": documents, "stats": stats}


@app.get("/documents/{document_id}")
async def get_document(document_id: str, db: Path | None = None) -> dict[str, Any]:
    store = _open_store(db)
    try:
        document = store.get_document(document_id)
    finally:
        store.close()

    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return {"document": asdict(document), "pdfUrl": get_config().pdf_url(document.filename)}


@app.get("/documents/{document_id}/pages")
async def get_document_pages(document_id: str, db: Path | None = None) -> dict[str, Any]:
    """Chunks grouped by resolved page, estimated when the store has no pages."""
    store = _open_store(db)
    try:
        document = store.get_document(document_id)
        chunks = store.get_chunks(document_id) if document is not None else []
    finally:
        store.close()

    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")

    estimator = PageEstimator(app.state.sync_config.chunks_per_page)
    index = ChunkPageIndex.build(chunks, document.total_pages, estimator)
    return {
        "documentId": document.id,
        "title": document.title,
        "estimation": index.mode.value,
        "totalPages": index.total_pages,
        "pages": [
            {
                "page": group.page,
                "chunks": [
                    {
                        "id": chunk.id,
                        "section": chunk.section,
                        "content": normalize_display_text(chunk.content),
                    }
                    for chunk in group.chunks
                ],
            }
            for group in index.groups()
        ],
    }


@app.get("/pdf/{filename}")
async def serve_pdf(filename: str) -> FileResponse:
    pdf_dir = Path(get_config().pdf_dir).expanduser()
    path = resolve_within(pdf_dir, filename)
    if path is None:
        raise HTTPException(status_code=400, detail="Invalid filename")
    if path.suffix.lower() != ".pdf" or not path.is_file():
        raise HTTPException(status_code=404, detail=f"File not found: {filename}")
    return FileResponse(path, media_type="application/pdf")


async def _pump_events(websocket: WebSocket, events: EventQueue) -> None:
    while True:
        await websocket.send_json(await events.get())


def _window_opener(events: EventQueue) -> tuple[WindowOpener, RemoteWindowOpener | None]:
    factory: Callable[[], WindowOpener] | None = app.state.window_opener_factory
    if factory is not None:
        return factory(), None
    remote = RemoteWindowOpener(events)
    return remote, remote


@app.websocket("/ws/session")
async def session_socket(websocket: WebSocket) -> None:
    """Drive one viewer session from a browser panel."""
    await websocket.accept()
    resolved_db = _resolve_db_path(None)
    if not resolved_db.exists():
        await websocket.send_json(
            {"event": "error", "detail": f"Database not found at {resolved_db}"}
        )
        await websocket.close(code=1011)
        return

    events = EventQueue()
    opener, remote = _window_opener(events)
    store = SQLiteChunkStore(resolved_db)
    session = ViewerSession(
        StoreDocumentSource(store),
        AsyncioScheduler(asyncio.get_running_loop()),
        app_config=get_config(),
        sync_config=app.state.sync_config,
        panel=WebSocketPanel(events),
        opener=opener,
        navigate=lambda url: events.emit("navigate", url=url),
    )
    controller = SessionController(session, events, remote)
    controller.emit_state()
    writer = asyncio.create_task(_pump_events(websocket, events))

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                events.emit("error", detail="Malformed JSON")
                continue
            await controller.submit(data)
    except WebSocketDisconnect:
        LOGGER.info("Session socket disconnected")
    finally:
        writer.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        except (WebSocketDisconnect, RuntimeError) as exc:
            LOGGER.debug("Event writer stopped: %s", exc)
        await controller.aclose()
        session.close()
        store.close()
