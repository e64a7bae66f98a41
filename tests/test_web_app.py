"""Tests for the FastAPI web application."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from pagesync.config import AppConfig
from pagesync.models import Chunk, DocumentInfo
from pagesync.store.storage import SQLiteChunkStore
from pagesync.web.app import _resolve_db_path, app

client = TestClient(app)


def _chunks(document_id: str, count: int, paged: bool) -> List[Chunk]:
    return [
        Chunk(
            id=f"{document_id}-{i:05d}",
            document_id=document_id,
            content=f"Clause {i} of the\nagreement.",
            page=i + 1 if paged else None,
            position=i,
        )
        for i in range(count)
    ]


@pytest.fixture
def configured(tmp_path: Path):
    """Point the app at a populated temporary database and PDF folder."""
    db_path = tmp_path / "pagesync.db"
    store = SQLiteChunkStore(db_path)
    store.upsert_document(
        DocumentInfo("lease", "Lease", total_pages=3, filename="lease.pdf"),
        _chunks("lease", 3, paged=True),
        path=tmp_path / "lease.pdf",
        sha256="h-lease",
    )
    store.upsert_document(
        DocumentInfo("notes", "Notes", total_pages=0, filename=None),
        _chunks("notes", 7, paged=False),
        path=tmp_path / "notes.pdf",
        sha256="h-notes",
    )
    store.close()

    pdf_dir = tmp_path / "pdf"
    pdf_dir.mkdir()
    (pdf_dir / "lease.pdf").write_bytes(b"%PDF-1.4 test")

    previous = app.state.config
    app.state.config = AppConfig(db_path=db_path, pdf_dir=pdf_dir, origin="http://testserver")
    yield tmp_path
    app.state.config = previous


class TestHelperFunctions:
    """Tests for helper functions."""

    def test_resolve_db_path_with_none(self) -> None:
        """Returns default path when db is None."""
        assert isinstance(_resolve_db_path(None), Path)

    def test_resolve_db_path_with_path(self, tmp_path: Path) -> None:
        db_path = tmp_path / "custom.db"
        assert _resolve_db_path(db_path) == db_path


class TestDocumentsEndpoint:
    """Tests for GET /documents."""

    def test_documents_database_not_found(self, tmp_path: Path) -> None:
        """Returns an empty listing when the database does not exist."""
        response = client.get("/documents", params={"db": str(tmp_path / "nonexistent.db")})
        assert response.status_code == 200
        assert response.json() == {
            "documents": [],
            "stats": {"document_count": 0, "chunk_count": 0},
        }

    def test_documents_success(self, configured: Path) -> None:
        response = client.get("/documents")
        data = response.json()

        assert response.status_code == 200
        assert [doc["id"] for doc in data["documents"]] == ["lease", "notes"]
        assert data["documents"][1]["chunk_count"] == 7
        assert data["stats"] == {"document_count": 2, "chunk_count": 10}


class TestDocumentEndpoint:
    """Tests for GET /documents/{id}."""

    def test_document_found(self, configured: Path) -> None:
        response = client.get("/documents/lease")
        data = response.json()

        assert response.status_code == 200
        assert data["document"] == {
            "id": "lease",
            "title": "Lease",
            "total_pages": 3,
            "filename": "lease.pdf",
        }
        assert data["pdfUrl"] == "http://testserver/pdf/lease.pdf"

    def test_document_without_file(self, configured: Path) -> None:
        assert client.get("/documents/notes").json()["pdfUrl"] == ""

    def test_document_not_found(self, configured: Path) -> None:
        response = client.get("/documents/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "Document missing not found"

    def test_database_not_found(self, tmp_path: Path) -> None:
        response = client.get("/documents/lease", params={"db": str(tmp_path / "none.db")})
        assert response.status_code == 404
        assert "Database not found" in response.json()["detail"]


class TestPagesEndpoint:
    """Tests for GET /documents/{id}/pages."""

    def test_stored_pages(self, configured: Path) -> None:
        data = client.get("/documents/lease/pages").json()

        assert data["estimation"] == "metadata"
        assert data["totalPages"] == 3
        assert [group["page"] for group in data["pages"]] == [1, 2, 3]
        first = data["pages"][0]["chunks"][0]
        assert first["id"] == "lease-00000"
        assert first["content"] == "Clause 0 of the agreement."

    def test_estimated_pages(self, configured: Path) -> None:
        data = client.get("/documents/notes/pages").json()

        assert data["estimation"] == "fixed_density"
        assert data["totalPages"] == 3
        assert [len(group["chunks"]) for group in data["pages"]] == [3, 3, 1]

    def test_unknown_document(self, configured: Path) -> None:
        assert client.get("/documents/missing/pages").status_code == 404


class TestPdfEndpoint:
    """Tests for GET /pdf/{filename}."""

    def test_serves_pdf(self, configured: Path) -> None:
        response = client.get("/pdf/lease.pdf")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 test"

    def test_missing_file(self, configured: Path) -> None:
        assert client.get("/pdf/other.pdf").status_code == 404

    def test_non_pdf_file(self, configured: Path) -> None:
        (configured / "pdf" / "notes.txt").write_text("x")
        assert client.get("/pdf/notes.txt").status_code == 404

    def test_symlink_outside_folder_rejected(self, configured: Path) -> None:
        secret = configured / "secret.pdf"
        secret.write_bytes(b"%PDF secret")
        (configured / "pdf" / "link.pdf").symlink_to(secret)

        response = client.get("/pdf/link.pdf")
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid filename"


def _until(websocket: Any, event: str) -> List[Dict[str, Any]]:
    received = []
    while True:
        message = websocket.receive_json()
        received.append(message)
        if message["event"] == event:
            return received


class TestSessionSocket:
    """Tests for the /ws/session WebSocket."""

    def test_initial_state_is_empty(self, configured: Path) -> None:
        with client.websocket_connect("/ws/session") as websocket:
            state = websocket.receive_json()

        assert state["event"] == "state"
        assert state["documentId"] is None
        assert state["display"] == "empty"

    def test_load_and_navigate(self, configured: Path) -> None:
        with client.websocket_connect("/ws/session") as websocket:
            websocket.receive_json()

            websocket.send_json({"action": "load", "documentId": "lease"})
            state = _until(websocket, "state")[-1]
            assert state["totalPages"] == 3
            assert state["pdfUrl"] == "http://testserver/pdf/lease.pdf"

            websocket.send_json({"action": "goto", "page": 3})
            received = _until(websocket, "state")

        assert {"event": "page", "page": 3, "origin": "navigation"} in received
        assert received[-1]["currentPage"] == 3

    def test_toggle_view_asks_browser_to_open_window(self, configured: Path) -> None:
        with client.websocket_connect("/ws/session") as websocket:
            websocket.receive_json()
            websocket.send_json({"action": "load", "documentId": "lease"})
            _until(websocket, "state")

            websocket.send_json({"action": "toggleView"})
            received = _until(websocket, "state")

        opened = [message for message in received if message["event"] == "openWindow"]
        assert len(opened) == 1
        assert opened[0]["url"].startswith("/pdf-viewer.html?")
        assert received[-1]["window"] == "opened"

    def test_malformed_json(self, configured: Path) -> None:
        with client.websocket_connect("/ws/session") as websocket:
            websocket.receive_json()
            websocket.send_text("{not json")
            message = websocket.receive_json()

        assert message == {"event": "error", "detail": "Malformed JSON"}

    def test_database_not_found(self, tmp_path: Path) -> None:
        previous = app.state.config
        app.state.config = AppConfig(db_path=tmp_path / "none.db")
        try:
            with client.websocket_connect("/ws/session") as websocket:
                message = websocket.receive_json()
        finally:
            app.state.config = previous

        assert message["event"] == "error"
        assert "Database not found" in message["detail"]

    def test_writer_failure_is_collected_on_close(
        self, configured: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        async def failing_writer(websocket: Any, events: Any) -> None:
            raise RuntimeError("send failed")

        caplog.set_level(logging.DEBUG, logger="pagesync.web.app")
        with patch("pagesync.web.app._pump_events", failing_writer):
            with client.websocket_connect("/ws/session") as websocket:
                websocket.send_json({"action": "next"})

        assert "Event writer stopped: send failed" in caplog.text
