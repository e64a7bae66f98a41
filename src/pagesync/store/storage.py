"""SQLite chunk store."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence

from pagesync.models import Chunk, DocumentInfo


class SQLiteChunkStore:
    """Persistence layer for documents and their ordered chunks."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    filename TEXT,
                    title TEXT,
                    total_pages INTEGER NOT NULL DEFAULT 0,
                    sha256 TEXT NOT NULL,
                    mtime REAL NOT NULL,
                    size INTEGER NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    page INTEGER,
                    section TEXT,
                    keywords TEXT,
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chunks_document_position
                    ON chunks(document_id, position)
                """
            )

    def upsert_document(
        self,
        document: DocumentInfo,
        chunks: Sequence[Chunk],
        *,
        path: Path,
        sha256: str,
        mtime: float = 0.0,
        size: int = 0,
    ) -> str:
        """Insert or replace a document and its chunks.

        Returns 'inserted', 'updated', or 'skipped' (same path, same content).
        """
        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT id, sha256 FROM documents WHERE path = ?",
                (str(path),),
            ).fetchone()

            if existing and existing["sha256"] == sha256:
                return "skipped"

            if existing:
                self._delete(conn, existing["id"])
            self._delete(conn, document.id)

            conn.execute(
                """
                INSERT INTO documents(id, path, filename, title, total_pages, sha256, mtime, size)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    str(path),
                    document.filename,
                    document.title,
                    document.total_pages,
                    sha256,
                    mtime,
                    size,
                ),
            )
            conn.executemany(
                """
                INSERT INTO chunks(id, document_id, position, content, page, section, keywords)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk.id,
                        document.id,
                        chunk.position,
                        chunk.content,
                        chunk.page,
                        chunk.section,
                        json.dumps(list(chunk.keywords), ensure_ascii=True),
                    )
                    for chunk in chunks
                ],
            )
            return "updated" if existing else "inserted"

    def get_document(self, document_id: str) -> DocumentInfo | None:
        row = self._conn.execute(
            "SELECT id, title, total_pages, filename FROM documents WHERE id = ?",
            (document_id,),
        ).fetchone()
        if row is None:
            return None
        return DocumentInfo(
            id=row["id"],
            title=row["title"] or "",
            total_pages=row["total_pages"] or 0,
            filename=row["filename"],
        )

    def get_chunks(self, document_id: str) -> List[Chunk]:
        rows = self._conn.execute(
            """
            SELECT id, document_id, position, content, page, section, keywords
            FROM chunks
            WHERE document_id = ?
            ORDER BY position, id
            """,
            (document_id,),
        ).fetchall()
        return [
            Chunk(
                id=row["id"],
                document_id=row["document_id"],
                content=row["content"],
                page=row["page"],
                section=row["section"],
                position=row["position"],
                keywords=tuple(json.loads(row["keywords"])) if row["keywords"] else (),
            )
            for row in rows
        ]

    def list_documents(self) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            """
            SELECT d.id, d.title, d.filename, d.path, d.total_pages,
                   COUNT(c.id) AS chunk_count
            FROM documents d
            LEFT JOIN chunks c ON c.document_id = d.id
            GROUP BY d.id
            ORDER BY d.title COLLATE NOCASE
            """
        ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> Dict[str, int]:
        documents = self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        chunks = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return {"document_count": documents, "chunk_count": chunks}

    def delete_document(self, document_id: str) -> bool:
        with self.transaction() as conn:
            return self._delete(conn, document_id)

    def remove_missing_files(self) -> int:
        """Remove documents whose files no longer exist."""
        with self.transaction() as conn:
            rows = conn.execute("SELECT id, path FROM documents").fetchall()
            missing = [row for row in rows if not Path(row["path"]).exists()]
            for row in missing:
                self._delete(conn, row["id"])
        return len(missing)

    @staticmethod
    def _delete(conn: sqlite3.Connection, document_id: str) -> bool:
        conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cursor.rowcount > 0
