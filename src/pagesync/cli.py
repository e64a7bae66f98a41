"""Command line interface for PageSync."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from pagesync.config import AppConfig, SyncConfig
from pagesync.paging.estimator import EstimationMode, PageEstimator
from pagesync.paging.index import ChunkPageIndex
from pagesync.store.indexer import Indexer
from pagesync.store.storage import SQLiteChunkStore
from pagesync.sync.search import find_matches, normalize_query
from pagesync.utils.files import iter_pdf_paths
from pagesync.utils.text import preview
from pagesync.web.app import app as web_app


console = Console()
app = typer.Typer(help="PageSync - page-synchronised reading of chunked PDFs")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_db(db: Path | None) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


def _open_existing_store(db: Path | None) -> SQLiteChunkStore:
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")
    return SQLiteChunkStore(resolved_db)


def _load_index(store: SQLiteChunkStore, document_id: str) -> ChunkPageIndex:
    document = store.get_document(document_id)
    if document is None:
        raise typer.BadParameter(f"Unknown document: {document_id}")
    chunks = store.get_chunks(document_id)
    estimator = PageEstimator(SyncConfig().chunks_per_page)
    return ChunkPageIndex.build(chunks, document.total_pages, estimator)


@app.command()
def ingest(
    inputs: List[Path] = typer.Argument(
        ..., help="Paths with PDFs to ingest.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    chunk_chars: int = typer.Option(AppConfig().chunk_chars, help="Chunk size in characters"),
    overlap: int = typer.Option(AppConfig().overlap, help="Chunk overlap"),
    no_page_metadata: bool = typer.Option(
        False, "--no-page-metadata", help="Store chunks without page numbers"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Split PDFs into chunks and store them."""
    _setup_logging(verbose)
    config = AppConfig(
        db_path=db if db is not None else AppConfig().db_path,
        chunk_chars=chunk_chars,
        overlap=overlap,
    )

    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    pdf_paths = list(iter_pdf_paths(inputs))
    if not pdf_paths:
        console.print("[yellow]No PDFs found.[/yellow]")
        return

    store = SQLiteChunkStore(resolved_db)
    indexer = Indexer(
        store,
        chunk_chars=config.chunk_chars,
        overlap=config.overlap,
        keep_pages=not no_page_metadata,
    )
    console.print(f"Ingesting into [bold]{resolved_db}[/bold]...")
    try:
        stats = indexer.index(pdf_paths)
    finally:
        store.close()
    console.print(
        f"Inserted: {stats.inserted}, updated: {stats.updated}, "
        f"skipped: {stats.skipped}, failed: {stats.failed}"
    )


@app.command()
def documents(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """List stored documents."""
    store = _open_existing_store(db)
    try:
        rows = store.list_documents()
    finally:
        store.close()

    if not rows:
        console.print("[yellow]No documents stored.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("File")
    table.add_column("Pages", justify="right")
    table.add_column("Chunks", justify="right")
    for row in rows:
        table.add_row(
            row["id"],
            row["title"] or "",
            row["filename"] or "",
            str(row["total_pages"] or "-"),
            str(row["chunk_count"]),
        )
    console.print(table)


@app.command()
def pages(
    document_id: str = typer.Argument(..., help="Document id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show how a document's chunks are grouped into pages."""
    store = _open_existing_store(db)
    try:
        index = _load_index(store, document_id)
    finally:
        store.close()

    if index.is_empty:
        console.print("[yellow]Document has no chunks.[/yellow]")
        return

    if index.mode is not EstimationMode.METADATA:
        console.print(f"[cyan]Pages estimated ({index.mode.value}).[/cyan]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Page", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("First chunk")
    for group in index.groups():
        first = group.chunks[0].content.replace("\n", " ")
        table.add_row(str(group.page), str(len(group)), preview(first, 80))
    console.print(table)
    console.print(f"Total pages: {index.total_pages}")


@app.command()
def find(
    document_id: str = typer.Argument(..., help="Document id"),
    query: str = typer.Argument(..., help="Text to look for"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Find chunks containing QUERY and the page each one is on."""
    needle = normalize_query(query)
    if not needle:
        raise typer.BadParameter("Empty query")

    store = _open_existing_store(db)
    try:
        index = _load_index(store, document_id)
        chunks = store.get_chunks(document_id)
    finally:
        store.close()

    matches = find_matches(chunks, needle)
    if not matches:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Page", justify="right")
    table.add_column("Chunk")
    table.add_column("Snippet")
    for number, chunk in enumerate(matches, start=1):
        snippet = chunk.content.replace("\n", " ")
        table.add_row(
            f"{number}/{len(matches)}",
            str(index.page_of(chunk.id) or "-"),
            chunk.id,
            preview(snippet, 120),
        )
    console.print(table)


@app.command()
def prune(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove documents that no longer exist on disk."""
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    store = SQLiteChunkStore(resolved_db)
    try:
        removed = store.remove_missing_files()
    finally:
        store.close()
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    pdf_dir: Path = typer.Option(None, "--pdf-dir", help="Directory the PDFs are served from"),
) -> None:
    """Start the web interface."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with "
            "\"python -m pip install '.[web]'\""
        ) from exc

    defaults = AppConfig()
    config = AppConfig(
        db_path=db if db is not None else defaults.db_path,
        pdf_dir=pdf_dir if pdf_dir is not None else defaults.pdf_dir,
        origin=f"http://{host}:{port}",
    )
    resolved_db = config.resolve_db_path(Path.cwd())
    config.db_path = resolved_db
    if not resolved_db.exists():
        console.print(
            "[yellow]Warning: database not found, run 'pagesync ingest' first.[/yellow]"
        )

    web_app.state.config = config
    console.print(
        f"Starting web interface on {config.origin} "
        f"(database: {resolved_db}, PDFs: {config.pdf_dir})"
    )
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
