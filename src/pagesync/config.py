"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass, fields
from pathlib import Path
from urllib.parse import quote


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "PageSync" / "pagesync.db"

    # Frozen desktop bundles always keep their data in the user's folder
    if getattr(sys, "frozen", False):
        return user_db

    local_db = Path("data/pagesync.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    pdf_dir: Path = Path("data/pdf")
    pdf_base_path: str = "/pdf"
    viewer_path: str = "/pdf-viewer.html"
    origin: str = "http://127.0.0.1:8000"
    chunk_chars: int = 1200
    overlap: int = 200

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        self.origin = self.origin.rstrip("/")

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def pdf_url(self, filename: str | None) -> str:
        """Absolute URL of a stored PDF, or an empty string without a filename."""
        if not filename:
            return ""
        return f"{self.origin}{self.pdf_base_path}/{quote(filename, safe='')}"


@dataclass(slots=True, frozen=True)
class SyncConfig:
    """Timings (seconds) and thresholds used by the synchronisation core."""

    debounce: float = 0.1
    visibility_threshold: float = 0.5
    navigation_cooldown: float = 0.4
    renderer_scroll_delay: float = 0.05
    renderer_cooldown: float = 0.3
    search_scroll_delay: float = 0.4
    search_cooldown: float = 0.5
    wheel_cooldown: float = 0.3
    liveness_interval: float = 1.0
    send_grace: float = 0.1
    renderer_error_fallback: float = 2.0
    chunks_per_page: int = 3
    window_name: str = "pdfViewer"
    window_features: str = (
        "width=1200,height=800,scrollbars=yes,resizable=yes,"
        "toolbar=no,location=no,menubar=no"
    )

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, (int, float)) and value < 0:
                raise ValueError(f"{item.name} must not be negative")
        if not 0 < self.visibility_threshold <= 1:
            raise ValueError("visibility_threshold must be in (0, 1]")
        if self.chunks_per_page < 1:
            raise ValueError("chunks_per_page must be at least 1")
