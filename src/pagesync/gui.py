"""Desktop GUI launcher for PageSync using pywebview.

The FastAPI app runs in a background thread and a native window shows the
text panel. The external PDF viewer is opened as a second native window, so
its ``closed`` event is what tells the session that the viewer is gone.
"""

from __future__ import annotations

import multiprocessing
import sys

if __name__ == "__main__":
    multiprocessing.freeze_support()

import logging
import os
import socket
import threading
import time
from pathlib import Path

from pagesync.bridge.webview import WebviewWindowOpener
from pagesync.config import AppConfig

logger = logging.getLogger(__name__)

HOST = "127.0.0.1"


def _log_dir() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("LOCALAPPDATA", Path.home())) / "PageSync" / "logs"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Logs" / "PageSync"
    return Path.home() / ".local" / "share" / "pagesync" / "logs"


def _setup_logging() -> Path:
    """Log INFO to the console and DEBUG to a per-user file; returns the file."""
    log_dir = _log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "pagesync.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    return log_file


def _find_free_port(host: str = HOST) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def _wait_for_server(host: str, port: int, timeout: float = 30.0) -> bool:
    """Poll until the server accepts connections or ``timeout`` runs out."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _configure_app(url: str) -> None:
    """Point the web app at this server and use native viewer windows."""
    from pagesync.web.app import app

    defaults = AppConfig()
    app.state.config = AppConfig(
        db_path=defaults.resolve_db_path(Path.cwd()),
        pdf_dir=defaults.pdf_dir,
        origin=url,
    )
    app.state.window_opener_factory = lambda: WebviewWindowOpener(url)


class ServerThread(threading.Thread):
    """Runs uvicorn on a daemon thread so closing the window ends the process."""

    def __init__(self, host: str, port: int) -> None:
        super().__init__(name="pagesync-server", daemon=True)
        self.host = host
        self.port = port
        self.server = None

    def run(self) -> None:
        import uvicorn

        from pagesync.web.app import app

        self.server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=self.host,
                port=self.port,
                log_level="warning",
                access_log=False,
            )
        )
        self.server.run()

    def stop(self) -> None:
        if self.server is not None:
            self.server.should_exit = True


def main() -> None:
    """Launch the PageSync desktop application."""
    log_file = _setup_logging()
    logger.info("PageSync starting up (log file: %s)", log_file)
    logger.info("Platform: %s, Python: %s", sys.platform, sys.version)

    try:
        import webview
    except ImportError as exc:
        logger.error(
            "pywebview is not installed. Install the gui extras with: pip install 'pagesync[gui]'"
        )
        raise SystemExit(1) from exc

    port = _find_free_port()
    url = f"http://{HOST}:{port}"
    _configure_app(url)

    server_thread = ServerThread(HOST, port)
    server_thread.start()
    logger.info("Starting PageSync server on %s", url)
    if not _wait_for_server(HOST, port):
        logger.error("Server failed to start within timeout")
        raise SystemExit(1)

    try:
        window = webview.create_window(
            title="PageSync",
            url=url,
            width=1200,
            height=800,
            min_size=(800, 600),
            resizable=True,
            text_select=True,
        )

        def on_closed() -> None:
            logger.info("Main window closed, shutting down server")
            server_thread.stop()

        window.events.closed += on_closed
        # Blocks until every window is closed
        webview.start(private_mode=False)
    except Exception as exc:
        logger.exception("Fatal error in the desktop shell: %s", exc)
        raise SystemExit(1) from exc
    logger.info("PageSync closed normally.")


if __name__ == "__main__":
    main()
