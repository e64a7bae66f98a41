"""Native viewer windows for the desktop shell, backed by pywebview."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict
from urllib.parse import urljoin

LOGGER = logging.getLogger(__name__)


def parse_features(features: str) -> Dict[str, str]:
    """``"width=1200,height=800"`` -> ``{"width": "1200", "height": "800"}``."""
    parsed: Dict[str, str] = {}
    for item in features.split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            parsed[key.strip().lower()] = value.strip().lower()
    return parsed


class WebviewWindowHandle:
    """Window handle over a ``webview.Window``; the closed event flips liveness."""

    def __init__(self, window: Any) -> None:
        self.window = window
        self._closed = False
        window.events.closed += self._on_closed

    @property
    def closed(self) -> bool:
        return self._closed

    def post_message(self, message: Dict[str, Any], target_origin: str) -> None:
        if self._closed:
            raise RuntimeError("viewer window is closed")
        script = "window.postMessage(%s, %s);" % (json.dumps(message), json.dumps(target_origin))
        self.window.evaluate_js(script)

    def focus(self) -> None:
        self.window.restore()
        self.window.show()

    def _on_closed(self) -> None:
        LOGGER.debug("pywebview window %s closed", getattr(self.window, "uid", "?"))
        self._closed = True


class WebviewWindowOpener:
    """Opens viewer URLs as native pywebview windows.

    Only usable once ``webview.start()`` is running, which is what the
    desktop launcher does.
    """

    def __init__(self, base_url: str, title: str = "PageSync Viewer") -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.title = title

    def open(self, url: str, name: str, features: str) -> WebviewWindowHandle | None:
        import webview

        options = parse_features(features)
        window = webview.create_window(
            self.title,
            urljoin(self.base_url, url.lstrip("/")),
            width=int(options.get("width", 1200)),
            height=int(options.get("height", 800)),
            resizable=options.get("resizable", "yes") == "yes",
        )
        if window is None:
            return None
        LOGGER.debug("Created pywebview window %s for %s", name, url)
        return WebviewWindowHandle(window)
