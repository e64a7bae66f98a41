"""Cross-window wire messages and the channel abstraction that carries them."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Literal, Protocol
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError

LOGGER = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class MessageError(ValueError):
    """Raised when a payload is not a valid ``changePage`` message."""


class ChangePageMessage(BaseModel):
    """``{type: "changePage", page, highlight?, searchText?}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["changePage"] = "changePage"
    page: int = Field(ge=1)
    highlight: List[str] | None = None
    search_text: str | None = Field(default=None, alias="searchText")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_wire(cls, data: Any) -> "ChangePageMessage":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise MessageError(str(exc)) from exc


def normalize_origin(url: str) -> str:
    """``scheme://host[:port]`` with default ports dropped."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    if port is None or port == _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def same_origin(first: str, second: str) -> bool:
    if not first or not second:
        return False
    return normalize_origin(first) == normalize_origin(second)


MessageHandler = Callable[[ChangePageMessage], None]


class Channel(Protocol):
    """One-way message channel towards another execution context."""

    def send(self, message: ChangePageMessage) -> None: ...

    def on_receive(self, handler: MessageHandler) -> None: ...


class WindowHandle(Protocol):
    """Revocable reference to a window the application does not own."""

    @property
    def closed(self) -> bool: ...

    def post_message(self, message: Dict[str, Any], target_origin: str) -> None: ...

    def focus(self) -> None: ...


class WindowChannel:
    """Channel over a window handle, restricted to the application's origin.

    ``send`` is what the bridge uses to drive the viewer. ``deliver`` and
    ``on_receive`` are the transport-neutral receiving side: in the browser
    the viewer page (``templates/viewer.html``) applies the same origin and
    ``changePage`` checks itself, so only in-process consumers call them.
    """

    def __init__(self, handle: WindowHandle, origin: str) -> None:
        self.handle = handle
        self.origin = origin
        self._handlers: List[MessageHandler] = []

    @property
    def closed(self) -> bool:
        return self.handle.closed

    def send(self, message: ChangePageMessage) -> None:
        self.handle.post_message(message.to_wire(), self.origin)

    def on_receive(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def deliver(self, data: Any, sender_origin: str) -> bool:
        """Hand an inbound payload to the registered handlers.

        Payloads from a foreign origin or that fail validation are dropped.
        """
        if not same_origin(sender_origin, self.origin):
            LOGGER.warning("Dropping message from foreign origin %s", sender_origin)
            return False
        try:
            message = ChangePageMessage.from_wire(data)
        except MessageError as exc:
            LOGGER.warning("Dropping invalid message: %s", exc)
            return False
        for handler in list(self._handlers):
            handler(message)
        return True
