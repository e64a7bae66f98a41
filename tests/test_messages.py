"""Tests for the cross-window message model and channel."""

from __future__ import annotations

from typing import List

import pytest

from conftest import FakeWindow
from pagesync.bridge.messages import (
    ChangePageMessage,
    MessageError,
    WindowChannel,
    normalize_origin,
    same_origin,
)


class TestChangePageMessage:
    """Wire format of the changePage command."""

    def test_minimal_wire_form(self) -> None:
        assert ChangePageMessage(page=3).to_wire() == {"type": "changePage", "page": 3}

    def test_optional_fields_use_camel_case(self) -> None:
        message = ChangePageMessage(page=2, highlight=["breach"], search_text="Breach of contract")
        assert message.to_wire() == {
            "type": "changePage",
            "page": 2,
            "highlight": ["breach"],
            "searchText": "Breach of contract",
        }

    def test_from_wire(self) -> None:
        message = ChangePageMessage.from_wire(
            {"type": "changePage", "page": 7, "searchText": "x", "other": 1}
        )
        assert message.page == 7
        assert message.search_text == "x"

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "changePage", "page": 0},
            {"type": "openDocument", "page": 1},
            {"type": "changePage"},
            "changePage",
        ],
    )
    def test_invalid_payloads(self, payload: object) -> None:
        with pytest.raises(MessageError):
            ChangePageMessage.from_wire(payload)

    def test_message_error_is_value_error(self) -> None:
        assert issubclass(MessageError, ValueError)


class TestOrigins:
    """Same-origin matching."""

    def test_normalize_drops_default_port_and_path(self) -> None:
        assert normalize_origin("HTTP://Example.com:80/viewer?x=1") == "http://example.com"
        assert normalize_origin("https://example.com:8443/") == "https://example.com:8443"

    def test_same_origin(self) -> None:
        assert same_origin("http://127.0.0.1:8000/pdf-viewer.html", "http://127.0.0.1:8000")
        assert not same_origin("http://127.0.0.1:8001", "http://127.0.0.1:8000")
        assert not same_origin("https://127.0.0.1:8000", "http://127.0.0.1:8000")
        assert not same_origin("", "http://127.0.0.1:8000")


class TestWindowChannel:
    """Channel over a window handle."""

    def test_send_targets_application_origin(self) -> None:
        window = FakeWindow()
        channel = WindowChannel(window, "http://127.0.0.1:8000")
        channel.send(ChangePageMessage(page=4))
        assert window.messages == [({"type": "changePage", "page": 4}, "http://127.0.0.1:8000")]

    def test_closed_follows_handle(self) -> None:
        window = FakeWindow()
        channel = WindowChannel(window, "http://127.0.0.1:8000")
        assert not channel.closed
        window.closed = True
        assert channel.closed

    def test_deliver_same_origin(self) -> None:
        received: List[int] = []
        channel = WindowChannel(FakeWindow(), "http://127.0.0.1:8000")
        channel.on_receive(lambda message: received.append(message.page))
        assert channel.deliver({"type": "changePage", "page": 5}, "http://127.0.0.1:8000")
        assert received == [5]

    def test_deliver_rejects_foreign_origin(self) -> None:
        received: List[int] = []
        channel = WindowChannel(FakeWindow(), "http://127.0.0.1:8000")
        channel.on_receive(lambda message: received.append(message.page))
        assert not channel.deliver({"type": "changePage", "page": 5}, "http://evil.example")
        assert received == []

    def test_deliver_rejects_invalid_payload(self) -> None:
        channel = WindowChannel(FakeWindow(), "http://127.0.0.1:8000")
        assert not channel.deliver({"type": "changePage", "page": -1}, "http://127.0.0.1:8000")
