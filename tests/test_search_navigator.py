"""Tests for cyclic in-document search."""

from __future__ import annotations

import pytest

from conftest import ManualScheduler, RecordingPanel, make_chunks
from pagesync.models import ChangeOrigin
from pagesync.paging.index import ChunkPageIndex
from pagesync.sync.coordinator import SyncCoordinator
from pagesync.sync.search import SearchNavigator, SearchSession, find_matches, normalize_query

CONTENTS = [
    "Introduction to contracts",
    "Nothing relevant here",
    "Breach of CONTRACT remedies",
    "Payment terms",
    "Termination of the contract",
]


@pytest.fixture
def coordinator(scheduler: ManualScheduler, panel: RecordingPanel) -> SyncCoordinator:
    chunks = make_chunks(5, [1, 1, 2, 3, 4], contents=CONTENTS)
    coordinator = SyncCoordinator(scheduler, panel=panel)
    coordinator.reset(ChunkPageIndex.build(chunks, 4))
    return coordinator


@pytest.fixture
def navigator(coordinator: SyncCoordinator) -> SearchNavigator:
    navigator = SearchNavigator(coordinator)
    navigator.set_chunks(make_chunks(5, [1, 1, 2, 3, 4], contents=CONTENTS))
    return navigator


class TestMatching:
    """Case-insensitive substring matching."""

    def test_normalize_query(self) -> None:
        assert normalize_query("  Contract ") == "contract"
        assert normalize_query(None) == ""

    def test_find_matches_in_order(self) -> None:
        chunks = make_chunks(5, contents=CONTENTS)
        assert [c.id for c in find_matches(chunks, "Contract")] == ["c0", "c2", "c4"]

    def test_empty_query_matches_nothing(self) -> None:
        assert find_matches(make_chunks(2), "   ") == []

    def test_session_label(self) -> None:
        chunks = make_chunks(3)
        assert SearchSession("x", chunks, 1).label == "2/3"
        assert SearchSession().label == ""
        assert SearchSession().current is None


class TestSubmit:
    """Submitting and re-submitting queries."""

    def test_first_submission_jumps_to_first_match(
        self, navigator: SearchNavigator, coordinator: SyncCoordinator
    ) -> None:
        match = navigator.submit("contract")
        assert match is not None and match.id == "c0"
        assert navigator.session.label == "1/3"
        assert coordinator.current_page == 1
        assert coordinator.suppressed

    def test_resubmission_cycles(
        self, navigator: SearchNavigator, coordinator: SyncCoordinator
    ) -> None:
        navigator.submit("contract")
        second = navigator.submit("contract")
        assert second is not None and second.id == "c2"
        assert coordinator.current_page == 2
        assert coordinator.state.origin is ChangeOrigin.SEARCH

        third = navigator.submit("CONTRACT ")
        assert third is not None and third.id == "c4"
        assert coordinator.current_page == 4

        wrapped = navigator.submit("contract")
        assert wrapped is not None and wrapped.id == "c0"
        assert navigator.session.label == "1/3"
        assert coordinator.current_page == 1

    def test_scrolls_match_into_centre(
        self, navigator: SearchNavigator, scheduler: ManualScheduler, panel: RecordingPanel
    ) -> None:
        navigator.submit("payment")
        scheduler.advance(0.4)
        assert panel.scrolls[-1][0] == "c3"
        assert panel.scrolls[-1][1].value == "center"

    def test_new_query_restarts(self, navigator: SearchNavigator) -> None:
        navigator.submit("contract")
        navigator.submit("contract")
        match = navigator.submit("payment")
        assert match is not None and match.id == "c3"
        assert navigator.session.label == "1/1"

    def test_no_match(self, navigator: SearchNavigator, coordinator: SyncCoordinator) -> None:
        assert navigator.submit("zebra") is None
        assert navigator.session.label == ""
        assert coordinator.current_page == 1

    def test_empty_query_resets(self, navigator: SearchNavigator) -> None:
        navigator.submit("contract")
        assert navigator.submit("   ") is None
        assert navigator.session.query == ""

    def test_clearing_input_resets(self, navigator: SearchNavigator) -> None:
        navigator.submit("contract")
        navigator.on_query_changed("")
        assert navigator.session.matches == []
        navigator.on_query_changed("contr")
        assert navigator.session.query == ""

    def test_unpaged_match_stays_in_page_range(
        self, scheduler: ManualScheduler, panel: RecordingPanel
    ) -> None:
        chunks = make_chunks(3, [1, None, 2], contents=["alpha", "needle", "beta"])
        coordinator = SyncCoordinator(scheduler, panel=panel)
        coordinator.reset(ChunkPageIndex.build(chunks, 2))
        navigator = SearchNavigator(coordinator)
        navigator.set_chunks(chunks)

        match = navigator.submit("needle")
        assert match is not None and match.id == "c1"
        assert coordinator.current_page == 1

    def test_no_chunks(self, coordinator: SyncCoordinator) -> None:
        navigator = SearchNavigator(coordinator)
        assert navigator.submit("contract") is None

    def test_new_chunks_discard_session(self, navigator: SearchNavigator) -> None:
        navigator.submit("contract")
        navigator.set_chunks(make_chunks(2))
        assert navigator.session.query == ""
