"""
Unit tests for evnotify.core.notify.resolver.RecipientResolver.

Uses the in-memory stores plus a failing subscriber store to check that
lookup misses and lookup errors both surface as None.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from structlog.testing import capture_logs

from evnotify.core.notify.resolver import RecipientResolver
from evnotify.core.state.session_store import InMemorySessionStore
from evnotify.core.state.subscriber_store import InMemorySubscriberStore
from evnotify.domain.models import EventKind, SessionSnapshot, SubscriberPreference

START = datetime(2026, 1, 1, 10, 0, 0)


@dataclass
class BrokenSubscriberStore:
    """Subscriber store whose lookups fail with ``error``."""

    error: Exception

    def get_preferences(self, id_tag: str) -> Optional[SubscriberPreference]:
        raise self.error


def _stores() -> tuple[InMemorySessionStore, InMemorySubscriberStore]:
    sessions = InMemorySessionStore()
    sessions.start(
        SessionSnapshot(
            transaction_id=7,
            charge_box_id="CB01",
            connector_id=1,
            id_tag="TAG1",
            start_timestamp=START,
            start_value="1000",
        )
    )
    subscribers = InMemorySubscriberStore()
    subscribers.put(
        SubscriberPreference(
            id_tag="TAG1",
            enabled_kinds=frozenset({EventKind.STATUS_FAILURE}),
            email="ada@example.org",
        )
    )
    return sessions, subscribers


def test_for_active_session_returns_session_and_preference() -> None:
    sessions, subscribers = _stores()
    res = RecipientResolver(sessions, subscribers).for_active_session("CB01", 1)

    assert res is not None
    assert res.session.transaction_id == 7
    assert res.preference is not None
    assert res.preference.id_tag == "TAG1"


def test_for_active_session_without_session_is_none() -> None:
    sessions, subscribers = _stores()
    resolver = RecipientResolver(sessions, subscribers)
    assert resolver.for_active_session("CB01", 2) is None
    assert resolver.for_active_session("CB99", 1) is None


def test_for_active_session_without_id_tag_is_none() -> None:
    sessions = InMemorySessionStore()
    sessions.start(SessionSnapshot(1, "CB01", 1, None, START))
    assert RecipientResolver(sessions, InMemorySubscriberStore()).for_active_session("CB01", 1) is None


def test_unknown_subscriber_resolves_with_no_preference() -> None:
    sessions = InMemorySessionStore()
    sessions.start(SessionSnapshot(1, "CB01", 1, "GHOST", START))
    res = RecipientResolver(sessions, InMemorySubscriberStore()).for_active_session("CB01", 1)
    assert res is not None
    assert res.preference is None


def test_for_transaction_finds_stopped_sessions() -> None:
    sessions, subscribers = _stores()
    sessions.stop(7, stop_timestamp=datetime(2026, 1, 1, 10, 30, 0), stop_value="4000")
    resolver = RecipientResolver(sessions, subscribers)

    res = resolver.for_transaction(7)
    assert res is not None
    assert res.session.stop_value == "4000"
    assert resolver.for_transaction(8) is None


def test_preferences_for_empty_key_is_none() -> None:
    _, subscribers = _stores()
    resolver = RecipientResolver(InMemorySessionStore(), subscribers)
    assert resolver.preferences_for(None) is None
    assert resolver.preferences_for("") is None


def test_lookup_errors_are_logged_and_reported_as_none() -> None:
    resolver = RecipientResolver(InMemorySessionStore(), BrokenSubscriberStore(ValueError("bad row")))
    with capture_logs() as logs:
        assert resolver.preferences_for("TAG1") is None
    assert logs[0]["log_level"] == "warning"
    assert logs[0]["id_tag"] == "TAG1"
