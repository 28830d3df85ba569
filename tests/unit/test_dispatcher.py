"""
Unit tests for evnotify.core.notify.dispatcher.Dispatcher.

Scenarios covered
-----------------
- operator mails are gated by switch, kind and recipients
- subscriber mails are independent of the operator gate
- subscriber lookups run on the execution gateway
- suppression windows for SuspendedEV and TransactionEnded
- missing sessions, subscribers and addresses end the subscriber branch silently
- no handler raises, whatever its collaborators do

Approach
--------
A recording mail gateway and :class:`InlineGateway` make every dispatch
deterministic. A fixed clock pins the mail footer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import pytest

from evnotify.core.config.settings_provider import StaticSettingsProvider
from evnotify.core.notify.dispatcher import Dispatcher
from evnotify.core.notify.resolver import RecipientResolver
from evnotify.core.state.session_store import InMemorySessionStore
from evnotify.core.state.subscriber_store import InMemorySubscriberStore
from evnotify.domain.events import (
    StationBooted,
    StatusFailure,
    StatusSuspendedEV,
    TransactionEnded,
    TransactionStarted,
    WebSocketConnected,
    WebSocketDisconnected,
)
from evnotify.domain.models import (
    EventKind,
    NotificationSettings,
    RegistrationStatus,
    SessionSnapshot,
    SubscriberPreference,
)
from evnotify.runtime.executor import InlineGateway, Task

NOW = datetime(2026, 1, 1, 12, 0, 0)
START = datetime(2026, 1, 1, 10, 0, 0)

SentMail = Tuple[str, str, Optional[Tuple[str, ...]]]


@dataclass
class FakeMail:
    """
    Mail gateway recording every send.

    ``recipients`` is kept as None for operator mails so tests can tell the
    two branches apart.
    """

    sent: List[SentMail] = field(default_factory=list)
    fail: bool = False

    def send(self, subject: str, body: str, recipients: Optional[Sequence[str]] = None) -> None:
        if self.fail:
            raise RuntimeError("relay down")
        self.sent.append((subject, body, tuple(recipients) if recipients is not None else None))

    @property
    def operator(self) -> List[SentMail]:
        return [m for m in self.sent if m[2] is None]

    @property
    def subscriber(self) -> List[SentMail]:
        return [m for m in self.sent if m[2] is not None]


@dataclass
class RecordingGateway:
    """Execution gateway that stores tasks instead of running them."""

    tasks: List[Task] = field(default_factory=list)

    def submit(self, task: Task) -> None:
        self.tasks.append(task)

    def run_all(self) -> None:
        while self.tasks:
            self.tasks.pop(0)()


class RejectingGateway:
    """Execution gateway that has been shut down."""

    def submit(self, task: Task) -> None:
        raise RuntimeError("cannot schedule new futures after shutdown")


class BrokenSettings:
    def get_settings(self) -> NotificationSettings:
        raise ValueError("config.yaml must contain a YAML mapping at the root")


ALL_KINDS = frozenset(EventKind)


def _settings(
    enabled: bool = True,
    kinds: frozenset = ALL_KINDS,
    recipients: Tuple[str, ...] = ("ops@example.org",),
) -> StaticSettingsProvider:
    return StaticSettingsProvider(NotificationSettings(enabled=enabled, enabled_kinds=kinds, recipients=recipients))


def _pref(email: Optional[str] = "ada@example.org", kinds: frozenset = ALL_KINDS) -> SubscriberPreference:
    return SubscriberPreference(id_tag="TAG1", enabled_kinds=kinds, email=email, first_name="Ada", last_name="Lovelace")


def _session(
    tx: int = 7,
    stop: Optional[datetime] = None,
    stop_value: Optional[str] = None,
    id_tag: Optional[str] = "TAG1",
) -> SessionSnapshot:
    return SessionSnapshot(
        transaction_id=tx,
        charge_box_id="CB01",
        connector_id=1,
        id_tag=id_tag,
        start_timestamp=START,
        start_value="1000",
        stop_timestamp=stop,
        stop_value=stop_value,
    )


def _build(
    settings=None,
    pref: Optional[SubscriberPreference] = None,
    session: Optional[SessionSnapshot] = None,
    executor=None,
    mail: Optional[FakeMail] = None,
) -> Tuple[Dispatcher, FakeMail]:
    sessions = InMemorySessionStore()
    if session is not None:
        sessions.start(session)
    subscribers = InMemorySubscriberStore()
    if pref is not None:
        subscribers.put(pref)

    mail = mail or FakeMail()
    dispatcher = Dispatcher(
        settings=settings or _settings(),
        mail=mail,
        resolver=RecipientResolver(sessions=sessions, subscribers=subscribers),
        executor=executor or InlineGateway(),
        clock=lambda: NOW,
    )
    return dispatcher, mail


def _failure() -> StatusFailure:
    return StatusFailure(charge_box_id="CB01", connector_id=1, error_code="E42", timestamp=START + timedelta(minutes=5))


# ---- operator-only events ----
@pytest.mark.parametrize(
    "ev",
    [
        StationBooted("CB01", RegistrationStatus.ACCEPTED, START),
        StationBooted("CB01", None, START),
        WebSocketConnected("CB01", START),
        WebSocketDisconnected("CB01", START),
    ],
)
def test_operator_only_events_send_one_operator_mail(ev) -> None:
    dispatcher, mail = _build()
    dispatcher.handle(ev)

    assert len(mail.sent) == 1
    assert mail.sent[0][2] is None
    assert "'CB01'" in mail.sent[0][0]


def test_operator_only_events_respect_kind_selection() -> None:
    dispatcher, mail = _build(settings=_settings(kinds=frozenset({EventKind.STATION_BOOTED})))
    dispatcher.handle(WebSocketConnected("CB01", START))
    dispatcher.handle(StationBooted("CB01", RegistrationStatus.PENDING, START))

    assert [m[0] for m in mail.sent] == ["Received boot notification from 'CB01'"]


def test_operator_gate_closed_without_recipients() -> None:
    dispatcher, mail = _build(settings=_settings(recipients=()))
    dispatcher.handle(StationBooted("CB01", RegistrationStatus.ACCEPTED, START))
    assert mail.sent == []


# ---- StatusFailure ----
def test_status_failure_sends_operator_and_subscriber_mails() -> None:
    """
    Fault on CB01/1 with an active TAG1 session: one mail to the operator
    list and one personalized mail to TAG1's address.
    """
    dispatcher, mail = _build(pref=_pref(), session=_session())
    dispatcher.handle(_failure())

    assert len(mail.operator) == 1
    subject, body, _ = mail.operator[0]
    assert subject == "Connector '1' of charging station 'CB01' is FAULTED"
    assert "E42" in body

    assert len(mail.subscriber) == 1
    _, sub_body, recipients = mail.subscriber[0]
    assert recipients == ("ada@example.org",)
    assert "Connector 1 of charging station CB01 notifies FAULTED!" in sub_body
    assert "E42" in sub_body
    assert sub_body.endswith("Timestamp of the event: 2026-01-01T12:00:00")


def test_subscriber_branch_runs_with_operator_mails_disabled() -> None:
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref(), session=_session())
    dispatcher.handle(_failure())

    assert mail.operator == []
    assert len(mail.subscriber) == 1


def test_operator_kind_not_selected_sends_no_operator_mail() -> None:
    dispatcher, mail = _build(
        settings=_settings(kinds=frozenset({EventKind.TRANSACTION_STARTED})),
        pref=_pref(),
        session=_session(),
    )
    dispatcher.handle(_failure())

    assert mail.operator == []
    assert len(mail.subscriber) == 1


def test_status_failure_without_active_session_sends_only_operator_mail() -> None:
    dispatcher, mail = _build(pref=_pref())
    dispatcher.handle(_failure())

    assert len(mail.operator) == 1
    assert mail.subscriber == []


def test_subscriber_without_address_gets_nothing() -> None:
    dispatcher, mail = _build(pref=_pref(email=" "), session=_session())
    dispatcher.handle(_failure())
    assert mail.subscriber == []


def test_subscriber_not_opted_in_gets_nothing() -> None:
    dispatcher, mail = _build(pref=_pref(kinds=frozenset({EventKind.TRANSACTION_ENDED})), session=_session())
    dispatcher.handle(_failure())
    assert mail.subscriber == []


def test_unknown_subscriber_gets_nothing() -> None:
    dispatcher, mail = _build(session=_session(id_tag="GHOST"))
    dispatcher.handle(_failure())
    assert mail.subscriber == []
    assert len(mail.operator) == 1


def test_subscriber_mail_goes_to_every_address() -> None:
    dispatcher, mail = _build(pref=_pref(email="a@x.org, b@x.org"), session=_session())
    dispatcher.handle(_failure())
    assert mail.subscriber[0][2] == ("a@x.org", "b@x.org")


def test_subscriber_lookup_runs_on_the_execution_gateway() -> None:
    """
    The operator mail goes out on the calling thread; the subscriber mail
    only once the submitted task runs.
    """
    gateway = RecordingGateway()
    dispatcher, mail = _build(pref=_pref(), session=_session(), executor=gateway)
    dispatcher.handle(_failure())

    assert len(gateway.tasks) == 1
    assert len(mail.operator) == 1
    assert mail.subscriber == []

    gateway.run_all()
    assert len(mail.subscriber) == 1


def test_subscriber_task_submitted_even_when_operator_gate_closed() -> None:
    gateway = RecordingGateway()
    dispatcher, mail = _build(settings=_settings(enabled=False), executor=gateway)
    dispatcher.handle(_failure())

    assert len(gateway.tasks) == 1
    assert mail.sent == []


def test_subscriber_preferences_are_read_when_the_task_runs() -> None:
    gateway = RecordingGateway()
    sessions = InMemorySessionStore()
    sessions.start(_session())
    subscribers = InMemorySubscriberStore()
    subscribers.put(_pref(kinds=frozenset()))
    mail = FakeMail()
    dispatcher = Dispatcher(
        settings=_settings(enabled=False),
        mail=mail,
        resolver=RecipientResolver(sessions=sessions, subscribers=subscribers),
        executor=gateway,
        clock=lambda: NOW,
    )

    dispatcher.handle(_failure())
    subscribers.put(_pref())
    gateway.run_all()

    assert len(mail.subscriber) == 1


# ---- StatusSuspendedEV ----
def _suspended(offset: timedelta) -> StatusSuspendedEV:
    return StatusSuspendedEV(charge_box_id="CB01", connector_id=1, timestamp=START + offset)


def test_suspended_ev_at_exactly_one_minute_is_suppressed() -> None:
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref(), session=_session())
    dispatcher.handle(_suspended(timedelta(minutes=1)))
    assert mail.sent == []


def test_suspended_ev_after_one_minute_is_sent() -> None:
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref(), session=_session())
    dispatcher.handle(_suspended(timedelta(minutes=1, seconds=1)))

    assert len(mail.subscriber) == 1
    assert mail.subscriber[0][0] == "EV stopped charging at charging station CB01, Connector 1"


def test_suspended_ev_window_does_not_affect_operator_mail() -> None:
    dispatcher, mail = _build(pref=_pref(), session=_session())
    dispatcher.handle(_suspended(timedelta(seconds=10)))

    assert len(mail.operator) == 1
    assert mail.subscriber == []


def test_suspended_ev_without_session_sends_nothing_personal() -> None:
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref())
    dispatcher.handle(_suspended(timedelta(minutes=5)))
    assert mail.sent == []


# ---- TransactionStarted ----
def test_transaction_started_notifies_subscriber_by_id_tag() -> None:
    dispatcher, mail = _build(pref=_pref())
    dispatcher.handle(TransactionStarted(7, "CB01", 1, "TAG1", START, "1000"))

    assert len(mail.operator) == 1
    assert "- idTag: TAG1" in mail.operator[0][1]
    assert len(mail.subscriber) == 1
    assert "started transaction '7'" in mail.subscriber[0][1]


def test_transaction_started_without_id_tag_sends_nothing_personal() -> None:
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref())
    dispatcher.handle(TransactionStarted(7, "CB01", 1, None, START, "1000"))
    assert mail.sent == []


# ---- TransactionEnded ----
def _ended(stop: datetime, stop_value: str = "4000") -> TransactionEnded:
    return TransactionEnded(
        transaction_id=7,
        charge_box_id="CB01",
        stop_timestamp=stop,
        stop_meter_value=stop_value,
        stop_reason="EVDisconnected",
    )


def test_transaction_ended_long_session_reports_charged_energy() -> None:
    stop = START + timedelta(minutes=30)
    dispatcher, mail = _build(
        settings=_settings(enabled=False),
        pref=_pref(),
        session=_session(stop=stop, stop_value="4000"),
    )
    dispatcher.handle(_ended(stop))

    assert len(mail.subscriber) == 1
    subject, body, _ = mail.subscriber[0]
    assert subject == "Transaction '7' has ended on charging station 'CB01'"
    assert "- charged energy: 3.0 kWh" in body


def test_transaction_ended_short_session_is_suppressed() -> None:
    stop = START + timedelta(seconds=30)
    dispatcher, mail = _build(pref=_pref(), session=_session(stop=stop, stop_value="1200"))
    dispatcher.handle(_ended(stop, "1200"))

    assert len(mail.operator) == 1
    assert mail.subscriber == []


def test_transaction_ended_uses_event_values_when_store_lags() -> None:
    """
    If the store still shows the session as active, the stop values of the
    event decide the window and the charged energy.
    """
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref(), session=_session())
    dispatcher.handle(_ended(START + timedelta(minutes=10)))

    assert len(mail.subscriber) == 1
    assert "- charged energy: 3.0 kWh" in mail.subscriber[0][1]
    assert "- stopReason: EVDisconnected" in mail.subscriber[0][1]


def test_transaction_ended_with_malformed_meter_still_sends() -> None:
    stop = START + timedelta(minutes=10)
    dispatcher, mail = _build(
        settings=_settings(enabled=False),
        pref=_pref(),
        session=_session(stop=stop, stop_value="abc"),
    )
    dispatcher.handle(_ended(stop, "abc"))

    assert len(mail.subscriber) == 1
    assert "- charged energy: -" in mail.subscriber[0][1]


def test_transaction_ended_unknown_transaction_sends_nothing_personal() -> None:
    dispatcher, mail = _build(settings=_settings(enabled=False), pref=_pref())
    dispatcher.handle(_ended(START + timedelta(minutes=10)))
    assert mail.sent == []


# ---- failure containment ----
def test_failing_mail_gateway_never_escapes() -> None:
    dispatcher, mail = _build(pref=_pref(), session=_session(), mail=FakeMail(fail=True))

    dispatcher.handle(_failure())
    dispatcher.handle(StationBooted("CB01", None, START))
    dispatcher.handle(_ended(START + timedelta(minutes=10)))

    assert mail.sent == []


def test_unreadable_settings_do_not_block_subscriber_branch() -> None:
    dispatcher, mail = _build(settings=BrokenSettings(), pref=_pref(), session=_session())
    dispatcher.handle(_failure())

    assert mail.operator == []
    assert len(mail.subscriber) == 1


def test_rejected_submission_does_not_block_operator_mail() -> None:
    dispatcher, mail = _build(pref=_pref(), session=_session(), executor=RejectingGateway())
    dispatcher.handle(_failure())

    assert len(mail.operator) == 1
    assert mail.subscriber == []


def test_unsupported_event_is_dropped() -> None:
    dispatcher, mail = _build()
    dispatcher.handle(object())  # type: ignore[arg-type]
    assert mail.sent == []
