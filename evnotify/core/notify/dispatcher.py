"""
Event-triggered notification dispatcher.

One handler per lifecycle event kind. Each handler may produce:

- an operator mail, sent synchronously on the calling thread when the
  operator gate (global switch, enabled kinds, recipients) is open, and
- a subscriber mail, prepared by a background task because it needs session
  and subscriber lookups.

The two branches are independent: the subscriber branch of fault,
suspended-EV and transaction events runs even when operator mails are
disabled. No handler raises; failures are logged and dropped.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

import structlog

from evnotify.core.config.settings_provider import SettingsProvider
from evnotify.core.notify import content
from evnotify.core.notify.policy import should_notify_subscriber
from evnotify.core.notify.resolver import RecipientResolver
from evnotify.domain.events import (
    StationBooted,
    StationEvent,
    StatusFailure,
    StatusSuspendedEV,
    TransactionEnded,
    TransactionStarted,
    WebSocketConnected,
    WebSocketDisconnected,
)
from evnotify.domain.models import EventKind, SubscriberPreference
from evnotify.notification.base import MailGateway
from evnotify.runtime.executor import ExecutionGateway, Task, contained

logger = structlog.get_logger(__name__)

ContentBuilder = Callable[[datetime], Tuple[str, str]]


class Dispatcher:
    """
    Entry point for station lifecycle events.

    Parameters
    ----------
    settings
        Provider of the operator settings, read on every event.
    mail
        Mail gateway used for both branches.
    resolver
        Subscriber resolver used by background tasks.
    executor
        Gateway running subscriber tasks off the calling thread.
    clock
        Source of the current time for the mail footer. Defaults to
        ``datetime.now``.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        mail: MailGateway,
        resolver: RecipientResolver,
        executor: ExecutionGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._settings = settings
        self._mail = mail
        self._resolver = resolver
        self._executor = executor
        self._clock = clock or datetime.now

    def handle(self, ev: StationEvent) -> None:
        """
        Route an event to its handler.
        """
        if isinstance(ev, StationBooted):
            self.on_station_booted(ev)
        elif isinstance(ev, WebSocketConnected):
            self.on_websocket_connected(ev)
        elif isinstance(ev, WebSocketDisconnected):
            self.on_websocket_disconnected(ev)
        elif isinstance(ev, StatusFailure):
            self.on_status_failure(ev)
        elif isinstance(ev, StatusSuspendedEV):
            self.on_status_suspended_ev(ev)
        elif isinstance(ev, TransactionStarted):
            self.on_transaction_started(ev)
        elif isinstance(ev, TransactionEnded):
            self.on_transaction_ended(ev)
        else:
            logger.warning("Unsupported event dropped", event_type=type(ev).__name__)

    # ---- operator-only events ----
    def on_station_booted(self, ev: StationBooted) -> None:
        self._notify_operator(
            ev.kind,
            lambda now: content.station_booted_content(ev, now),
            charge_box_id=ev.charge_box_id,
        )

    def on_websocket_connected(self, ev: WebSocketConnected) -> None:
        self._notify_operator(
            ev.kind,
            lambda now: content.websocket_connected_content(ev, now),
            charge_box_id=ev.charge_box_id,
        )

    def on_websocket_disconnected(self, ev: WebSocketDisconnected) -> None:
        self._notify_operator(
            ev.kind,
            lambda now: content.websocket_disconnected_content(ev, now),
            charge_box_id=ev.charge_box_id,
        )

    # ---- events with a subscriber branch ----
    def on_status_failure(self, ev: StatusFailure) -> None:
        ctx = {"charge_box_id": ev.charge_box_id, "connector_id": ev.connector_id}
        self._submit_subscriber_task(ev.kind, lambda: self._notify_failure_subscriber(ev), **ctx)
        self._notify_operator(ev.kind, lambda now: content.status_failure_content(ev, now), **ctx)

    def on_status_suspended_ev(self, ev: StatusSuspendedEV) -> None:
        ctx = {"charge_box_id": ev.charge_box_id, "connector_id": ev.connector_id}
        self._submit_subscriber_task(ev.kind, lambda: self._notify_suspended_ev_subscriber(ev), **ctx)
        self._notify_operator(ev.kind, lambda now: content.suspended_ev_content(ev, now), **ctx)

    def on_transaction_started(self, ev: TransactionStarted) -> None:
        ctx = {"charge_box_id": ev.charge_box_id, "transaction_id": ev.transaction_id}
        self._submit_subscriber_task(ev.kind, lambda: self._notify_started_subscriber(ev), **ctx)
        self._notify_operator(ev.kind, lambda now: content.transaction_started_content(ev, now), **ctx)

    def on_transaction_ended(self, ev: TransactionEnded) -> None:
        ctx = {"charge_box_id": ev.charge_box_id, "transaction_id": ev.transaction_id}
        self._submit_subscriber_task(ev.kind, lambda: self._notify_ended_subscriber(ev), **ctx)
        self._notify_operator(ev.kind, lambda now: content.transaction_ended_content(ev, now), **ctx)

    # ---- subscriber tasks (run on the execution gateway) ----
    def _notify_failure_subscriber(self, ev: StatusFailure) -> None:
        res = self._resolver.for_active_session(ev.charge_box_id, ev.connector_id)
        pref = res.preference if res else None
        if pref is None or not should_notify_subscriber(pref, ev.kind):
            return
        self._send_to_subscriber(pref, content.subscriber_status_failure_content(ev, pref, self._clock()))

    def _notify_suspended_ev_subscriber(self, ev: StatusSuspendedEV) -> None:
        res = self._resolver.for_active_session(ev.charge_box_id, ev.connector_id)
        if res is None or res.preference is None:
            return
        pref = res.preference
        if not should_notify_subscriber(pref, ev.kind, session=res.session, event_ts=ev.timestamp):
            return
        self._send_to_subscriber(pref, content.subscriber_suspended_ev_content(ev, pref, self._clock()))

    def _notify_started_subscriber(self, ev: TransactionStarted) -> None:
        pref = self._resolver.preferences_for(ev.id_tag)
        if pref is None or not should_notify_subscriber(pref, ev.kind):
            return
        self._send_to_subscriber(pref, content.subscriber_transaction_started_content(ev, pref, self._clock()))

    def _notify_ended_subscriber(self, ev: TransactionEnded) -> None:
        res = self._resolver.for_transaction(ev.transaction_id)
        if res is None or res.preference is None:
            return
        pref = res.preference

        session = res.session
        if session.stop_timestamp is None:
            # Store not yet updated with the stop: use the event's values.
            session = replace(
                session,
                stop_timestamp=ev.stop_timestamp,
                stop_value=ev.stop_meter_value,
                stop_reason=ev.stop_reason,
            )

        if not should_notify_subscriber(pref, ev.kind, session=session):
            return
        self._send_to_subscriber(
            pref, content.subscriber_transaction_ended_content(ev, session, pref, self._clock())
        )

    # ---- helpers ----
    def _send_to_subscriber(self, pref: SubscriberPreference, mail: Tuple[str, str]) -> None:
        subject, body = mail
        self._mail.send(subject, body, pref.addresses)
        logger.info("Subscriber notification sent", id_tag=pref.id_tag, subject=subject)

    def _notify_operator(self, kind: EventKind, build: ContentBuilder, **context: Any) -> bool:
        """
        Send the operator mail for an event if the operator gate is open.

        Returns
        -------
        bool
            True if a mail was handed to the gateway.
        """
        try:
            settings = self._settings.get_settings()
            if not settings.is_enabled_for(kind):
                return False
            subject, body = build(self._clock())
            self._mail.send(subject, body)
            return True
        except Exception:
            logger.error("Operator notification failed", kind=kind.value, exc_info=True, **context)
            return False

    def _submit_subscriber_task(self, kind: EventKind, work: Task, **context: Any) -> None:
        task = contained(work, f"{kind.value} subscriber notification", kind=kind.value, **context)
        try:
            self._executor.submit(task)
        except Exception:
            logger.error("Subscriber notification not submitted", kind=kind.value, exc_info=True, **context)
