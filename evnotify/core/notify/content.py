"""
Mail content templates.

Pure functions turning lifecycle events (and, for subscriber mails, the
resolved preference and session) into subject/body pairs. Every body gets a
trailing timestamp line taken from the ``now`` argument, so output is
deterministic for a given clock value.

Formatting never raises on malformed upstream data: meter values that cannot
be parsed produce a placeholder and a warning.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional, Tuple

import structlog

from evnotify.domain.events import (
    StationBooted,
    StatusFailure,
    StatusSuspendedEV,
    TransactionEnded,
    TransactionStarted,
    WebSocketConnected,
    WebSocketDisconnected,
)
from evnotify.domain.models import SessionSnapshot, SubscriberPreference

logger = structlog.get_logger(__name__)

Content = Tuple[str, str]

ENERGY_PLACEHOLDER = "-"
NEWLINE = "\n"


def add_timestamp(body: str, now: datetime) -> str:
    """
    Append the event timestamp footer to a body.

    Parameters
    ----------
    body
        Message body. May be empty.
    now
        Current time, rendered in ISO-8601.

    Returns
    -------
    str
        ``body`` followed by a ``--`` separator and the timestamp line, or
        only the timestamp line when ``body`` is empty.
    """
    event_ts = f"Timestamp of the event: {now.isoformat()}"
    if not body:
        return event_ts
    blank = NEWLINE * 2
    return f"{body}{blank}--{blank}{event_ts}"


def _meter_wh(value: Optional[str]) -> float:
    if value is None:
        raise ValueError("meter value missing")
    wh = float(str(value).strip())
    if not math.isfinite(wh):
        raise ValueError(f"meter value not finite: {value!r}")
    return wh


def charged_energy_kwh(start_value: Optional[str], stop_value: Optional[str]) -> Optional[float]:
    """
    Compute charged energy in kWh from Wh meter readings.

    Parameters
    ----------
    start_value, stop_value
        Meter readings as reported by the station.

    Returns
    -------
    float or None
        ``(stop - start) / 1000``, or None if either reading is missing or
        not numeric. The failure is logged at warning level.
    """
    try:
        return (_meter_wh(stop_value) - _meter_wh(start_value)) / 1000.0
    except ValueError as e:
        logger.warning(
            "Failed to calculate charged energy",
            start_value=start_value,
            stop_value=stop_value,
            error=str(e),
        )
        return None


def format_energy(start_value: Optional[str], stop_value: Optional[str]) -> str:
    """Charged energy as ``"<x> kWh"``, or the placeholder if not computable."""
    kwh = charged_energy_kwh(start_value, stop_value)
    if kwh is None:
        return ENERGY_PLACEHOLDER
    return f"{kwh} kWh"


# ---- subjects ----
def station_booted_subject(ev: StationBooted) -> str:
    return f"Received boot notification from '{ev.charge_box_id}'"


def websocket_connected_subject(ev: WebSocketConnected) -> str:
    return f"Connected to JSON charging station '{ev.charge_box_id}'"


def websocket_disconnected_subject(ev: WebSocketDisconnected) -> str:
    return f"Disconnected from JSON charging station '{ev.charge_box_id}'"


def status_failure_subject(ev: StatusFailure) -> str:
    return f"Connector '{ev.connector_id}' of charging station '{ev.charge_box_id}' is FAULTED"


def suspended_ev_subject(ev: StatusSuspendedEV) -> str:
    return f"EV stopped charging at charging station {ev.charge_box_id}, Connector {ev.connector_id}"


def transaction_started_subject(ev: TransactionStarted) -> str:
    return (
        f"Transaction '{ev.transaction_id}' has started on charging station "
        f"'{ev.charge_box_id}' on connector '{ev.connector_id}'"
    )


def transaction_ended_subject(ev: TransactionEnded) -> str:
    return f"Transaction '{ev.transaction_id}' has ended on charging station '{ev.charge_box_id}'"


# ---- operator content ----
def station_booted_content(ev: StationBooted, now: datetime) -> Content:
    """Operator mail for a boot notification (known vs unknown station)."""
    if ev.status is not None:
        body = (
            f"Charging station '{ev.charge_box_id}' is in database and has "
            f"registration status '{ev.status.value}'."
        )
    else:
        body = f"Charging station '{ev.charge_box_id}' is NOT in database"
    return station_booted_subject(ev), add_timestamp(body, now)


def websocket_connected_content(ev: WebSocketConnected, now: datetime) -> Content:
    return websocket_connected_subject(ev), add_timestamp("", now)


def websocket_disconnected_content(ev: WebSocketDisconnected, now: datetime) -> Content:
    return websocket_disconnected_subject(ev), add_timestamp("", now)


def status_failure_content(ev: StatusFailure, now: datetime) -> Content:
    body = f"Status Error Code: '{ev.error_code}'"
    return status_failure_subject(ev), add_timestamp(body, now)


def suspended_ev_content(ev: StatusSuspendedEV, now: datetime) -> Content:
    body = f"Connector {ev.connector_id} of charging station {ev.charge_box_id} notifies Suspended_EV"
    return suspended_ev_subject(ev), add_timestamp(body, now)


def transaction_started_content(ev: TransactionStarted, now: datetime) -> Content:
    """Operator mail listing the start parameters of a transaction."""
    lines = [
        "Details:",
        f"- chargeBoxId: {ev.charge_box_id}",
        f"- connectorId: {ev.connector_id}",
        f"- idTag: {ev.id_tag}",
        f"- startTimestamp: {ev.start_timestamp.isoformat()}",
        f"- startMeterValue: {ev.start_meter_value}",
    ]
    if ev.reservation_id is not None:
        lines.append(f"- reservationId: {ev.reservation_id}")
    return transaction_started_subject(ev), add_timestamp(NEWLINE.join(lines), now)


def transaction_ended_content(ev: TransactionEnded, now: datetime) -> Content:
    """Operator mail listing the stop parameters of a transaction."""
    lines = [
        "Details:",
        f"- chargeBoxId: {ev.charge_box_id}",
        f"- transactionId: {ev.transaction_id}",
        f"- stopTimestamp: {ev.stop_timestamp.isoformat()}",
        f"- stopMeterValue: {ev.stop_meter_value}",
        f"- stopReason: {ev.stop_reason}",
    ]
    return transaction_ended_subject(ev), add_timestamp(NEWLINE.join(lines), now)


# ---- subscriber content ----
def _user_header(pref: SubscriberPreference) -> str:
    return f"User: {pref.display_name}"


def subscriber_status_failure_content(
    ev: StatusFailure, pref: SubscriberPreference, now: datetime
) -> Content:
    body = NEWLINE.join(
        [
            _user_header(pref),
            "",
            f"Connector {ev.connector_id} of charging station {ev.charge_box_id} notifies FAULTED!",
            "",
            f"Error code: {ev.error_code}",
        ]
    )
    return status_failure_subject(ev), add_timestamp(body, now)


def subscriber_suspended_ev_content(
    ev: StatusSuspendedEV, pref: SubscriberPreference, now: datetime
) -> Content:
    body = NEWLINE.join(
        [
            _user_header(pref),
            "",
            f"Connector {ev.connector_id} of charging station {ev.charge_box_id} notifies Suspended_EV",
        ]
    )
    return suspended_ev_subject(ev), add_timestamp(body, now)


def subscriber_transaction_started_content(
    ev: TransactionStarted, pref: SubscriberPreference, now: datetime
) -> Content:
    body = (
        f"{_user_header(pref)} started transaction '{ev.transaction_id}' on connector "
        f"'{ev.connector_id}' of charging station '{ev.charge_box_id}'"
    )
    return transaction_started_subject(ev), add_timestamp(body, now)


def subscriber_transaction_ended_content(
    ev: TransactionEnded,
    session: SessionSnapshot,
    pref: SubscriberPreference,
    now: datetime,
) -> Content:
    """
    Subscriber mail summarising a finished session, including charged energy.

    Parameters
    ----------
    ev
        The ended event (used for the subject).
    session
        Session snapshot with start/stop timestamps and meter readings.
    pref
        Subscriber the mail is addressed to.
    now
        Current time for the footer.
    """
    stop_ts = session.stop_timestamp.isoformat() if session.stop_timestamp else None
    lines = [
        _user_header(pref),
        "",
        "Details:",
        f"- chargeBoxId: {session.charge_box_id}",
        f"- connectorId: {session.connector_id}",
        f"- transactionId: {session.transaction_id}",
        f"- startTimestamp (UTC): {session.start_timestamp.isoformat()}",
        f"- startMeterValue: {session.start_value}",
        f"- stopTimestamp (UTC): {stop_ts}",
        f"- stopMeterValue: {session.stop_value}",
        f"- stopReason: {session.stop_reason}",
        f"- charged energy: {format_energy(session.start_value, session.stop_value)}",
    ]
    return transaction_ended_subject(ev), add_timestamp(NEWLINE.join(lines), now)
