"""
Station lifecycle event domain models.

Each lifecycle moment reported by the station management system is one
immutable event variant. Variants carry only what is needed to identify the
station, the connector, the subscriber-linking key and the event payload.

Events are created by the event source and consumed exactly once by the
dispatcher, which selects the handler by variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional, Union

from evnotify.domain.models import EventKind, RegistrationStatus


@dataclass(frozen=True)
class StationBooted:
    """
    A station sent a boot notification.

    Parameters
    ----------
    charge_box_id
        Station identifier.
    status
        Registration status if the station is known, None if it is not in
        the database.
    timestamp
        When the boot notification was received.
    """

    kind: ClassVar[EventKind] = EventKind.STATION_BOOTED

    charge_box_id: str
    status: Optional[RegistrationStatus]
    timestamp: datetime


@dataclass(frozen=True)
class WebSocketConnected:
    """A JSON station opened its websocket connection."""

    kind: ClassVar[EventKind] = EventKind.WEBSOCKET_CONNECTED

    charge_box_id: str
    timestamp: datetime


@dataclass(frozen=True)
class WebSocketDisconnected:
    """A JSON station closed its websocket connection."""

    kind: ClassVar[EventKind] = EventKind.WEBSOCKET_DISCONNECTED

    charge_box_id: str
    timestamp: datetime


@dataclass(frozen=True)
class StatusFailure:
    """
    A connector reported the Faulted status.

    Parameters
    ----------
    charge_box_id
        Station identifier.
    connector_id
        Faulted connector.
    error_code
        Error code reported with the status.
    timestamp
        Status timestamp.
    """

    kind: ClassVar[EventKind] = EventKind.STATUS_FAILURE

    charge_box_id: str
    connector_id: int
    error_code: str
    timestamp: datetime


@dataclass(frozen=True)
class StatusSuspendedEV:
    """
    A connector reported SuspendedEV.

    Every session passes through this status right after start, so
    subscribers are only told about it once the session is older than
    the suppression window.
    """

    kind: ClassVar[EventKind] = EventKind.STATUS_SUSPENDED_EV

    charge_box_id: str
    connector_id: int
    timestamp: datetime


@dataclass(frozen=True)
class TransactionStarted:
    """
    A charging transaction started.

    Parameters
    ----------
    transaction_id
        Identifier assigned by the backend.
    charge_box_id
        Station identifier.
    connector_id
        Connector the transaction runs on.
    id_tag
        Linking key of the subscriber who started the transaction.
    start_timestamp
        When the transaction started.
    start_meter_value
        Meter value at start, as reported (Wh).
    reservation_id
        Reservation the transaction consumed, if any.
    """

    kind: ClassVar[EventKind] = EventKind.TRANSACTION_STARTED

    transaction_id: int
    charge_box_id: str
    connector_id: int
    id_tag: Optional[str]
    start_timestamp: datetime
    start_meter_value: str
    reservation_id: Optional[int] = None


@dataclass(frozen=True)
class TransactionEnded:
    """
    A charging transaction ended.

    Parameters
    ----------
    transaction_id
        Identifier of the ended transaction.
    charge_box_id
        Station identifier.
    stop_timestamp
        When the transaction stopped.
    stop_meter_value
        Meter value at stop, as reported (Wh).
    stop_reason
        Optional reason reported by the station.
    """

    kind: ClassVar[EventKind] = EventKind.TRANSACTION_ENDED

    transaction_id: int
    charge_box_id: str
    stop_timestamp: datetime
    stop_meter_value: str
    stop_reason: Optional[str] = None


StationEvent = Union[
    StationBooted,
    WebSocketConnected,
    WebSocketDisconnected,
    StatusFailure,
    StatusSuspendedEV,
    TransactionStarted,
    TransactionEnded,
]
