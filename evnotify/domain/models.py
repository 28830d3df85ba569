"""
Domain models and enums.

This module defines the core domain-level types used across the system:
- Event kinds (the notification features an operator or subscriber can enable)
- Station registration statuses
- Process-wide notification settings (operator gate)
- Per-subscriber notification preferences
- Session snapshots used for suppression decisions
- Outbound mail messages

These are designed as immutable (frozen) dataclasses so they can be shared
safely between the dispatching thread and background workers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple


class EventKind(str, Enum):
    """
    Kind of station lifecycle event.

    The same values identify notification features: an operator enables a
    set of kinds in the global settings, a subscriber enables a set of kinds
    in their preferences.

    Members
    -------
    STATION_BOOTED : str
        A station sent a boot notification.
    WEBSOCKET_CONNECTED : str
        A JSON station opened its websocket.
    WEBSOCKET_DISCONNECTED : str
        A JSON station closed its websocket.
    STATUS_FAILURE : str
        A connector reported the Faulted status.
    STATUS_SUSPENDED_EV : str
        A connector reported SuspendedEV (the car stopped drawing energy).
    TRANSACTION_STARTED : str
        A charging transaction started.
    TRANSACTION_ENDED : str
        A charging transaction ended.
    """

    STATION_BOOTED = "StationBooted"
    WEBSOCKET_CONNECTED = "WebSocketConnected"
    WEBSOCKET_DISCONNECTED = "WebSocketDisconnected"
    STATUS_FAILURE = "StatusFailure"
    STATUS_SUSPENDED_EV = "StatusSuspendedEV"
    TRANSACTION_STARTED = "TransactionStarted"
    TRANSACTION_ENDED = "TransactionEnded"

    @classmethod
    def parse(cls, text: str) -> "EventKind":
        """
        Parse an event kind from configuration or stored preference data.

        Accepted spellings are the value (``"StatusFailure"``), the member
        name (``"STATUS_FAILURE"``) and the legacy feature names prefixed
        with ``Ocpp``/``OcppStation`` (``"OcppStationStatusFailure"``).

        Raises
        ------
        ValueError
            If the text matches no kind.
        """
        s = str(text).strip()
        if s in cls.__members__:
            return cls[s]

        for prefix in ("OcppStation", "OccpStation", "Ocpp", ""):
            if s.startswith(prefix):
                candidate = s[len(prefix):]
                for kind in cls:
                    if kind.value.lower() == candidate.lower():
                        return kind
                    # "StationBooted" loses its own prefix under "OcppStation"
                    if kind.value.lower() == f"station{candidate}".lower():
                        return kind

        raise ValueError(f"Unknown event kind: {text!r}")


def parse_kinds(values: Optional[Iterable[str]]) -> FrozenSet[EventKind]:
    """
    Parse a collection of event kind spellings into a frozen set.

    Raises
    ------
    ValueError
        If any entry is not a known kind.
    """
    return frozenset(EventKind.parse(v) for v in (values or []))


class RegistrationStatus(str, Enum):
    """
    Registration status a station has in the backend.

    Members
    -------
    ACCEPTED : str
        The station is allowed to operate.
    PENDING : str
        The station is known but not yet accepted.
    REJECTED : str
        The station is known and blocked.
    """

    ACCEPTED = "Accepted"
    PENDING = "Pending"
    REJECTED = "Rejected"


def split_addresses(raw: Optional[str]) -> List[str]:
    """
    Split a comma-separated address string into an ordered list.

    Whitespace around each address is trimmed and empty items are dropped.

    Parameters
    ----------
    raw
        Stored address string, e.g. ``"a@x.org, b@x.org"``. May be None.

    Returns
    -------
    list of str
        Addresses in their original order.
    """
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class NotificationSettings:
    """
    Operator-wide notification settings.

    Owned by configuration/administration outside the dispatcher. The
    dispatcher reads a fresh snapshot on every event and never writes it.

    Parameters
    ----------
    enabled
        Global on/off switch for operator mails.
    enabled_kinds
        Event kinds the operator wants to be notified about.
    recipients
        Operator recipient addresses.
    """

    enabled: bool = False
    enabled_kinds: FrozenSet[EventKind] = field(default_factory=frozenset)
    recipients: Tuple[str, ...] = ()

    def is_enabled_for(self, kind: EventKind) -> bool:
        """
        Return True if an operator mail must be sent for this kind.

        The gate is open only if the global switch is on, the kind is
        enabled and there is at least one operator recipient.
        """
        return bool(self.enabled) and kind in self.enabled_kinds and len(self.recipients) > 0


@dataclass(frozen=True)
class SubscriberPreference:
    """
    Notification preferences of one subscriber, resolved per event.

    Parameters
    ----------
    id_tag
        Linking key (OCPP id tag) identifying the subscriber.
    enabled_kinds
        Event kinds the subscriber opted in to.
    email
        Raw contact address string. Multiple addresses are comma-separated.
    first_name, last_name
        Used to address the subscriber in message bodies.
    """

    id_tag: str
    enabled_kinds: FrozenSet[EventKind] = field(default_factory=frozenset)
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def addresses(self) -> List[str]:
        """Contact addresses split from :attr:`email`."""
        return split_addresses(self.email)

    @property
    def display_name(self) -> str:
        """First and last name joined by a space (missing parts are empty)."""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Read-only view of a charging transaction.

    Parameters
    ----------
    transaction_id
        Transaction identifier.
    charge_box_id
        Station the transaction runs on.
    connector_id
        Connector the transaction runs on.
    id_tag
        Linking key of the subscriber who started the transaction.
    start_timestamp
        When the transaction started.
    start_value
        Meter value at start (Wh), as reported by the station. May be malformed.
    stop_timestamp
        When the transaction stopped; None while active.
    stop_value
        Meter value at stop (Wh); None while active. May be malformed.
    stop_reason
        Optional stop reason reported by the station.
    """

    transaction_id: int
    charge_box_id: str
    connector_id: int
    id_tag: Optional[str]
    start_timestamp: datetime
    start_value: Optional[str] = None
    stop_timestamp: Optional[datetime] = None
    stop_value: Optional[str] = None
    stop_reason: Optional[str] = None

    @property
    def active(self) -> bool:
        """True while the transaction has no stop timestamp."""
        return self.stop_timestamp is None


@dataclass(frozen=True)
class Message:
    """
    Outbound mail message.

    Parameters
    ----------
    subject
        Mail subject.
    body
        Plain-text mail body.
    recipients
        Resolved recipient addresses.
    """

    subject: str
    body: str
    recipients: Tuple[str, ...] = ()
