"""
Subscriber eligibility and suppression rules.

Decides whether a subscriber mail must be sent for a given event kind.
Operator-wide gating lives in :class:`~evnotify.domain.models.NotificationSettings`;
the two gates are independent.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import structlog

from evnotify.domain.models import EventKind, SessionSnapshot, SubscriberPreference

logger = structlog.get_logger(__name__)

# Sessions pass through SuspendedEV right after start, and very short
# sessions are not worth a mail.
SUPPRESSION_WINDOW = timedelta(minutes=1)


def is_subscribed(pref: Optional[SubscriberPreference], kind: EventKind) -> bool:
    """
    Return True if the subscriber opted in to this kind and has an address.

    Parameters
    ----------
    pref
        Resolved preference, or None if the subscriber was not found.
    kind
        Event kind being notified.
    """
    if pref is None:
        return False

    if kind not in pref.enabled_kinds:
        return False

    if not pref.addresses:
        logger.warning(
            "Subscriber has no usable contact address",
            id_tag=pref.id_tag,
            kind=kind.value,
        )
        return False

    return True


def suspended_ev_outside_window(event_ts: datetime, session: SessionSnapshot) -> bool:
    """
    True if a SuspendedEV status arrived strictly after start + window.

    At exactly start + window the status is still treated as the transient
    one every session goes through.
    """
    return event_ts > session.start_timestamp + SUPPRESSION_WINDOW


def session_long_enough(session: SessionSnapshot) -> bool:
    """True if the session stopped strictly after start + window."""
    if session.stop_timestamp is None:
        return False
    return session.stop_timestamp > session.start_timestamp + SUPPRESSION_WINDOW


def should_notify_subscriber(
    pref: Optional[SubscriberPreference],
    kind: EventKind,
    session: Optional[SessionSnapshot] = None,
    event_ts: Optional[datetime] = None,
) -> bool:
    """
    Decide whether a personalized mail is sent.

    Parameters
    ----------
    pref
        Resolved subscriber preference (None means not found).
    kind
        Event kind.
    session
        Session snapshot; required for SuspendedEV and TransactionEnded.
    event_ts
        Event timestamp; required for SuspendedEV.

    Returns
    -------
    bool
        True if the subscriber is eligible and not inside a suppression window.
    """
    if kind is EventKind.STATUS_SUSPENDED_EV:
        if session is None or event_ts is None:
            return False
        if not suspended_ev_outside_window(event_ts, session):
            logger.debug(
                "SuspendedEV within suppression window",
                transaction_id=session.transaction_id,
                event_ts=event_ts.isoformat(),
            )
            return False

    if kind is EventKind.TRANSACTION_ENDED:
        if session is None:
            return False
        if not session_long_enough(session):
            logger.debug("Session too short for subscriber mail", transaction_id=session.transaction_id)
            return False

    return is_subscribed(pref, kind)
