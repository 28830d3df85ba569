"""
Per-recipient resolution.

Looks up the subscriber linked to an event and fetches their current
preferences. Events keyed by a live connector go through the active session
first; transaction events carry the linking key (or the transaction id)
directly.

Every lookup miss is reported as None. Lookup errors from the collaborators
are logged and also reported as None, so the caller treats them as
"not eligible".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from evnotify.core.state.session_store import SessionStore
from evnotify.core.state.subscriber_store import SubscriberStore
from evnotify.domain.models import SessionSnapshot, SubscriberPreference

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    """
    Result of resolving the subscriber of a session-keyed event.

    Parameters
    ----------
    session
        Session the event belongs to.
    preference
        Subscriber preference, None if the subscriber was not found.
    """

    session: SessionSnapshot
    preference: Optional[SubscriberPreference]


class RecipientResolver:
    """
    Resolves subscribers and their preferences for an event.

    Parameters
    ----------
    sessions
        Transaction store.
    subscribers
        Subscriber store.
    """

    def __init__(self, sessions: SessionStore, subscribers: SubscriberStore):
        self._sessions = sessions
        self._subscribers = subscribers

    def preferences_for(self, id_tag: Optional[str]) -> Optional[SubscriberPreference]:
        """
        Fetch fresh preferences for a linking key.

        Returns
        -------
        SubscriberPreference or None
            None if the key is empty, unknown, or its data cannot be read.
        """
        if not id_tag:
            return None
        try:
            pref = self._subscribers.get_preferences(id_tag)
        except (LookupError, ValueError, TypeError) as e:
            logger.warning("Subscriber preferences unreadable", id_tag=id_tag, error=str(e))
            return None
        if pref is None:
            logger.debug("Subscriber not found", id_tag=id_tag)
        return pref

    def for_active_session(self, charge_box_id: str, connector_id: int) -> Optional[Resolution]:
        """
        Resolve the subscriber of the session currently active on a connector.

        Returns None if no session is active or it carries no linking key;
        the personalized branch is skipped in that case.
        """
        session = self._sessions.get_active_session(charge_box_id, connector_id)
        if session is None:
            logger.debug("No active session", charge_box_id=charge_box_id, connector_id=connector_id)
            return None
        if not session.id_tag:
            return None
        return Resolution(session=session, preference=self.preferences_for(session.id_tag))

    def for_transaction(self, transaction_id: int) -> Optional[Resolution]:
        """
        Resolve the subscriber of a (possibly finished) transaction.
        """
        session = self._sessions.get_session(transaction_id)
        if session is None:
            logger.debug("Transaction not found", transaction_id=transaction_id)
            return None
        return Resolution(session=session, preference=self.preferences_for(session.id_tag))
