from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from evnotify.domain.models import SessionSnapshot


class SessionStore(Protocol):
    """
    Read-only contract of the transaction store used by the dispatcher.

    Both lookups return None when nothing matches; they never raise for
    unknown keys.
    """

    def get_active_session(self, charge_box_id: str, connector_id: int) -> Optional[SessionSnapshot]:
        ...

    def get_session(self, transaction_id: int) -> Optional[SessionSnapshot]:
        ...


@dataclass
class InMemorySessionStore:
    """
    Thread-safe in-memory transaction store.

    Concurrency Model
    -----------------
    All reads/writes are guarded by a single re-entrant lock. Snapshots are
    frozen dataclasses, so callers can hold them without further locking.

    Notes
    -----
    Only the runtime's session recorder writes to this store. The dispatcher
    reads it through :class:`SessionStore`.
    """

    _sessions: Dict[int, SessionSnapshot] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def start(self, session: SessionSnapshot) -> None:
        """
        Record a started transaction (overwrites a previous one with the same id).
        """
        with self._lock:
            self._sessions[session.transaction_id] = session

    def stop(
        self,
        transaction_id: int,
        stop_timestamp: datetime,
        stop_value: Optional[str],
        stop_reason: Optional[str] = None,
    ) -> Optional[SessionSnapshot]:
        """
        Mark a transaction as stopped.

        Returns
        -------
        SessionSnapshot or None
            Updated snapshot, or None if the transaction is unknown.
        """
        with self._lock:
            prev = self._sessions.get(transaction_id)
            if prev is None:
                return None
            updated = replace(
                prev,
                stop_timestamp=stop_timestamp,
                stop_value=stop_value,
                stop_reason=stop_reason,
            )
            self._sessions[transaction_id] = updated
            return updated

    def get_active_session(self, charge_box_id: str, connector_id: int) -> Optional[SessionSnapshot]:
        """
        Return the most recently started active session on a connector.
        """
        with self._lock:
            candidates = [
                s
                for s in self._sessions.values()
                if s.active and s.charge_box_id == charge_box_id and s.connector_id == connector_id
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: (s.start_timestamp, s.transaction_id))

    def get_session(self, transaction_id: int) -> Optional[SessionSnapshot]:
        with self._lock:
            return self._sessions.get(transaction_id)

    def all(self) -> List[SessionSnapshot]:
        """Return a copy of all stored sessions."""
        with self._lock:
            return list(self._sessions.values())
