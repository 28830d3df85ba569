from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Protocol

from evnotify.domain.models import SubscriberPreference


class SubscriberStore(Protocol):
    """
    Read-only contract of the subscriber store.

    ``get_preferences`` returns None for unknown id tags instead of raising.
    """

    def get_preferences(self, id_tag: str) -> Optional[SubscriberPreference]:
        ...


@dataclass
class InMemorySubscriberStore:
    """
    Thread-safe in-memory subscriber store keyed by id tag.

    Notes
    -----
    Preferences are replaced wholesale by :meth:`put`; readers always get the
    latest snapshot, never a cached copy.
    """

    _prefs: Dict[str, SubscriberPreference] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def load(self, prefs: Iterable[SubscriberPreference]) -> None:
        """
        Add or replace preferences in bulk.
        """
        with self._lock:
            for p in prefs:
                self._prefs[p.id_tag] = p

    def put(self, pref: SubscriberPreference) -> None:
        with self._lock:
            self._prefs[pref.id_tag] = pref

    def remove(self, id_tag: str) -> None:
        with self._lock:
            self._prefs.pop(id_tag, None)

    def get_preferences(self, id_tag: str) -> Optional[SubscriberPreference]:
        with self._lock:
            return self._prefs.get(id_tag)
