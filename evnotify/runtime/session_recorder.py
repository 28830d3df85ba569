from __future__ import annotations

from dataclasses import dataclass

import structlog

from evnotify.core.state.session_store import InMemorySessionStore
from evnotify.domain.events import StationEvent, TransactionEnded, TransactionStarted
from evnotify.domain.models import SessionSnapshot

logger = structlog.get_logger(__name__)


@dataclass
class SessionRecorder:
    """
    Keeps the in-memory session store in step with transaction events.

    The dispatch worker calls :meth:`record` before dispatching, so
    subscriber lookups see the transaction the event belongs to.
    """

    store: InMemorySessionStore

    def record(self, ev: StationEvent) -> None:
        if isinstance(ev, TransactionStarted):
            self.store.start(
                SessionSnapshot(
                    transaction_id=ev.transaction_id,
                    charge_box_id=ev.charge_box_id,
                    connector_id=ev.connector_id,
                    id_tag=ev.id_tag,
                    start_timestamp=ev.start_timestamp,
                    start_value=ev.start_meter_value,
                )
            )
        elif isinstance(ev, TransactionEnded):
            updated = self.store.stop(
                ev.transaction_id,
                stop_timestamp=ev.stop_timestamp,
                stop_value=ev.stop_meter_value,
                stop_reason=ev.stop_reason,
            )
            if updated is None:
                logger.info("Stop for unknown transaction", transaction_id=ev.transaction_id)
