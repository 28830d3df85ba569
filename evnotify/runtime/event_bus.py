from __future__ import annotations

from dataclasses import dataclass, field
from queue import Full, Queue

import structlog

from evnotify.domain.events import StationEvent

logger = structlog.get_logger(__name__)


@dataclass
class EventBus:
    """
    In-process event bus for lifecycle events using a thread-safe queue.

    The bus provides a simple producer/consumer mechanism:
    - Producers (the events receiver) publish events via :meth:`publish`.
    - The dispatch worker reads from :attr:`events_q`.

    Backpressure Policy
    -------------------
    If the queue is full, events are dropped with a warning. This prevents a
    slow mail path from blocking the event source.

    Attributes
    ----------
    events_q
        Bounded queue of lifecycle events.
    """

    events_q: "Queue[StationEvent]" = field(default_factory=lambda: Queue(maxsize=5000))

    def publish(self, ev: StationEvent) -> bool:
        """
        Publish a lifecycle event to the queue (non-blocking).

        Returns
        -------
        bool
            False if the event was dropped because the queue is full.
        """
        try:
            self.events_q.put_nowait(ev)
            return True
        except Full:
            logger.warning("Event bus full, event dropped", kind=ev.kind.value)
            return False
