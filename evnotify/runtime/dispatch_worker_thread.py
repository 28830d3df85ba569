from __future__ import annotations

import threading
from queue import Empty
from typing import Optional

import structlog

from evnotify.core.notify.dispatcher import Dispatcher
from evnotify.domain.events import StationEvent
from evnotify.runtime.event_bus import EventBus
from evnotify.runtime.session_recorder import SessionRecorder

logger = structlog.get_logger(__name__)


class DispatchWorkerThread:
    """
    Worker thread delivering lifecycle events to the dispatcher.

    Responsibilities
    ----------------
    - Consume events from `EventBus.events_q`.
    - Let the session recorder apply transaction events first.
    - Call :meth:`Dispatcher.handle`, which sends operator mails on this
      thread and hands subscriber work to the execution gateway.

    Concurrency Model
    -----------------
    - Runs as a daemon thread.
    - Polls the queue with a timeout to remain responsive to stop signals.
    - Exceptions are caught and logged to avoid killing the thread.

    Parameters
    ----------
    bus
        Event bus providing the event queue.
    dispatcher
        Notification dispatcher.
    stop_event
        Stop signal for the thread.
    recorder
        Optional session recorder.
    """

    def __init__(
        self,
        bus: EventBus,
        dispatcher: Dispatcher,
        stop_event: threading.Event,
        recorder: Optional[SessionRecorder] = None,
    ):
        self._bus = bus
        self._dispatcher = dispatcher
        self._recorder = recorder
        self._stop = stop_event
        self._thread = threading.Thread(target=self._run, name="dispatch-worker", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 2.0) -> None:
        self._thread.join(timeout=timeout)

    def process(self, ev: StationEvent) -> None:
        """
        Record and dispatch one event on the calling thread.
        """
        if self._recorder is not None:
            try:
                self._recorder.record(ev)
            except Exception:
                logger.error("Session recording failed", kind=ev.kind.value, exc_info=True)
        self._dispatcher.handle(ev)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                ev = self._bus.events_q.get(timeout=0.5)
            except Empty:
                continue

            try:
                self.process(ev)
            except Exception:
                logger.error("Event processing failed", kind=ev.kind.value, exc_info=True)
