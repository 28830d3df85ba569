from __future__ import annotations

import threading
from typing import Optional

from evnotify.core.config.yaml_config import TcpClientConfig
from evnotify.core.notify.dispatcher import Dispatcher
from evnotify.runtime.dispatch_worker_thread import DispatchWorkerThread
from evnotify.runtime.event_bus import EventBus
from evnotify.runtime.events_receiver_thread import EventsReceiverThread
from evnotify.runtime.executor import ThreadPoolGateway
from evnotify.runtime.session_recorder import SessionRecorder


class AppRuntime:
    """
    Owns the service threads and their shutdown order.

    Thread Topology
    ---------------
    1) EventsReceiverThread
       TCP feed -> decoded events -> EventBus.
    2) DispatchWorkerThread
       EventBus -> SessionRecorder -> Dispatcher.handle. Operator mails are
       queued from this thread.
    3) ThreadPoolGateway workers
       Subscriber lookups and subscriber mails.

    The mail worker is not owned here: it has to keep running until the
    pool has drained, so the caller stops it after :meth:`stop` returns.

    Parameters
    ----------
    events
        Address and timing of the event feed.
    dispatcher
        Dispatcher the worker hands events to.
    bus
        Queue between receiver and worker.
    executor
        Pool the dispatcher submits subscriber work to.
    recorder
        Optional session recorder applied before dispatch.
    """

    def __init__(
        self,
        events: TcpClientConfig,
        dispatcher: Dispatcher,
        bus: EventBus,
        executor: ThreadPoolGateway,
        recorder: Optional[SessionRecorder] = None,
    ):
        self._executor = executor
        self._stop = threading.Event()
        self._receiver = EventsReceiverThread(events, bus=bus, stop_event=self._stop)
        self._dispatch_worker = DispatchWorkerThread(
            bus=bus,
            dispatcher=dispatcher,
            stop_event=self._stop,
            recorder=recorder,
        )
        self._started = False

    def start(self) -> None:
        """Start the consumer before the producer."""
        self._dispatch_worker.start()
        self._receiver.start()
        self._started = True

    def stop(self) -> None:
        """
        Stop both threads, then wait for submitted subscriber tasks.
        """
        self._receiver.stop()
        self._dispatch_worker.stop()
        if self._started:
            self._receiver.join(timeout=2.0)
            self._dispatch_worker.join(timeout=2.0)
        self._executor.shutdown(wait=True)
