from __future__ import annotations

import threading
from typing import Optional

import structlog

from evnotify.core.config.yaml_config import TcpClientConfig
from evnotify.runtime.event_bus import EventBus
from evnotify.transport.tcp_client import TCPNDJSONClient

logger = structlog.get_logger(__name__)


class EventsReceiverThread:
    """
    I/O thread feeding the event bus from the station backend's TCP feed.

    The loop connects, publishes every decoded event and, on any socket or
    decoding error, waits ``reconnect_delay_s`` before connecting again.
    :meth:`stop` closes the live client so a blocked read returns at once.

    Parameters
    ----------
    cfg
        Feed address and timing (the ``transport.tcp_client`` config section).
    bus
        Destination of decoded events.
    stop_event
        Shared runtime stop signal.
    """

    def __init__(self, cfg: TcpClientConfig, bus: EventBus, stop_event: threading.Event):
        self._cfg = cfg
        self._bus = bus
        self._stop = stop_event
        self._client: Optional[TCPNDJSONClient] = None
        self._thread = threading.Thread(target=self._run, name="events-receiver", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        client = self._client
        if client is not None:
            client.close()

    def join(self, timeout: float | None = 2.0) -> None:
        self._thread.join(timeout=timeout)

    def _pump(self, client: TCPNDJSONClient) -> None:
        for ev in client.events():
            if self._stop.is_set():
                return
            self._bus.publish(ev)

    def _run(self) -> None:
        while not self._stop.is_set():
            client = TCPNDJSONClient(host=self._cfg.host, port=self._cfg.port, timeout_s=self._cfg.timeout_s)
            self._client = client
            try:
                client.connect()
                self._pump(client)
            except (OSError, UnicodeDecodeError) as e:
                if self._stop.is_set():
                    break
                logger.warning(
                    "Event source connection lost",
                    host=self._cfg.host,
                    port=self._cfg.port,
                    retry_in_s=self._cfg.reconnect_delay_s,
                    error=repr(e),
                )
                self._stop.wait(self._cfg.reconnect_delay_s)
            finally:
                self._client = None
                client.close()
