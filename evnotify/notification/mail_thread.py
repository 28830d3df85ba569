from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog

from evnotify.core.config.settings_provider import SettingsProvider
from evnotify.domain.models import Message
from evnotify.notification.base import MailTransport

logger = structlog.get_logger(__name__)

_STOP = Message(subject="__stop__", body="")


@dataclass(frozen=True)
class MailThreadConfig:
    max_queue: int = 2000
    retry_count: int = 3
    retry_backoff_s: float = 0.5
    poll_timeout_s: float = 0.5
    drain_timeout_s: float = 30.0


class MailWorkerThread:
    """
    Mail gateway backed by a queue and a delivery thread.

    ``send`` resolves recipients and enqueues the message without blocking;
    the worker thread delivers it to every transport, retrying with
    exponential backoff. Callers never see delivery errors.

    :meth:`stop` queues a stop marker behind the pending mail, so everything
    queued before the call is delivered first. Whatever is still queued when
    ``drain_timeout_s`` runs out is logged as undelivered.

    Parameters
    ----------
    transports
        Transports each message is delivered to.
    settings
        Provider of the operator recipient list, read on every ``send``
        that omits recipients.
    cfg
        Queue and retry configuration.
    """

    def __init__(
        self,
        transports: List[MailTransport],
        settings: SettingsProvider,
        cfg: MailThreadConfig | None = None,
    ):
        self._transports = transports
        self._settings = settings
        self._cfg = cfg or MailThreadConfig()
        self._q: "queue.Queue[Message]" = queue.Queue(maxsize=self._cfg.max_queue)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="mail-worker", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        """Deliver the queued mail, then stop the worker thread."""
        if self._stop.is_set():
            return
        self._stop.set()
        deadline = time.monotonic() + self._cfg.drain_timeout_s
        if self._thread.is_alive():
            try:
                self._q.put(_STOP, timeout=self._cfg.drain_timeout_s)
            except queue.Full:
                pass
            self._thread.join(timeout=max(0.0, deadline - time.monotonic()))

        left = self.pending()
        if left:
            logger.warning("Mail worker stopped with undelivered mail", pending=left)

    def send(self, subject: str, body: str, recipients: Optional[Sequence[str]] = None) -> None:
        """
        Queue a mail for delivery.

        Parameters
        ----------
        subject, body
            Mail content.
        recipients
            Explicit recipients. If None, the current operator recipients
            are used.
        """
        if recipients is None:
            resolved = tuple(self._settings.get_settings().recipients)
        else:
            resolved = tuple(recipients)

        if not resolved:
            logger.warning("Mail dropped, no recipients", subject=subject)
            return

        self.emit(Message(subject=subject, body=body, recipients=resolved))

    def emit(self, message: Message) -> None:
        try:
            self._q.put_nowait(message)
        except queue.Full:
            # Drop newest if overloaded to protect the dispatching thread
            logger.warning("Mail queue full, message dropped", subject=message.subject)

    def pending(self) -> int:
        """Number of queued messages, not counting the stop marker."""
        with self._q.mutex:
            return sum(1 for m in self._q.queue if m is not _STOP)

    def _run(self) -> None:
        # Only the stop marker ends the loop
        while True:
            try:
                message = self._q.get(timeout=self._cfg.poll_timeout_s)
            except queue.Empty:
                continue

            if message is _STOP:
                return

            for transport in self._transports:
                self._deliver_with_retries(transport, message)

    def _deliver_with_retries(self, transport: MailTransport, message: Message) -> None:
        for attempt in range(self._cfg.retry_count + 1):
            try:
                transport.deliver(message)
                return
            except Exception as e:
                if attempt >= self._cfg.retry_count:
                    logger.error(
                        "Mail delivery failed",
                        transport=type(transport).__name__,
                        subject=message.subject,
                        attempts=attempt + 1,
                        error=repr(e),
                    )
                    return
                time.sleep(self._cfg.retry_backoff_s * (2 ** attempt))
