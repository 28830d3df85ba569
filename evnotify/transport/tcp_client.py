from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Iterator, Optional

import structlog

from evnotify.domain.events import StationEvent
from evnotify.transport.ndjson import decode_event

logger = structlog.get_logger(__name__)

HOST: str = "127.0.0.1"
PORT: int = 9010
TIMEOUT_S: float = 5.0
RECV_SIZE: int = 4096


@dataclass
class TCPNDJSONClient:
    """
    Streaming client for the station backend's NDJSON event feed.

    One JSON object per line. :meth:`lines` yields raw lines, :meth:`events`
    decodes them and drops the ones that do not decode.

    Parameters
    ----------
    host, port
        Address of the event feed.
    timeout_s
        Applies to connection setup only; reads block indefinitely.
    """

    host: str = HOST
    port: int = PORT
    timeout_s: float = TIMEOUT_S

    _sock: Optional[socket.socket] = field(default=None, repr=False)

    def connect(self) -> None:
        """
        Connect to the feed and switch the socket to blocking reads.

        Raises
        ------
        OSError
            If the connection cannot be established within ``timeout_s``.
        """
        sock = socket.create_connection((self.host, self.port), timeout=self.timeout_s)
        sock.settimeout(None)
        self._sock = sock
        logger.info("Connected to event source", host=self.host, port=self.port)

    def lines(self) -> Iterator[str]:
        """
        Yield non-blank lines as they complete, without the newline.

        Raises
        ------
        RuntimeError
            If not connected.
        ConnectionError
            When the peer closes the stream.
        UnicodeDecodeError
            On a line that is not UTF-8.
        """
        if self._sock is None:
            raise RuntimeError("Not connected")

        pending = bytearray()
        while True:
            chunk = self._sock.recv(RECV_SIZE)
            if not chunk:
                raise ConnectionError("Server closed connection")
            pending.extend(chunk)

            start = 0
            while True:
                end = pending.find(b"\n", start)
                if end < 0:
                    break
                text = pending[start:end].decode("utf-8").strip()
                start = end + 1
                if text:
                    yield text
            del pending[:start]

    def events(self) -> Iterator[StationEvent]:
        """
        Yield decoded events; undecodable lines are logged and skipped.
        """
        for line in self.lines():
            try:
                ev = decode_event(line)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Malformed event line skipped", line=line[:200], error=repr(e))
                continue
            yield ev

    def close(self) -> None:
        """
        Shut down and close the socket. Safe to call repeatedly.

        Shutting down first wakes a thread blocked in :meth:`lines`.
        """
        sock, self._sock = self._sock, None
        if sock is None:
            return
        for op in (lambda: sock.shutdown(socket.SHUT_RDWR), sock.close):
            try:
                op()
            except OSError:
                pass
