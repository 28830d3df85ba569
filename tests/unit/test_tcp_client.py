"""
Unit tests for evnotify.transport.tcp_client.TCPNDJSONClient.

These tests validate transport behavior without performing real network I/O:
- connect() uses socket.create_connection with the connect timeout
- lines() yields complete lines from streamed chunks
- lines() handles empty payload (server close) as ConnectionError
- events() decodes valid lines and skips malformed lines

Approach
--------
We use a lightweight fake socket and monkeypatch socket.create_connection to return it.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, cast

import pytest
from structlog.testing import capture_logs

from evnotify.domain.events import StatusFailure
from evnotify.transport.tcp_client import PORT, TCPNDJSONClient


@dataclass
class FakeSocket:
    """
    Simple fake socket for deterministic recv behavior.

    Parameters
    ----------
    recv_chunks
        Byte chunks returned on successive recv() calls. When exhausted,
        recv() returns b"" to simulate server close.
    """

    recv_chunks: List[bytes]
    connected_to: Optional[Tuple[str, int]] = None
    timeout_history: List[Any] = field(default_factory=list)
    closed: bool = False

    def settimeout(self, value) -> None:
        self.timeout_history.append(value)

    def recv(self, n: int) -> bytes:
        if self.recv_chunks:
            return self.recv_chunks.pop(0)
        return b""

    def shutdown(self, how: int) -> None:
        return None

    def close(self) -> None:
        self.closed = True


def test_default_port() -> None:
    assert TCPNDJSONClient().port == PORT == 9010


def test_connect_uses_timeout_then_streaming_mode(monkeypatch) -> None:
    """
    connect() should bound only the connection setup by timeout_s.
    """
    fake = FakeSocket(recv_chunks=[])

    def fake_create_connection(address, timeout=None):
        fake.connected_to = address
        fake.timeout_history.append(timeout)
        return fake

    monkeypatch.setattr("socket.create_connection", fake_create_connection)

    client = TCPNDJSONClient(host="10.0.0.1", port=1234, timeout_s=2.5)
    client.connect()

    assert fake.connected_to == ("10.0.0.1", 1234)
    assert fake.timeout_history == [2.5, None]
    assert client._sock is fake

    client.close()
    assert fake.closed
    assert client._sock is None


def test_lines_yields_complete_lines_from_chunks() -> None:
    chunks = [
        b'{"a":1}\n{"b":',
        b'2}\n\n   \n{"c":3}\n',
    ]
    client = TCPNDJSONClient()
    client._sock = cast(socket.socket, FakeSocket(recv_chunks=chunks))

    it = client.lines()
    assert next(it) == '{"a":1}'
    assert next(it) == '{"b":2}'
    assert next(it) == '{"c":3}'

    with pytest.raises(ConnectionError):
        next(it)


def test_lines_raises_runtime_error_if_not_connected() -> None:
    with pytest.raises(RuntimeError):
        next(TCPNDJSONClient().lines())


def test_events_decodes_valid_and_skips_invalid(monkeypatch) -> None:
    client = TCPNDJSONClient()

    def fake_lines():
        yield '{"type":"status_failure","charge_box_id":"CB01","connector_id":1,"error_code":"E1","timestamp":"2026-01-01T00:00:00"}'
        yield "NOT JSON"
        yield '{"type":"status_failure","charge_box_id":"CB01"}'
        yield '{"type":"status_failure","charge_box_id":"CB01","connector_id":2,"error_code":"E2","timestamp":"2026-01-01T00:00:01"}'

    monkeypatch.setattr(client, "lines", fake_lines)

    with capture_logs() as logs:
        evs = list(client.events())

    assert len(evs) == 2
    assert all(isinstance(e, StatusFailure) for e in evs)
    assert [e.error_code for e in evs] == ["E1", "E2"]
    assert [e["log_level"] for e in logs] == ["warning", "warning"]
