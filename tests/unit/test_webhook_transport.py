"""
Unit tests for evnotify.notification.webhook_transport.

These tests validate relay delivery without network I/O:
- request parameters passed to the session's post()
- Authorization header handling
- HTTP error propagation via raise_for_status()

A fake session is injected; one test also patches ``requests.Session.post``
to check the default session path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
import requests
from structlog.testing import capture_logs

from evnotify.domain.models import Message
from evnotify.notification.webhook_transport import LogMailTransport, WebhookConfig, WebhookMailTransport


@dataclass
class FakeSession:
    """Records post() calls and returns ``response``."""

    response: Any = field(default_factory=MagicMock)
    headers: Dict[str, str] = field(default_factory=dict)
    calls: List[Dict[str, Any]] = field(default_factory=list)

    def post(self, url: str, **kwargs: Any) -> Any:
        self.calls.append({"url": url, **kwargs})
        return self.response


def _mk_message() -> Message:
    return Message(
        subject="Connector '1' of charging station 'CB01' is FAULTED",
        body="Status Error Code: 'E42'",
        recipients=("ops@example.org",),
    )


def test_deliver_posts_payload_without_auth() -> None:
    session = FakeSession()
    cfg = WebhookConfig(url="https://relay.example.com/mail", timeout_s=3.0, verify_tls=False)

    WebhookMailTransport(cfg, session=session).deliver(_mk_message())  # type: ignore[arg-type]

    assert len(session.calls) == 1
    call = session.calls[0]
    assert call["url"] == "https://relay.example.com/mail"
    assert call["json"]["type"] == "mail"
    assert call["json"]["subject"] == "Connector '1' of charging station 'CB01' is FAULTED"
    assert call["json"]["recipients"] == ["ops@example.org"]
    assert call["timeout"] == 3.0
    assert call["verify"] is False
    assert session.headers == {"Content-Type": "application/json"}
    session.response.raise_for_status.assert_called_once()


def test_auth_header_is_set_on_the_session() -> None:
    session = FakeSession()
    cfg = WebhookConfig(url="https://relay.example.com/mail", auth_header="Bearer TOKEN")
    WebhookMailTransport(cfg, session=session)  # type: ignore[arg-type]
    assert session.headers["Authorization"] == "Bearer TOKEN"


def test_http_errors_propagate() -> None:
    """
    deliver() raises if raise_for_status() raises, so the mail worker can retry.
    """
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("503")
    transport = WebhookMailTransport(
        WebhookConfig(url="https://relay.example.com/mail"),
        session=FakeSession(response=response),  # type: ignore[arg-type]
    )

    with pytest.raises(requests.HTTPError):
        transport.deliver(_mk_message())


def test_default_session_uses_requests(monkeypatch) -> None:
    response = MagicMock()
    seen: Dict[str, Any] = {}

    def fake_post(self, url, **kwargs):
        seen["url"] = url
        seen["headers"] = dict(self.headers)
        return response

    monkeypatch.setattr(requests.Session, "post", fake_post)

    WebhookMailTransport(WebhookConfig(url="http://relay.local/mail", auth_header="Bearer T")).deliver(_mk_message())

    assert seen["url"] == "http://relay.local/mail"
    assert seen["headers"]["Authorization"] == "Bearer T"


def test_log_transport_writes_mail_to_log() -> None:
    with capture_logs() as logs:
        LogMailTransport().deliver(_mk_message())

    assert logs[0]["log_level"] == "info"
    assert logs[0]["recipients"] == ["ops@example.org"]
    assert logs[0]["body"] == "Status Error Code: 'E42'"
