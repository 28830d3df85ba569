from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import requests
import structlog

from evnotify.domain.models import Message
from evnotify.notification.payload import build_mail_payload

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WebhookConfig:
    """
    Mail relay endpoint settings.

    Parameters
    ----------
    url
        Relay endpoint receiving one JSON document per message.
    timeout_s
        Per-request timeout in seconds.
    verify_tls
        Verify the relay's certificate.
    auth_header
        Full ``Authorization`` header value, e.g. ``"Bearer <token>"``.
    """

    url: str
    timeout_s: float = 2.0
    verify_tls: bool = True
    auth_header: Optional[str] = None


class WebhookMailTransport:
    """
    Hands messages to an HTTP mail relay.

    A single :class:`requests.Session` is reused, so retries from the mail
    worker go over a pooled connection. Only the mail worker thread calls
    :meth:`deliver`.
    """

    def __init__(self, cfg: WebhookConfig, session: Optional[requests.Session] = None):
        self._cfg = cfg
        self._session = session or requests.Session()
        self._session.headers.update(self._headers())

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._cfg.auth_header:
            headers["Authorization"] = self._cfg.auth_header
        return headers

    def deliver(self, message: Message) -> None:
        """
        POST one message to the relay.

        Raises
        ------
        requests.RequestException
            On network failure or a non-2xx status (``HTTPError``); the mail
            worker retries.
        """
        resp = self._session.post(
            self._cfg.url,
            json=build_mail_payload(message),
            timeout=self._cfg.timeout_s,
            verify=self._cfg.verify_tls,
        )
        resp.raise_for_status()
        logger.debug("Mail handed to relay", url=self._cfg.url, status=resp.status_code)


class LogMailTransport:
    """Writes messages to the log instead of sending them (no relay configured)."""

    def deliver(self, message: Message) -> None:
        logger.info(
            "Mail",
            subject=message.subject,
            recipients=list(message.recipients),
            body=message.body,
        )
