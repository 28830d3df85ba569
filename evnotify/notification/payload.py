from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from evnotify.domain.models import Message


def _iso(ts: datetime) -> str:
    """
    Convert datetime to ISO-8601 string with second precision.
    """
    return ts.isoformat(timespec="seconds")


def build_mail_payload(message: Message, sent_at: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Build the JSON payload posted to the mail relay webhook.

    Parameters
    ----------
    message
        Resolved message.
    sent_at
        Hand-off time. If None, uses ``datetime.now()``.

    Returns
    -------
    dict
        Payload with keys ``type``, ``subject``, ``body``, ``recipients``
        and ``sent_at``.
    """
    ts = sent_at or datetime.now()
    return {
        "type": "mail",
        "subject": message.subject,
        "body": message.body,
        "recipients": list(message.recipients),
        "sent_at": _iso(ts),
    }
