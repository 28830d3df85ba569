from __future__ import annotations

from typing import Optional, Protocol, Sequence

from evnotify.domain.models import Message


class MailGateway(Protocol):
    """
    Protocol interface of the mail gateway used by the dispatcher.

    Sending is fire-and-forget: no delivery confirmation is returned.

    Methods
    -------
    send(subject, body, recipients=None)
        Send a mail. If ``recipients`` is omitted the configured operator
        recipient list is used.
    """

    def send(self, subject: str, body: str, recipients: Optional[Sequence[str]] = None) -> None:
        ...


class MailTransport(Protocol):
    """
    Protocol interface for delivering a resolved message.

    Any implementation providing ``deliver(message)`` can be plugged into the
    mail worker. Implementations raise on delivery failure so the worker can
    retry.
    """

    def deliver(self, message: Message) -> None:
        """
        Deliver a message to its recipients.

        Parameters
        ----------
        message
            The message to deliver. ``message.recipients`` is never empty.
        """
        ...
