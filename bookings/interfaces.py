"""Collaborator interfaces the booking services are built against.

Production wiring uses ``DjangoEmailSender``, ``PayPalClient`` and
``SystemClock``; tests pass in-memory fakes with the same methods.
"""
from typing import Optional, Protocol, Sequence, Tuple

from django.utils import timezone


# (content_id, png_bytes)
InlineImage = Tuple[str, bytes]


class EmailSender(Protocol):

    def send(self, to: str, subject: str, html_body: str,
             attachments: Optional[Sequence[InlineImage]] = None) -> bool:
        ...


class PaymentBridge(Protocol):

    def create_remote_order(self, currency: str, amount) -> Optional[str]:
        ...


class Clock(Protocol):

    def now(self):
        ...


class SystemClock:

    def now(self):
        return timezone.now()
