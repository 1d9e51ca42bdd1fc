"""Sender capability: transactional email for receipts and finished reports."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Sender(Protocol):
    """Protocol every email provider satisfies. Failures raise NotificationError."""

    async def send_report_ready(self, to: str, business_name: str, access_token: str) -> None:
        ...

    async def send_receipt(self, to: str, business_name: str, amount_cents: int, currency: str) -> None:
        ...
