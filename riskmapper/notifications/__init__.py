"""Transactional email."""

from riskmapper.core.config import Settings
from riskmapper.notifications.base import Sender
from riskmapper.notifications.resend import LogSender, ResendSender


def build_sender(settings: Settings) -> Sender:
    if not settings.resend_api_key:
        return LogSender()
    return ResendSender(
        api_key=settings.resend_api_key,
        from_addr=settings.email_from_addr,
        from_name=settings.email_from_name,
        base_url=settings.base_url,
    )


__all__ = ["LogSender", "ResendSender", "Sender", "build_sender"]
