from typing import Optional

from .dispatcher import NotificationDispatcher, BACKGROUND, INLINE
from .mail import Mailer
from .templates import render
from .whatsapp import WhatsAppClient


class Notifier:
    """
    Fire-and-forget WhatsApp and mail. Empty targets are skipped; sends are
    handed to the dispatcher and never raise into the caller.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        whatsapp: WhatsAppClient,
        mailer: Mailer,
    ):
        self.dispatcher = dispatcher
        self.wa = whatsapp
        self.mailer = mailer

    async def whatsapp(
        self, target: Optional[str], message: str, label: str = "wa"
    ) -> None:
        if not target:
            return
        await self.dispatcher.submit(
            label, lambda: self.wa.send(target, message)
        )

    async def email(
        self, to: Optional[str], subject: str, html: str, label: str = "mail"
    ) -> None:
        if not to:
            return
        await self.dispatcher.submit(
            label, lambda: self.mailer.send(to, subject, html)
        )


__all__ = [
    "Notifier", "NotificationDispatcher", "Mailer", "WhatsAppClient",
    "render", "BACKGROUND", "INLINE",
]
