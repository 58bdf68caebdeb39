# notify/mail.py
from __future__ import annotations
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import List, Optional

from ..helpers import mask_email

logger = logging.getLogger(__name__)


class Mailer:
    """
    Transactional HTML mail over SMTP (STARTTLS).

    smtplib blocks, so every send runs in a worker thread. With
    dry_run=True messages are logged and kept in `outbox` instead.
    """

    def __init__(
        self,
        user: str,
        password: str,
        host: str = "smtp.gmail.com",
        port: int = 587,
        from_name: str = "F-PEDIA",
        dry_run: bool = False,
        timeout: float = 30.0,
    ):
        self.user = (user or "").strip()
        self.password = (password or "").strip()
        self.host = host
        self.port = port
        self.from_name = from_name
        self.dry_run = dry_run
        self.timeout = timeout
        self.outbox: List[EmailMessage] = []

    def build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        if not to:
            raise ValueError("empty recipient")
        msg = EmailMessage()
        msg["From"] = (
            f"{self.from_name} <{self.user}>" if self.user else self.from_name
        )
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def _send_sync(self, msg: EmailMessage) -> bool:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
            s.ehlo()
            s.starttls()
            s.ehlo()
            s.login(self.user, self.password)
            refused = s.send_message(msg)
        if refused:
            logger.error("[Mail] refused recipients: %s", list(refused))
            return False
        return True

    async def send(self, to: str, subject: str, html: str,
                   reply_to: Optional[str] = None) -> bool:
        msg = self.build_message(to, subject, html)
        if reply_to:
            msg["Reply-To"] = reply_to

        if self.dry_run:
            self.outbox.append(msg)
            logger.info("[Mail] dry run to %s: %s", mask_email(to), subject)
            return True

        if not self.user or not self.password:
            logger.warning(
                "[Mail] EMAIL_USER/EMAIL_PASS not set, not sending '%s'",
                subject,
            )
            return False

        try:
            ok = await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("[Mail] error sending to %s: %s", mask_email(to), e)
            return False
        if ok:
            logger.info("[Mail] sent to %s: %s", mask_email(to), subject)
        return ok
