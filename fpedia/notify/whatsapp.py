# notify/whatsapp.py
import logging

import httpx

from ..helpers import mask_phone

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """Thin client for the WhatsApp gateway's `/send-message` endpoint."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, secret: str = ""):
        self.http = http
        self.base_url = (base_url or "").rstrip("/")
        self.secret = secret

    async def send(self, number: str, message: str) -> bool:
        if not self.base_url:
            logger.warning("[WA] WHATSAPP_API_URL not set, dropping message")
            return False
        headers = {"x-api-key": self.secret} if self.secret else {}
        try:
            r = await self.http.post(
                f"{self.base_url}/send-message",
                json={"number": number, "message": message},
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error("[WA] send to %s failed: %s", mask_phone(number), e)
            return False
        if r.status_code >= 300:
            logger.error(
                "[WA] send to %s rejected: %s %s",
                mask_phone(number), r.status_code, r.text[:200],
            )
            return False
        logger.info("[WA] sent to %s", mask_phone(number))
        return True
