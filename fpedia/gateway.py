from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Optional, TypedDict
import logging

import httpx

logger = logging.getLogger(__name__)

# Static QRIS payload served when the gateway is unavailable. An order created
# with it can never be paid.
PLACEHOLDER_QR = (
    "00020101021226590013ID.CO.QRIS.WWW01189360091800216005230208216005230303"
    "UME51440014ID.CO.QRIS.WWW0215ID10243228429300303UME5204792953033605409100"
    "003.005802ID5907Pakasir6012KAB. KEBUMEN61055439262230519SP25RZRATEQI2HQ65"
    "Q46304A079"
)

COMPLETED = "completed"


# ----------------------------
# Payment Adapter Interface
# ----------------------------
class QrisCharge(TypedDict):
    qr_string: str
    fee: int
    total_payment: int


class WebhookEvent(TypedDict):
    order_ref: Optional[str]
    status: Optional[str]
    # exact value as sent; None when absent
    amount: Optional[Decimal]
    api_key: Optional[str]


class InvalidWebhook(ValueError):
    """The webhook body carries a field that cannot be trusted."""


class PaymentAdapter(ABC):
    @abstractmethod
    async def create_qris(
            self, order_ref: str, amount: int
    ) -> Optional[QrisCharge]: ...

    @abstractmethod
    def parse_webhook(self, body: dict) -> WebhookEvent: ...

    def is_completed(self, event: WebhookEvent) -> bool:
        return event.get("status") == COMPLETED and bool(event.get("order_ref"))


def _to_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


def _to_amount(value) -> Optional[Decimal]:
    # no rounding: the amount must match the order total exactly
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidWebhook(f"amount {value!r} is not a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidWebhook(f"amount {value!r} is not a number")
    if not amount.is_finite():
        raise InvalidWebhook(f"amount {value!r} is not a number")
    return amount


# ----------------------------
# Pakasir implementation
# ----------------------------
class Pakasir(PaymentAdapter):

    def __init__(self, http: httpx.AsyncClient, project: str, api_key: str,
                 base_url: str = "https://app.pakasir.com"):
        self.http = http
        self.project = project
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.project and self.api_key)

    async def create_qris(
            self, order_ref: str, amount: int
    ) -> Optional[QrisCharge]:
        """None on any failure; the caller decides how to degrade."""
        if not self.enabled:
            logger.warning(
                "[Pakasir] credentials missing, no QRIS for %s", order_ref
            )
            return None
        try:
            r = await self.http.post(
                f"{self.base_url}/api/transactioncreate/qris",
                json={
                    "project": self.project,
                    "order_id": order_ref,
                    "amount": amount,
                    "api_key": self.api_key,
                },
            )
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("[Pakasir] create_qris %s failed: %s", order_ref, e)
            return None

        if r.status_code >= 300:
            logger.error(
                "[Pakasir] create_qris %s: HTTP %s", order_ref, r.status_code
            )
            return None

        payment = (data or {}).get("payment") or {}
        qr = payment.get("payment_number")
        if not qr:
            logger.warning(
                "[Pakasir] no payment_number for %s: %s", order_ref, data
            )
            return None

        fee = _to_int(payment.get("fee")) or 0
        total = _to_int(payment.get("total_payment"))
        if total is None:
            total = amount + fee
        return {"qr_string": qr, "fee": fee, "total_payment": total}

    def parse_webhook(self, body: dict) -> WebhookEvent:
        # body: amount, order_id, project, status, payment_method, completed_at
        # raises InvalidWebhook for an amount that is present but not a number
        return {
            "order_ref": body.get("order_id") or None,
            "status": body.get("status"),
            "amount": _to_amount(body.get("amount")),
            "api_key": body.get("api_key") or None,
        }
