"""
Turning a paid order into delivered credentials.

    mark paid -> allocate stock -> read back credentials -> notify -> low-stock check

Only the caller that flips the order from pending to paid goes past the first
step. Everything after allocation is best-effort.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .helpers import normalize_phone, mask_phone
from .infra.sql import GatedAsyncSession
from .infra.timings import timeit
from .model import catalog
from .model import orders as order_store
from .model import stock as stock_store
from .model.db import PAID
from .notify import Notifier, render

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5
ALLOCATION_ERROR = "Failed to allocate accounts. Check stock."


@dataclass
class FulfillmentContext:
    db: GatedAsyncSession
    notifier: Notifier
    settings: Settings


@dataclass
class FulfillmentResult:
    ok: bool
    error: Optional[str] = None
    already_paid: bool = False


async def confirm_order_paid(
    ctx: FulfillmentContext, order_id: str
) -> FulfillmentResult:
    db, notifier, settings = ctx.db, ctx.notifier, ctx.settings

    order = await order_store.get_order(db, order_id)
    if order is None:
        return FulfillmentResult(ok=False, error="Order not found")

    # 1. pending -> paid; the winner of this update does the rest
    if not await order_store.mark_paid(db, order_id):
        current = await order_store.get_order(db, order_id)
        if current is not None and current.payment_status == PAID:
            logger.info(
                "[Fulfillment] %s already paid, skipping",
                order.transaction_id,
            )
            return FulfillmentResult(ok=True, already_paid=True)
        return FulfillmentResult(ok=False, error="Order is not pending")

    product = await catalog.get_product(
        db, order.product_id, include_deleted=True
    )
    title = product.title if product else "Produk"
    quantity = order.quantity or 1

    # 2. allocation
    if product is not None and product.is_preorder:
        logger.info(
            "[Fulfillment] %s is a preorder, awaiting manual delivery",
            order.transaction_id,
        )
    else:
        try:
            async with timeit("fulfillment.allocate"):
                allocated = await stock_store.allocate_accounts_to_order(
                    db, order.id, order.product_id, quantity
                )
        except SQLAlchemyError:
            logger.exception(
                "[Fulfillment] allocation error for %s", order.transaction_id
            )
            allocated = False

        if not allocated:
            logger.error(
                "[Fulfillment] %s is paid but has no accounts (qty %d)",
                order.transaction_id, quantity,
            )
            await notifier.email(
                settings.ADMIN_EMAIL,
                f"[Manual Delivery] {order.transaction_id} - {title}",
                render(
                    "admin_allocation_failed.html",
                    transaction_id=order.transaction_id,
                    product_title=title,
                    quantity=quantity,
                    email=order.buyer_email,
                    whatsapp=order.buyer_whatsapp,
                    site_url=settings.SITE_URL,
                ),
                label="admin-allocation-failed",
            )
            return FulfillmentResult(ok=False, error=ALLOCATION_ERROR)

    # 3. + 4. credentials and notifications
    try:
        accounts = await stock_store.order_credentials(
            db, order.id, settings.ENCRYPTION_KEY
        )
        buyer_wa = normalize_phone(order.buyer_whatsapp)
        if buyer_wa:
            await notifier.whatsapp(
                buyer_wa,
                render(
                    "buyer_delivery.txt",
                    buyer=order.buyer_name or order.buyer_email,
                    product_title=title,
                    transaction_id=order.transaction_id,
                    quantity=quantity,
                    accounts=accounts,
                    instructions=product.instructions if product else None,
                    promo_text=order.promo_text,
                ),
                label="buyer-delivery",
            )
        else:
            logger.warning(
                "[Fulfillment] buyer number %s not usable, skipping WA",
                mask_phone(order.buyer_whatsapp),
            )
        await notifier.email(
            settings.ADMIN_EMAIL,
            f"[Payment Received] {order.transaction_id} - {title}",
            render(
                "admin_payment.html",
                transaction_id=order.transaction_id,
                product_title=title,
                quantity=quantity,
                total=order.total_price,
                email=order.buyer_email,
                whatsapp=order.buyer_whatsapp,
                accounts=accounts,
            ),
            label="admin-payment",
        )
    except Exception:
        logger.exception(
            "[Fulfillment] delivery notifications for %s failed",
            order.transaction_id,
        )

    # 5. low stock
    if product is not None and not product.is_preorder:
        try:
            stock = await stock_store.available_stock(db, order.product_id)
            if stock < LOW_STOCK_THRESHOLD:
                await notifier.email(
                    settings.ADMIN_EMAIL,
                    f"[LOW STOCK] {title} - Sisa {stock}",
                    render(
                        "admin_low_stock.html",
                        product_title=title,
                        stock=stock,
                        site_url=settings.SITE_URL,
                    ),
                    label="admin-low-stock",
                )
        except Exception:
            logger.exception(
                "[Fulfillment] low stock check for %s failed", title
            )

    logger.info("[Fulfillment] %s confirmed", order.transaction_id)
    return FulfillmentResult(ok=True)
