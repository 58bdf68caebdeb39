# model/orders.py
from __future__ import annotations
from typing import List, Optional

from sqlalchemy import select, update

from ..helpers import now_ts
from ..infra.sql import GatedAsyncSession
from .db import Order, PENDING, PAID, FAILED

ORDER_TTL_SECONDS = 24 * 60 * 60


async def create_order(db: GatedAsyncSession, order: Order) -> Order:
    async with db.gated():
        async with db.session.begin():
            db.session.add(order)
    return order


# status is changed with Core UPDATEs, so always refresh from the row
async def get_order(db: GatedAsyncSession, order_id: str) -> Optional[Order]:
    async with db.gated():
        async with db.session.begin():
            return await db.session.get(Order, order_id, populate_existing=True)


async def get_order_by_transaction(
    db: GatedAsyncSession, transaction_id: str
) -> Optional[Order]:
    async with db.gated():
        async with db.session.begin():
            return (await db.session.execute(
                select(Order)
                .where(Order.transaction_id == transaction_id)
                .execution_options(populate_existing=True)
            )).scalar_one_or_none()


async def mark_paid(db: GatedAsyncSession, order_id: str) -> bool:
    """
    pending -> paid as a single conditional UPDATE.
    True only for the caller whose update flipped the row.
    """
    async with db.gated():
        async with db.session.begin():
            res = await db.session.execute(
                update(Order)
                .where(Order.id == order_id, Order.payment_status == PENDING)
                .values(payment_status=PAID, paid_at=now_ts())
                .execution_options(synchronize_session=False)
            )
    return res.rowcount == 1


async def mark_failed(db: GatedAsyncSession, order_id: str) -> bool:
    async with db.gated():
        async with db.session.begin():
            res = await db.session.execute(
                update(Order)
                .where(Order.id == order_id, Order.payment_status == PENDING)
                .values(payment_status=FAILED)
                .execution_options(synchronize_session=False)
            )
    return res.rowcount == 1


async def recent_orders(db: GatedAsyncSession, limit: int = 200) -> List[Order]:
    async with db.gated():
        async with db.session.begin():
            return list((await db.session.execute(
                select(Order)
                .order_by(Order.created_at.desc())
                .limit(max(1, min(limit, 500)))
            )).scalars().all())


async def pending_orders_between(
    db: GatedAsyncSession, created_after: float, created_before: float
) -> List[Order]:
    async with db.gated():
        async with db.session.begin():
            return list((await db.session.execute(
                select(Order).where(
                    Order.payment_status == PENDING,
                    Order.created_at > created_after,
                    Order.created_at < created_before,
                )
            )).scalars().all())
