# model/stock.py
"""
Credential stock ("account_stock") backed by the relational store.

- counting unsold credentials for a product
- the atomic claim of N unsold credentials for a paid order
- admin bulk import and preorder inserts
- reading back (decrypted) the credentials linked to an order
"""

from __future__ import annotations
import logging
import uuid
from typing import Iterable, List, Tuple

from sqlalchemy import select, update, func, text

from ..crypto import encrypt, decrypt
from ..helpers import now_ts
from ..infra.sql import GatedAsyncSession
from .db import AccountStock, OrderAccount

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]  # (email, password)


class _Shortfall(Exception):
    pass


# ------------------------------------------------------------------------------
# Read APIs
# ------------------------------------------------------------------------------

async def available_stock(db: GatedAsyncSession, product_id: str) -> int:
    async with db.gated():
        async with db.session.begin():
            n = (await db.session.execute(text("""
                SELECT COUNT(*) FROM account_stock
                WHERE product_id = :p AND is_sold = :sold
            """), {"p": product_id, "sold": False})).scalar_one()
    return int(n)


async def order_credentials(
    db: GatedAsyncSession, order_id: str, key: str
) -> List[Pair]:
    """Decrypted (email, password) pairs linked to the order."""
    async with db.gated():
        async with db.session.begin():
            rows = (await db.session.execute(
                select(AccountStock.email, AccountStock.password)
                .join(
                    OrderAccount,
                    OrderAccount.account_stock_id == AccountStock.id,
                )
                .where(OrderAccount.order_id == order_id)
                .order_by(AccountStock.sold_at, AccountStock.id)
            )).all()
    return [(decrypt(e, key), decrypt(p, key)) for e, p in rows]


# ------------------------------------------------------------------------------
# Allocation
# ------------------------------------------------------------------------------

async def allocate_accounts_to_order(
    db: GatedAsyncSession, order_id: str, product_id: str, qty: int
) -> bool:
    """
    Claim `qty` unsold credentials for `order_id` in one transaction.

    Rows are claimed with a conditional UPDATE (is_sold = false) and the
    affected row count must equal the number requested, otherwise the whole
    transaction rolls back. An order that already holds `qty` links is left
    alone and reported as allocated.
    """
    if qty <= 0:
        raise ValueError("qty must be positive")

    now = now_ts()
    try:
        async with db.gated():
            async with db.session.begin():
                linked = (await db.session.execute(
                    select(func.count())
                    .select_from(OrderAccount)
                    .where(OrderAccount.order_id == order_id)
                )).scalar_one()
                if linked >= qty:
                    return True
                need = qty - int(linked)

                ids = (await db.session.execute(
                    select(AccountStock.id)
                    .where(
                        AccountStock.product_id == product_id,
                        AccountStock.is_sold.is_(False),
                    )
                    .order_by(AccountStock.created_at, AccountStock.id)
                    .limit(need)
                    .with_for_update(skip_locked=True)
                )).scalars().all()
                if len(ids) < need:
                    raise _Shortfall(f"need {need}, found {len(ids)}")

                res = await db.session.execute(
                    update(AccountStock)
                    .where(
                        AccountStock.id.in_(ids),
                        AccountStock.is_sold.is_(False),
                    )
                    .values(is_sold=True, sold_at=now)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount != need:
                    raise _Shortfall(
                        f"claimed {res.rowcount} of {need} (concurrent buyer)"
                    )

                db.session.add_all([
                    OrderAccount(order_id=order_id, account_stock_id=i)
                    for i in ids
                ])
    except _Shortfall as e:
        logger.warning(
            "[Stock] allocation failed for order %s: %s", order_id, e
        )
        return False
    return True


# ------------------------------------------------------------------------------
# Inserts
# ------------------------------------------------------------------------------

def _rows(
    product_id: str, pairs: Iterable[Pair], key: str, sold: bool, now: float
) -> List[AccountStock]:
    return [
        AccountStock(
            id=uuid.uuid4().hex,
            product_id=product_id,
            email=encrypt(email, key),
            password=encrypt(password, key),
            is_sold=sold,
            sold_at=now if sold else None,
            created_at=now,
        )
        for email, password in pairs
    ]


async def import_stock(
    db: GatedAsyncSession, product_id: str, pairs: Iterable[Pair], key: str
) -> int:
    """Admin bulk import: encrypted, unsold."""
    rows = _rows(product_id, pairs, key, sold=False, now=now_ts())
    async with db.gated():
        async with db.session.begin():
            db.session.add_all(rows)
    return len(rows)


async def insert_sold_accounts(
    db: GatedAsyncSession,
    order_id: str,
    product_id: str,
    pairs: Iterable[Pair],
    key: str,
) -> int:
    """Preorder delivery: new rows already sold and linked to the order."""
    rows = _rows(product_id, pairs, key, sold=True, now=now_ts())
    async with db.gated():
        async with db.session.begin():
            db.session.add_all(rows)
            await db.session.flush()
            db.session.add_all([
                OrderAccount(order_id=order_id, account_stock_id=r.id)
                for r in rows
            ])
    return len(rows)
