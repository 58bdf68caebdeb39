import asyncio
import uuid

import pytest
from sqlalchemy import select

from fpedia.helpers import now_ts
from fpedia.model import catalog
from fpedia.model import orders as order_store
from fpedia.model import stock as stock_store
from fpedia.model.db import AccountStock, Order

from conftest import ENCRYPTION_KEY

pytestmark = pytest.mark.anyio


async def seed(db, stock, n_orders=1, quantity=1):
    product = await catalog.create_product(db, {"title": "Canva Pro", "price": 1000})
    await stock_store.import_stock(
        db, product.id,
        [(f"a{i}@stock.test", f"pw{i}") for i in range(stock)],
        ENCRYPTION_KEY,
    )
    now = now_ts()
    order_ids = []
    for _ in range(n_orders):
        oid = uuid.uuid4().hex
        await order_store.create_order(db, Order(
            id=oid, transaction_id=f"INV-{oid}", product_id=product.id,
            buyer_email="b@stock.test", quantity=quantity, subtotal=1000,
            total_price=1000, created_at=now, expires_at=now + 60,
        ))
        order_ids.append(oid)
    return product.id, order_ids


async def test_allocate_claims_exactly_qty(db):
    pid, (oid,) = await seed(db, stock=3)
    assert await stock_store.allocate_accounts_to_order(db, oid, pid, 2)
    assert await stock_store.available_stock(db, pid) == 1

    creds = await stock_store.order_credentials(db, oid, ENCRYPTION_KEY)
    assert len(creds) == 2
    assert all(e.endswith("@stock.test") and p.startswith("pw") for e, p in creds)


async def test_allocate_again_is_a_noop(db):
    pid, (oid,) = await seed(db, stock=3)
    assert await stock_store.allocate_accounts_to_order(db, oid, pid, 2)
    assert await stock_store.allocate_accounts_to_order(db, oid, pid, 2)
    assert await stock_store.available_stock(db, pid) == 1
    assert len(await stock_store.order_credentials(db, oid, ENCRYPTION_KEY)) == 2


async def test_shortfall_claims_nothing(db):
    pid, (first, second) = await seed(db, stock=3, n_orders=2)
    assert await stock_store.allocate_accounts_to_order(db, first, pid, 2)
    assert not await stock_store.allocate_accounts_to_order(db, second, pid, 2)
    assert await stock_store.available_stock(db, pid) == 1
    assert await stock_store.order_credentials(db, second, ENCRYPTION_KEY) == []


async def test_quantity_must_be_positive(db):
    pid, (oid,) = await seed(db, stock=1)
    with pytest.raises(ValueError):
        await stock_store.allocate_accounts_to_order(db, oid, pid, 0)


async def test_concurrent_orders_get_disjoint_accounts(db):
    pid, orders = await seed(db, stock=4, n_orders=3)
    results = await asyncio.gather(*[
        stock_store.allocate_accounts_to_order(db, oid, pid, 2) for oid in orders
    ])
    assert sorted(results) == [False, True, True]
    assert await stock_store.available_stock(db, pid) == 0

    sets = [
        set(await stock_store.order_credentials(db, oid, ENCRYPTION_KEY))
        for oid in orders
    ]
    winners = [s for s in sets if s]
    assert len(winners) == 2
    assert winners[0].isdisjoint(winners[1])


async def test_credentials_are_encrypted_at_rest(db):
    pid, _ = await seed(db, stock=1)
    async with db.gated():
        async with db.session.begin():
            row = (await db.session.execute(
                select(AccountStock).where(AccountStock.product_id == pid)
            )).scalar_one()
    assert row.email != "a0@stock.test"
    assert ":" in row.password


async def test_preorder_rows_are_sold_and_linked(db):
    pid, (oid,) = await seed(db, stock=0)
    n = await stock_store.insert_sold_accounts(
        db, oid, pid, [("x@po.test", "px")], ENCRYPTION_KEY
    )
    assert n == 1
    assert await stock_store.available_stock(db, pid) == 0
    assert await stock_store.order_credentials(db, oid, ENCRYPTION_KEY) == [
        ("x@po.test", "px")
    ]


async def test_mark_paid_happens_once(db):
    pid, (oid,) = await seed(db, stock=0)
    assert await order_store.mark_paid(db, oid)
    assert not await order_store.mark_paid(db, oid)
    assert not await order_store.mark_failed(db, oid)
    order = await order_store.get_order(db, oid)
    assert order.payment_status == "paid"
    assert order.paid_at is not None
