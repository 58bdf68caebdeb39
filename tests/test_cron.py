import uuid

from fpedia.helpers import now_ts
from fpedia.model import orders as order_store
from fpedia.model.db import Order, OtpCode, RateLimitHit

from conftest import login_admin, make_product, checkout

URL = "/api/cron/payment-reminder"
BEARER = {"authorization": "Bearer cron-secret"}


def _pending(product_id, age_seconds, email="late@mail.test"):
    created = now_ts() - age_seconds
    return Order(
        id=uuid.uuid4().hex,
        transaction_id=f"INV-{int(created * 1000)}-{uuid.uuid4().hex[:4]}",
        product_id=product_id,
        buyer_email=email,
        quantity=1,
        subtotal=100000,
        fee=700,
        total_price=100700,
        created_at=created,
        expires_at=created + order_store.ORDER_TTL_SECONDS,
    )


async def _add_stale_rows(db):
    now = now_ts()
    async with db.gated():
        async with db.session.begin():
            db.session.add(OtpCode(
                identifier="budi@mail.test", code="123456", purpose="register",
                created_at=now - 600, expires_at=now - 300,
            ))
            db.session.add(RateLimitHit(key="stock:x", created_at=now - 7200))


def test_requires_authorization(client):
    assert client.get(URL).status_code == 401
    r = client.get(URL, headers={"authorization": "Bearer wrong"})
    assert r.status_code == 401
    assert client.get(URL, headers=BEARER).status_code == 200


def test_admin_session_is_enough(client):
    login_admin(client)
    r = client.get(URL)
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_reminds_orders_in_window(client, notifier, db_call):
    login_admin(client)
    pid = make_product(client, is_preorder=True)

    due = _pending(pid, 90 * 60)
    too_old = _pending(pid, 3 * 3600, email="old@mail.test")
    db_call(order_store.create_order, due)
    db_call(order_store.create_order, too_old)
    checkout(client, pid, 1)  # just created

    client.get("/admin/logout")
    r = client.get(URL, headers=BEARER)
    assert r.status_code == 200
    body = r.json()
    assert body["reminded_count"] == 1
    assert body["orders"] == [due.transaction_id]

    (mail,) = notifier.by_label("payment-reminder")
    assert mail["to"] == "late@mail.test"
    assert "Rp 100.700" in mail["body"]
    assert due.transaction_id in mail["body"]


def test_paid_orders_are_not_reminded(client, notifier, db_call):
    login_admin(client)
    pid = make_product(client, is_preorder=True)
    order = _pending(pid, 90 * 60)
    db_call(order_store.create_order, order)
    assert db_call(order_store.mark_paid, order.id) is True

    assert client.get(URL).json()["reminded_count"] == 0
    assert notifier.by_label("payment-reminder") == []


def test_prunes_expired_rows(client, db_call):
    db_call(_add_stale_rows)
    body = client.get(URL, headers=BEARER).json()
    assert body["pruned_otp"] == 1
    assert body["pruned_rate_limits"] == 1
