import pytest
from fastapi.testclient import TestClient

from fpedia.gateway import Pakasir
from fpedia.infra.sql import GatedAsyncSession, make_async_engine
from fpedia.model.db import Base

ADMIN_EMAIL = "admin@fpedia.test"
ADMIN_PASSWORD = "s3cret"
PAKASIR_KEY = "pk-test"
ENCRYPTION_KEY = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeGateway(Pakasir):
    """Pakasir without the network: fixed fee, optional outage."""

    def __init__(self, fee: int = 0):
        super().__init__(None, project="fpedia-test", api_key=PAKASIR_KEY)
        self.fee = fee
        self.down = False
        self.calls = []

    async def create_qris(self, order_ref, amount):
        self.calls.append((order_ref, amount))
        if self.down:
            return None
        return {
            "qr_string": f"QR-{order_ref}",
            "fee": self.fee,
            "total_payment": amount + self.fee,
        }


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def whatsapp(self, target, message, label="wa"):
        if target:
            self.sent.append({"kind": "wa", "to": target, "body": message,
                              "label": label})

    async def email(self, to, subject, html, label="mail"):
        if to:
            self.sent.append({"kind": "mail", "to": to, "subject": subject,
                              "body": html, "label": label})

    def labels(self):
        return [m["label"] for m in self.sent]

    def by_label(self, label):
        return [m for m in self.sent if m["label"] == label]


@pytest.fixture
def env(tmp_path, monkeypatch):
    # keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("ADMIN_EMAIL", ADMIN_EMAIL)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("ADMIN_WHATSAPP_NUMBER", "081200000001")
    monkeypatch.setenv("PAKASIR_API_KEY", PAKASIR_KEY)
    monkeypatch.setenv("ENCRYPTION_KEY", ENCRYPTION_KEY)
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
    monkeypatch.setenv("RATELIMIT_BACKEND", "pg")
    monkeypatch.setenv("NOTIFY_MODE", "inline")
    monkeypatch.setenv("EMAIL_DRY_RUN", "true")
    monkeypatch.setenv("MAINTENANCE_MODE", "false")
    return tmp_path


@pytest.fixture
def gateway():
    return FakeGateway(fee=700)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(env, gateway, notifier):
    from fpedia.server import app, get_gateway, get_notifier
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_call(client):
    """Run `fn(db, *args)` on the app's own loop and engine."""
    def call(fn, *args, **kwargs):
        async def go():
            state = client.app.state
            async with state.SessionAsync() as session:
                db = GatedAsyncSession(session=session, gated=state.gated)
                return await fn(db, *args, **kwargs)
        return client.portal.call(go)
    return call


@pytest.fixture
async def db(tmp_path):
    """Standalone store for model-level tests."""
    engine, SessionAsync, _, gated = make_async_engine(
        f"sqlite:///{tmp_path / 'model.db'}", gate_limit=1
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with SessionAsync() as session:
        yield GatedAsyncSession(session=session, gated=gated)
    await engine.dispose()


# ----------------------------
# HTTP helpers
# ----------------------------
def login_admin(client):
    r = client.post(
        "/admin/login", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
    )
    assert r.status_code == 200, r.text


def make_product(client, **fields):
    body = {"title": "Netflix Premium 1 Bulan", "price": 100000}
    body.update(fields)
    r = client.post("/api/admin/products", json=body)
    assert r.status_code == 200, r.text
    return r.json()["id"]


def add_stock(client, product_id, n, prefix="acc"):
    accounts = [
        {"email": f"{prefix}{i}@mail.test", "password": f"pw-{prefix}-{i}"}
        for i in range(n)
    ]
    r = client.post(
        "/api/admin/products/import-stock",
        json={"productId": product_id, "accounts": accounts},
    )
    assert r.status_code == 200, r.text
    return accounts


def checkout(client, product_id, quantity=1, **fields):
    body = {
        "productId": product_id,
        "fullName": "Budi",
        "email": "budi@mail.test",
        "whatsapp": "0812-3456-7890",
        "quantity": quantity,
    }
    body.update(fields)
    return client.post("/api/checkout", json=body)


def stock_count(client, product_id, ua="tests"):
    r = client.get(
        "/api/products/stock", params={"productId": product_id},
        headers={"user-agent": ua},
    )
    assert r.status_code == 200, r.text
    return r.json()["count"]


def pay(client, transaction_id, amount, **extra):
    body = {
        "order_id": transaction_id,
        "status": "completed",
        "amount": amount,
        "project": "fpedia-test",
        "payment_method": "qris",
    }
    body.update(extra)
    return client.post("/api/webhooks/pakasir", json=body)
