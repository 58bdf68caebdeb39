import fakeredis
import pytest

from fpedia.helpers import now_ts
from fpedia.infra.sql import GatedAsyncSession, make_async_engine
from fpedia.model.ratelimit import new_limiter
from fpedia.model.ratelimit._base import DENIED_MESSAGE

from conftest import login_admin, make_product, add_stock, stock_count


def test_stock_probe_is_rate_limited(client):
    login_admin(client)
    pid = make_product(client)
    add_stock(client, pid, 3)

    for _ in range(20):
        assert stock_count(client, pid) == 3
    r = client.get(
        "/api/products/stock", params={"productId": pid},
        headers={"user-agent": "tests"},
    )
    assert r.status_code == 429
    assert stock_count(client, pid, ua="someone-else") == 3


def test_stock_probe_requires_product(client):
    r = client.get("/api/products/stock")
    assert r.status_code == 400
    assert r.json() == {"error": "Missing productId"}


def test_new_limiter_checks_arguments():
    with pytest.raises(RuntimeError):
        new_limiter(kind="pg")
    with pytest.raises(RuntimeError):
        new_limiter(kind="redis")


@pytest.mark.anyio
async def test_table_limiter(db):
    limiter = new_limiter(db=db.session, gated=db.gated, kind="pg")
    assert (await limiter.check("k", 2, 60)).success
    assert (await limiter.check("k", 2, 60)).success
    denied = await limiter.check("k", 2, 60)
    assert not denied.success
    assert denied.message == DENIED_MESSAGE
    assert (await limiter.check("other", 2, 60)).success

    assert await limiter.prune(now_ts() + 1) == 3
    assert (await limiter.check("k", 2, 60)).success


@pytest.mark.anyio
async def test_table_limiter_fails_open(tmp_path):
    # no tables created
    engine, SessionAsync, _, gated = make_async_engine(
        f"sqlite:///{tmp_path / 'empty.db'}"
    )
    try:
        async with SessionAsync() as session:
            db = GatedAsyncSession(session=session, gated=gated)
            limiter = new_limiter(db=db.session, gated=db.gated, kind="pg")
            for _ in range(3):
                assert (await limiter.check("k", 1, 60)).success
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_redis_limiter():
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    limiter = new_limiter(r=r, kind="redis")
    for _ in range(3):
        assert (await limiter.check("k", 3, 60)).success
    assert not (await limiter.check("k", 3, 60)).success
    assert (await limiter.check("other", 3, 60)).success
    assert await r.zcard("rl:k") == 3
    assert 0 < await r.ttl("rl:k") <= 61
    assert await limiter.prune(now_ts()) == 0


@pytest.mark.anyio
async def test_redis_limiter_fails_open():
    server = fakeredis.FakeServer()
    server.connected = False
    r = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    limiter = new_limiter(r=r, kind="redis")
    assert (await limiter.check("k", 1, 60)).success
    assert (await limiter.check("k", 1, 60)).success


def test_unknown_backend():
    with pytest.raises(RuntimeError):
        new_limiter(kind="memcached")


@pytest.mark.anyio
async def test_backend_comes_from_the_caller(db, monkeypatch):
    # the environment is read once, by Settings
    monkeypatch.setenv("RATELIMIT_BACKEND", "redis")
    limiter = new_limiter(db=db.session, gated=db.gated, kind="PG")
    assert (await limiter.check("k", 1, 60)).success
    assert not (await limiter.check("k", 1, 60)).success
