import logging

import pytest

from fpedia.helpers import now_ts
from fpedia.model import otp as otp_store

SEND = "/api/auth/send-otp"
VERIFY = "/api/auth/verify-otp"


def _code(message):
    return message["subject"].rsplit(" ", 1)[1]


def test_email_code_verifies_once(client, notifier):
    r = client.post(SEND, json={"email": "Budi@Mail.test", "purpose": "register"})
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "message": "OTP sent"}

    (msg,) = notifier.by_label("otp-mail")
    assert msg["to"] == "budi@mail.test"
    code = _code(msg)
    assert len(code) == 6 and code.isdigit()
    assert code in msg["body"]

    body = {"email": "budi@mail.test", "code": code, "purpose": "register"}
    r = client.post(VERIFY, json=body)
    assert r.status_code == 200
    assert r.json() == {"valid": True}

    r = client.post(VERIFY, json=body)
    assert r.status_code == 400
    assert r.json()["valid"] is False


def test_purpose_must_match(client, notifier):
    client.post(SEND, json={"email": "budi@mail.test", "purpose": "register"})
    code = _code(notifier.by_label("otp-mail")[0])

    r = client.post(VERIFY, json={
        "email": "budi@mail.test", "code": code, "purpose": "reset_password",
    })
    assert r.status_code == 400
    r = client.post(VERIFY, json={
        "email": "budi@mail.test", "code": code, "purpose": "register",
    })
    assert r.json() == {"valid": True}


def test_phone_codes_go_over_whatsapp(client, notifier):
    r = client.post(SEND, json={"phone": "0812-3456-7890", "purpose": "register"})
    assert r.status_code == 200
    (msg,) = notifier.by_label("otp-wa")
    assert msg["to"] == "6281234567890"

    code = msg["body"].split("*")[1]
    r = client.post(VERIFY, json={
        "phone": "+62 812 3456 7890", "code": code, "purpose": "register",
    })
    assert r.json() == {"valid": True}


def test_send_validation(client):
    assert client.post(SEND, json={"purpose": "register"}).status_code == 400
    r = client.post(SEND, json={"email": "a@b.co", "purpose": "login"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid purpose"}
    r = client.post(SEND, json={"phone": "123", "purpose": "register"})
    assert r.status_code == 400
    assert client.post(VERIFY, json={"email": "a@b.co"}).status_code == 400


def test_rate_limited_per_client(client):
    body = {"email": "budi@mail.test", "purpose": "register"}
    for _ in range(5):
        assert client.post(SEND, json=body).status_code == 200
    r = client.post(SEND, json=body)
    assert r.status_code == 429
    assert r.json() == {"error": "Too many requests. Please try again later."}

    # another client is unaffected
    r = client.post(SEND, json=body, headers={"user-agent": "other"})
    assert r.status_code == 200


def test_rate_limited_per_identifier(client):
    body = {"email": "budi@mail.test", "purpose": "register"}
    for i in range(10):
        r = client.post(SEND, json=body, headers={"user-agent": f"ua-{i}"})
        assert r.status_code == 200
    r = client.post(SEND, json=body, headers={"user-agent": "ua-last"})
    assert r.status_code == 429


@pytest.mark.anyio
async def test_expired_code(db):
    code = await otp_store.issue(db, "budi@mail.test", "register")
    later = now_ts() + otp_store.OTP_TTL_SECONDS + 1
    outcome = await otp_store.verify(
        db, "budi@mail.test", code, "register", now=later
    )
    assert outcome == otp_store.EXPIRED
    assert await otp_store.prune_expired(db, now=later) == 1
    assert await otp_store.verify(
        db, "budi@mail.test", code, "register"
    ) == otp_store.NOT_FOUND


@pytest.mark.anyio
async def test_verify_consumes_one_code(db):
    await otp_store.issue(db, "6281234567890", "register")
    second = await otp_store.issue(db, "6281234567890", "register")
    assert await otp_store.count_recent(db, "6281234567890", 0) == 2
    assert await otp_store.verify(
        db, "6281234567890", second, "register"
    ) == otp_store.VALID
    assert await otp_store.count_recent(db, "6281234567890", 0) == 1


def test_expired_phone_code_is_logged_masked(client, notifier, monkeypatch, caplog):
    client.post(SEND, json={"phone": "0812-3456-7890", "purpose": "register"})
    code = notifier.by_label("otp-wa")[0]["body"].split("*")[1]

    later = now_ts() + otp_store.OTP_TTL_SECONDS + 1
    monkeypatch.setattr(otp_store, "now_ts", lambda: later)
    with caplog.at_level(logging.INFO, logger="fpedia.server"):
        r = client.post(VERIFY, json={
            "phone": "0812-3456-7890", "code": code, "purpose": "register",
        })
    assert r.status_code == 400
    assert r.json()["error"] == "Kode OTP sudah kadaluarsa (Expired)"
    assert "expired code for 6281***890" in caplog.text
