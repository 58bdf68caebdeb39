# model/otp.py
"""
One-time codes.

A row is `issued` while now <= expires_at. Verifying deletes it, so a code
is accepted at most once. Expired rows stay until prune_expired() runs.
"""
from __future__ import annotations
import secrets
from typing import Optional

from sqlalchemy import select, delete, func

from ..helpers import now_ts
from ..infra.sql import GatedAsyncSession
from .db import OtpCode

PURPOSES = ("register", "reset_password", "change_password")
OTP_TTL_SECONDS = 5 * 60
CODE_DIGITS = 6

# verify() outcomes
VALID = "valid"
NOT_FOUND = "not_found"
EXPIRED = "expired"


def new_code() -> str:
    return str(secrets.randbelow(9 * 10 ** (CODE_DIGITS - 1))
               + 10 ** (CODE_DIGITS - 1))


async def count_recent(
    db: GatedAsyncSession, identifier: str, since: float
) -> int:
    async with db.gated():
        async with db.session.begin():
            n = (await db.session.execute(
                select(func.count())
                .select_from(OtpCode)
                .where(OtpCode.identifier == identifier,
                       OtpCode.created_at >= since)
            )).scalar_one()
    return int(n)


async def issue(db: GatedAsyncSession, identifier: str, purpose: str) -> str:
    code = new_code()
    now = now_ts()
    async with db.gated():
        async with db.session.begin():
            db.session.add(OtpCode(
                identifier=identifier,
                code=code,
                purpose=purpose,
                created_at=now,
                expires_at=now + OTP_TTL_SECONDS,
            ))
    return code


async def verify(
    db: GatedAsyncSession, identifier: str, code: str, purpose: str,
    now: Optional[float] = None,
) -> str:
    now = now_ts() if now is None else now
    async with db.gated():
        async with db.session.begin():
            row = (await db.session.execute(
                select(OtpCode)
                .where(OtpCode.identifier == identifier,
                       OtpCode.code == code,
                       OtpCode.purpose == purpose)
                .order_by(OtpCode.created_at.desc(), OtpCode.id.desc())
                .limit(1)
            )).scalar_one_or_none()
            if row is None:
                return NOT_FOUND
            if now > row.expires_at:
                return EXPIRED
            res = await db.session.execute(
                delete(OtpCode).where(OtpCode.id == row.id)
            )
            # lost a race with a concurrent verify of the same code
            if res.rowcount != 1:
                return NOT_FOUND
    return VALID


async def prune_expired(db: GatedAsyncSession, now: Optional[float] = None) -> int:
    now = now_ts() if now is None else now
    async with db.gated():
        async with db.session.begin():
            res = await db.session.execute(
                delete(OtpCode).where(OtpCode.expires_at < now)
            )
    return res.rowcount or 0
