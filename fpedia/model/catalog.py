# model/catalog.py
"""Products, promo codes and site settings."""
from __future__ import annotations
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from ..helpers import now_ts
from ..infra.sql import GatedAsyncSession
from .db import Product, Promo, SiteSetting

PRODUCT_FIELDS = (
    "title", "description", "price", "category", "instructions",
    "min_buy", "wholesale_prices", "is_preorder",
)


# ----------------------------
# products
# ----------------------------
async def get_product(
    db: GatedAsyncSession, product_id: str, include_deleted: bool = False
) -> Optional[Product]:
    async with db.gated():
        async with db.session.begin():
            product = await db.session.get(Product, product_id)
    if product is not None and product.is_deleted and not include_deleted:
        return None
    return product


async def create_product(db: GatedAsyncSession, fields: Dict[str, Any]) -> Product:
    product = Product(id=uuid.uuid4().hex, created_at=now_ts(), is_deleted=False)
    for k in PRODUCT_FIELDS:
        if k in fields:
            setattr(product, k, fields[k])
    async with db.gated():
        async with db.session.begin():
            db.session.add(product)
    return product


async def update_product(
    db: GatedAsyncSession, product_id: str, fields: Dict[str, Any]
) -> Optional[Product]:
    async with db.gated():
        async with db.session.begin():
            product = await db.session.get(Product, product_id)
            if product is None or product.is_deleted:
                return None
            for k in PRODUCT_FIELDS:
                if k in fields:
                    setattr(product, k, fields[k])
    return product


async def soft_delete_product(db: GatedAsyncSession, product_id: str) -> bool:
    async with db.gated():
        async with db.session.begin():
            product = await db.session.get(Product, product_id)
            if product is None or product.is_deleted:
                return False
            product.is_deleted = True
    return True


async def product_titles(db: GatedAsyncSession, ids) -> Dict[str, str]:
    ids = list(set(ids))
    if not ids:
        return {}
    async with db.gated():
        async with db.session.begin():
            rows = (await db.session.execute(
                select(Product.id, Product.title).where(Product.id.in_(ids))
            )).all()
    return {pid: title for pid, title in rows}


# ----------------------------
# promos
# ----------------------------
async def get_active_promo(
    db: GatedAsyncSession, code: str
) -> Optional[Promo]:
    async with db.gated():
        async with db.session.begin():
            return (await db.session.execute(
                select(Promo).where(
                    Promo.code == code.strip().upper(),
                    Promo.is_active.is_(True),
                )
            )).scalar_one_or_none()


async def list_promos(db: GatedAsyncSession) -> List[Promo]:
    async with db.gated():
        async with db.session.begin():
            return list((await db.session.execute(
                select(Promo).order_by(Promo.created_at.desc())
            )).scalars().all())


async def create_promo(db: GatedAsyncSession, promo: Promo) -> Promo:
    async with db.gated():
        async with db.session.begin():
            db.session.add(promo)
    return promo


# ----------------------------
# site settings
# ----------------------------
async def get_setting(db: GatedAsyncSession, key: str, default=None):
    async with db.gated():
        async with db.session.begin():
            row = await db.session.get(SiteSetting, key, populate_existing=True)
    return default if row is None else row.value


async def set_setting(db: GatedAsyncSession, key: str, value) -> None:
    async with db.gated():
        async with db.session.begin():
            row = await db.session.get(SiteSetting, key)
            if row is None:
                db.session.add(SiteSetting(key=key, value=value))
            else:
                row.value = value
