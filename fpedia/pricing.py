from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .helpers import format_idr
from .model.db import Product, Promo


@dataclass
class Quote:
    unit_price: int
    raw_subtotal: int
    discount: int
    subtotal: int
    promo_text: Optional[str] = None


def unit_price(product: Product, qty: int) -> int:
    """Largest wholesale tier whose min_qty <= qty, else the list price."""
    best_min = 0
    price = int(product.price)
    for tier in product.wholesale_prices or []:
        try:
            min_qty = int(tier.get("min_qty", 0))
            tier_price = int(tier.get("price"))
        except (TypeError, ValueError):
            continue
        if min_qty <= qty and min_qty > best_min and tier_price >= 0:
            best_min = min_qty
            price = tier_price
    return price


def promo_is_valid(promo: Optional[Promo], now: float) -> bool:
    if promo is None or not promo.is_active:
        return False
    if promo.valid_from is not None and now < promo.valid_from:
        return False
    if promo.valid_until is not None and now > promo.valid_until:
        return False
    return True


def promo_discount(
    promo: Optional[Promo], subtotal: int, now: float
) -> tuple[int, Optional[str]]:
    """(discount, promo_text); discount is always within [0, subtotal]."""
    if not promo_is_valid(promo, now):
        return 0, None

    percent = float(promo.discount_percent or 0)
    value = int(promo.discount_value or 0)
    if percent > 0:
        discount = int(
            (Decimal(subtotal) * Decimal(str(percent)) / 100)
            .quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )
        pct = f"{percent:g}"
        text = f"Diskon {pct}% (Kode: {promo.code})"
    elif value > 0:
        discount = value
        text = f"Diskon Rp {format_idr(value)} (Kode: {promo.code})"
    else:
        return 0, None
    return max(0, min(discount, subtotal)), text


def quote(
    product: Product, qty: int, promo: Optional[Promo], now: float
) -> Quote:
    price = unit_price(product, qty)
    raw = price * qty
    discount, text = promo_discount(promo, raw, now)
    return Quote(
        unit_price=price,
        raw_subtotal=raw,
        discount=discount,
        subtotal=max(0, raw - discount),
        promo_text=text,
    )
