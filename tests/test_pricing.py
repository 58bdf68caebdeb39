from fpedia.model.db import Product, Promo
from fpedia.pricing import quote, unit_price, promo_discount, promo_is_valid

NOW = 1_750_000_000.0
DAY = 24 * 3600


def _product(price=100000, tiers=None):
    return Product(id="p1", title="Netflix", price=price,
                   wholesale_prices=tiers or [])


def _promo(**kw):
    fields = dict(code="HEMAT10", title="Hemat", discount_percent=0,
                  discount_value=0, is_active=True, valid_from=None,
                  valid_until=None)
    fields.update(kw)
    return Promo(**fields)


def test_no_promo_subtotal_is_price_times_quantity():
    q = quote(_product(), 3, None, NOW)
    assert q.raw_subtotal == 300000
    assert q.discount == 0
    assert q.subtotal == 300000
    assert q.promo_text is None


def test_percent_promo():
    q = quote(_product(), 3, _promo(discount_percent=10), NOW)
    assert q.discount == 30000
    assert q.subtotal == 270000
    assert q.promo_text == "Diskon 10% (Kode: HEMAT10)"


def test_fixed_promo_text_uses_id_grouping():
    q = quote(_product(), 1, _promo(discount_value=15000), NOW)
    assert q.subtotal == 85000
    assert q.promo_text == "Diskon Rp 15.000 (Kode: HEMAT10)"


def test_discount_never_exceeds_subtotal():
    q = quote(_product(price=10000), 1, _promo(discount_value=50000), NOW)
    assert q.discount == 10000
    assert q.subtotal == 0


def test_percent_rounds_half_up():
    discount, _ = promo_discount(_promo(discount_percent=10), 15, NOW)
    assert discount == 2


def test_percent_wins_over_value():
    discount, text = promo_discount(
        _promo(discount_percent=5, discount_value=99999), 100000, NOW
    )
    assert discount == 5000
    assert text.startswith("Diskon 5%")


def test_promo_outside_window_gives_nothing():
    expired = _promo(discount_percent=10, valid_until=NOW - DAY)
    upcoming = _promo(discount_percent=10, valid_from=NOW + DAY)
    assert quote(_product(), 3, expired, NOW).discount == 0
    assert quote(_product(), 3, upcoming, NOW).discount == 0


def test_inactive_promo_gives_nothing():
    promo = _promo(discount_percent=10, is_active=False)
    assert not promo_is_valid(promo, NOW)
    assert quote(_product(), 3, promo, NOW).subtotal == 300000


def test_open_ended_window_is_valid():
    assert promo_is_valid(_promo(valid_from=NOW - DAY), NOW)
    assert promo_is_valid(_promo(valid_until=NOW + DAY), NOW)


def test_wholesale_tiers():
    p = _product(tiers=[
        {"min_qty": 10, "price": 80000},
        {"min_qty": 5, "price": 90000},
    ])
    assert unit_price(p, 4) == 100000
    assert unit_price(p, 5) == 90000
    assert unit_price(p, 12) == 80000
    assert quote(p, 5, None, NOW).subtotal == 450000


def test_broken_tiers_are_ignored():
    p = _product(tiers=[{"min_qty": "x", "price": 1}, {"price": 5}])
    assert unit_price(p, 3) == 100000
