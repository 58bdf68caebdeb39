from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    Text,
    JSON,
    ForeignKey,
    Index,
)


Base = declarative_base()

# payment_status values; transitions are pending -> paid | failed only
PENDING = "pending"
PAID = "paid"
FAILED = "failed"


# ----------------------------
# ORM models (timestamps are epoch seconds)
# ----------------------------
class Product(Base):
    __tablename__ = "products"
    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Integer, nullable=False)  # rupiah
    category = Column(String, nullable=False, default="")
    instructions = Column(Text, nullable=False, default="")
    min_buy = Column(Integer, nullable=False, default=1)
    # [{"min_qty": 5, "price": 90000}, ...]
    wholesale_prices = Column(JSON, nullable=False, default=list)
    is_preorder = Column(Boolean, nullable=False, default=False)
    # soft delete only
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)


class AccountStock(Base):
    __tablename__ = "account_stock"
    id = Column(String, primary_key=True)
    product_id = Column(
        String, ForeignKey("products.id"), nullable=False, index=True
    )
    email = Column(Text, nullable=False)     # encrypted
    password = Column(Text, nullable=False)  # encrypted
    is_sold = Column(Boolean, nullable=False, default=False)
    sold_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)

    __table_args__ = (
        Index("account_stock_unsold_idx", "product_id", "is_sold"),
    )


class Order(Base):
    __tablename__ = "orders"
    id = Column(String, primary_key=True)
    # externally visible id, also the gateway's order reference
    transaction_id = Column(String, nullable=False, unique=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    buyer_name = Column(String, nullable=True)
    buyer_email = Column(String, nullable=False)
    buyer_whatsapp = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    promo_text = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Integer, nullable=False)
    fee = Column(Integer, nullable=False, default=0)
    total_price = Column(Integer, nullable=False)

    payment_status = Column(String, nullable=False, default=PENDING)
    payment_method = Column(String, nullable=False, default="qris")
    payment_url = Column(Text, nullable=True)  # QR payload

    created_at = Column(Float, nullable=False)
    expires_at = Column(Float, nullable=False)
    paid_at = Column(Float, nullable=True)


class OrderAccount(Base):
    __tablename__ = "order_accounts"
    order_id = Column(String, ForeignKey("orders.id"), primary_key=True)
    account_stock_id = Column(
        String, ForeignKey("account_stock.id"), primary_key=True
    )


class Promo(Base):
    __tablename__ = "promos"
    id = Column(String, primary_key=True)
    code = Column(String, nullable=False, unique=True)  # upper case
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    discount_percent = Column(Float, nullable=False, default=0)
    discount_value = Column(Integer, nullable=False, default=0)
    valid_from = Column(Float, nullable=True)
    valid_until = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Float, nullable=False)


class OtpCode(Base):
    __tablename__ = "otp_codes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String, nullable=False, index=True)
    code = Column(String, nullable=False)
    purpose = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
    expires_at = Column(Float, nullable=False)


class RateLimitHit(Base):
    __tablename__ = "rate_limits"
    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)

    __table_args__ = (
        Index("rate_limits_key_created_idx", "key", "created_at"),
    )


class SiteSetting(Base):
    __tablename__ = "site_settings"
    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=True)
