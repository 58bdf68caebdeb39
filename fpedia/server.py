from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import redis.asyncio as redis

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import Form
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, get_settings
from .fulfillment import FulfillmentContext, confirm_order_paid
from .gateway import InvalidWebhook, PLACEHOLDER_QR, Pakasir, PaymentAdapter
from .helpers import (
    client_fingerprint, ct_equal, from_iso, is_valid_email, mask_email,
    mask_phone, new_transaction_id, normalize_phone, now_ts, to_iso,
)
from .infra.logs import configure_logging
from .infra.sql import GatedAsyncSession, make_async_engine
from .infra.timings import snapshot, timeit
from .model import catalog
from .model import orders as order_store
from .model import otp as otp_store
from .model import stock as stock_store
from .model.db import Base, Order, Promo, PAID, PENDING, FAILED
from .model.ratelimit import new_limiter
from .notify import (
    Mailer, NotificationDispatcher, Notifier, WhatsAppClient, render,
)
from .pricing import quote

logger = logging.getLogger(__name__)

# ----------------------------
# Config & Constants
# ----------------------------
OTP_RATE_LIMIT = (5, 600)           # per ip+ua
OTP_IDENTIFIER_LIMIT = (10, 60)     # codes issued per identifier
STOCK_RATE_LIMIT = (20, 60)         # per ip+ua
REMINDER_WINDOW = (2 * 3600, 3600)  # created between 2h and 1h ago
RATE_LIMIT_RETENTION = 3600
WIB = timezone(timedelta(hours=7))

app = FastAPI(
    title="F-PEDIA",
    default_response_class=ORJSONResponse,
)
# cookie secret must exist before the first request; everything else is read
# on startup
app.add_middleware(SessionMiddleware, secret_key=get_settings().SESSION_SECRET)


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return ORJSONResponse(
        {"error": exc.detail}, status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


# ---
# startup / shutdown
# ---
@app.on_event("startup")
async def _settings_init():
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    app.state.settings = settings


@app.on_event("startup")
async def _db_init():
    s: Settings = app.state.settings
    engine, SessionAsync, _, gated = make_async_engine(
        s.DATABASE_URL,
        pool_size=s.DB_POOL_SIZE,
        max_overflow=s.DB_MAX_OVERFLOW,
        pool_timeout=s.DB_POOL_TIMEOUT,
        gate_limit=s.DB_GATE_LIMIT,
    )
    app.state.engine = engine
    app.state.SessionAsync = SessionAsync
    app.state.gated = gated
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.on_event("startup")
async def _http_client_start():
    s: Settings = app.state.settings
    app.state.http = httpx.AsyncClient(
        timeout=10.0,
        limits=httpx.Limits(max_connections=64, max_keepalive_connections=32),
    )
    app.state.gateway = Pakasir(
        app.state.http,
        project=s.PAKASIR_PROJECT_SLUG,
        api_key=s.PAKASIR_API_KEY,
        base_url=s.PAKASIR_BASE_URL,
    )


@app.on_event("startup")
async def _redis_start():
    s: Settings = app.state.settings
    app.state.redis = None
    if s.RATELIMIT_BACKEND.lower() == "redis":
        app.state.redis = redis.from_url(
            s.REDIS_URL,
            decode_responses=True,
            max_connections=s.REDIS_MAX_CONN,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
            retry_on_timeout=True,
        )


@app.on_event("startup")
async def _notify_start():
    s: Settings = app.state.settings
    dispatcher = NotificationDispatcher(
        mode=s.NOTIFY_MODE, max_attempts=s.NOTIFY_MAX_ATTEMPTS
    )
    app.state.dispatcher = dispatcher
    app.state.notifier = Notifier(
        dispatcher,
        WhatsAppClient(app.state.http, s.WHATSAPP_API_URL, s.WHATSAPP_API_SECRET),
        Mailer(
            s.EMAIL_USER, s.EMAIL_PASS,
            host=s.SMTP_HOST, port=s.SMTP_PORT,
            from_name=s.EMAIL_FROM_NAME, dry_run=s.EMAIL_DRY_RUN,
        ),
    )


@app.on_event("startup")
async def _say_hello():
    s: Settings = app.state.settings
    db_kind = "PostgreSQL" if s.DATABASE_URL.startswith("postg") else "SQLite"
    rl_kind = "Redis" if s.RATELIMIT_BACKEND.lower() == "redis" else db_kind
    logger.info("=" * 50)
    logger.info("F-PEDIA is starting up...")
    logger.info("   - Database:            %s", db_kind)
    logger.info("   - Rate limit backend:  %s", rl_kind)
    logger.info("   - Payment gateway:     %s",
                "Pakasir" if s.pakasir_enabled else "placeholder QR")
    logger.info("   - Notifications:       %s", s.NOTIFY_MODE)
    logger.info("   - Maintenance (env):   %s", s.MAINTENANCE_MODE)
    logger.info("=" * 50)


@app.on_event("shutdown")
async def _notify_stop():
    dispatcher = getattr(app.state, "dispatcher", None)
    if dispatcher is not None:
        await dispatcher.flush_now()


@app.on_event("shutdown")
async def _http_client_stop():
    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
        app.state.http = None


@app.on_event("shutdown")
async def _redis_stop():
    r = getattr(app.state, "redis", None)
    if r is not None:
        await r.aclose()
        app.state.redis = None


@app.on_event("shutdown")
async def _db_stop():
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()


# ----------------------------
# Dependencies
# ----------------------------
def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> GatedAsyncSession:
    async with request.app.state.SessionAsync() as session:
        yield GatedAsyncSession(session=session, gated=request.app.state.gated)


def get_gateway(request: Request) -> PaymentAdapter:
    return request.app.state.gateway


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


async def ratelimiter(
    request: Request,
    db: GatedAsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    kind = settings.RATELIMIT_BACKEND.lower()
    if kind == "redis":
        return new_limiter(r=request.app.state.redis, kind=kind)
    return new_limiter(db=db.session, gated=db.gated, kind=kind)


def is_admin_email(email: Optional[str], admin_email: str) -> bool:
    # exact, case-sensitive match against the one configured operator
    return bool(admin_email) and email == admin_email


def require_admin(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> str:
    email = request.session.get("admin_email")
    if not is_admin_email(email, settings.ADMIN_EMAIL):
        raise HTTPException(401, detail="Unauthorized")
    return email


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(400, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(400, detail="Invalid JSON")
    return body


def _text(payload: dict, key: str) -> str:
    # clients send phone numbers as JSON numbers too
    value = payload.get(key)
    return "" if value is None else str(value).strip()


async def maintenance_enabled(
    db: GatedAsyncSession, settings: Settings
) -> bool:
    if settings.MAINTENANCE_MODE:
        return True
    return bool(await catalog.get_setting(db, "maintenance_mode", False))


def _pay_before(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=WIB).strftime("%d %b %Y %H.%M WIB")


# ----------------------------
# Health
# ----------------------------
@app.get("/health")
async def health():
    return {"ok": True}


# ----------------------------
# Checkout
# ----------------------------
@app.get("/api/checkout")
async def checkout_method_not_allowed():
    return ORJSONResponse(
        {"error": "Method Not Allowed"}, status_code=405,
        headers={"Allow": "POST"},
    )


@app.post("/api/checkout")
async def create_checkout(
    request: Request,
    db: GatedAsyncSession = Depends(get_db),
    gateway: PaymentAdapter = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    if await maintenance_enabled(db, settings):
        raise HTTPException(503, detail="Maintenance mode")

    payload = await _json_body(request)
    product_id = _text(payload, "productId")
    email = _text(payload, "email")
    whatsapp = _text(payload, "whatsapp") or None
    full_name = _text(payload, "fullName") or None
    note = _text(payload, "note") or None
    promo_code = payload.get("promo_code")
    try:
        quantity = max(1, int(payload.get("quantity") or 1))
    except (TypeError, ValueError):
        quantity = 1

    if not product_id:
        raise HTTPException(400, detail="productId is required")
    if not is_valid_email(email):
        raise HTTPException(
            400, detail="email is required and must be a valid email address"
        )

    product = await catalog.get_product(db, product_id)
    if product is None:
        raise HTTPException(404, detail="Product not found")

    min_buy = product.min_buy or 1
    if quantity < min_buy:
        raise HTTPException(400, detail=f"Minimum pembelian {min_buy} unit")

    if not product.is_preorder:
        async with timeit("db.available_stock"):
            available = await stock_store.available_stock(db, product_id)
        if available < quantity:
            raise HTTPException(
                400, detail=f"Stok tidak cukup. Tersedia: {available} unit"
            )

    promo = None
    if isinstance(promo_code, str) and promo_code.strip():
        promo = await catalog.get_active_promo(db, promo_code)

    now = now_ts()
    q = quote(product, quantity, promo, now)
    transaction_id = new_transaction_id()

    async with timeit("gateway.create_qris"):
        charge = await gateway.create_qris(transaction_id, q.subtotal)
    degraded = charge is None
    if degraded:
        logger.warning(
            "[Checkout] %s uses the placeholder QR (gateway unavailable)",
            transaction_id,
        )
        qr_string, fee, total = PLACEHOLDER_QR, 0, q.subtotal
    else:
        qr_string = charge["qr_string"]
        fee = charge["fee"]
        total = charge["total_payment"]

    order = Order(
        id=uuid.uuid4().hex,
        transaction_id=transaction_id,
        product_id=product.id,
        buyer_name=full_name,
        buyer_email=email,
        buyer_whatsapp=whatsapp,
        note=note,
        promo_text=q.promo_text,
        quantity=quantity,
        subtotal=q.subtotal,
        fee=fee,
        total_price=total,
        payment_status=PENDING,
        payment_method="qris",
        payment_url=qr_string,
        created_at=now,
        expires_at=now + order_store.ORDER_TTL_SECONDS,
    )
    try:
        async with timeit("db.create_order"):
            await order_store.create_order(db, order)
    except SQLAlchemyError:
        logger.exception("[Checkout] order insert failed for %s", transaction_id)
        raise HTTPException(500, detail="Failed to create order")

    logger.info(
        "[Checkout] order %s created: %s x%d, total %d, buyer %s",
        transaction_id, product.title, quantity, total, mask_email(email),
    )

    ctx = dict(
        product_title=product.title or "Produk",
        quantity=quantity,
        total=total,
        email=email,
        whatsapp=whatsapp,
        transaction_id=transaction_id,
    )
    await notifier.whatsapp(
        normalize_phone(settings.ADMIN_WHATSAPP_NUMBER),
        render("admin_new_order.txt", **ctx),
        label="admin-new-order-wa",
    )
    await notifier.email(
        settings.ADMIN_EMAIL,
        f"[New Order] {transaction_id} - {ctx['product_title']}",
        render("admin_new_order.html", **ctx),
        label="admin-new-order-mail",
    )
    buyer_wa = normalize_phone(whatsapp)
    if buyer_wa:
        await notifier.whatsapp(
            buyer_wa,
            render(
                "buyer_new_order.txt",
                promo_text=q.promo_text,
                pay_before=_pay_before(order.expires_at),
                **ctx,
            ),
            label="buyer-new-order-wa",
        )
    else:
        logger.info(
            "[Checkout] buyer number %s not usable, no WA", mask_phone(whatsapp)
        )

    return {
        "success": True,
        "qr_string": qr_string,
        "amount": total,
        "subtotal": q.subtotal,
        "fee": fee,
        "total_payment": total,
        "order_id": transaction_id,
        "transaction_id": transaction_id,
        "expires_at": to_iso(order.expires_at),
        "degraded": degraded,
    }


# ----------------------------
# API: Order status (polled by the payment page)
# ----------------------------
@app.get("/api/orders/{transaction_id}")
async def get_order_status(
    transaction_id: str, db: GatedAsyncSession = Depends(get_db)
):
    async with timeit("db.get_order"):
        order = await order_store.get_order_by_transaction(db, transaction_id)
    if order is None:
        raise HTTPException(404, detail="order not found")
    return {
        "transaction_id": order.transaction_id,
        "status": order.payment_status,
        "product_id": order.product_id,
        "quantity": order.quantity,
        "total_payment": order.total_price,
        "qr_string": order.payment_url if order.payment_status == PENDING else None,
        "expires_at": to_iso(order.expires_at),
        "paid_at": to_iso(order.paid_at),
    }


# ----------------------------
# Pakasir webhook
# ----------------------------
@app.post("/api/webhooks/pakasir")
async def pakasir_webhook(
    request: Request,
    db: GatedAsyncSession = Depends(get_db),
    gateway: PaymentAdapter = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    body = await _json_body(request)
    try:
        event = gateway.parse_webhook(body)
    except InvalidWebhook as e:
        logger.error("[Webhook] rejected: %s", e)
        raise HTTPException(400, detail="Invalid amount")

    # anything but a completed payment for a known order is acknowledged and
    # ignored
    if not gateway.is_completed(event):
        return {"received": True}

    order = await order_store.get_order_by_transaction(db, event["order_ref"])
    if order is None:
        logger.warning("[Webhook] order not found for %s", event["order_ref"])
        return {"received": True}

    if order.payment_status == PAID:
        return {"received": True, "already_paid": True}

    if event["amount"] is not None and event["amount"] != order.total_price:
        logger.error(
            "[Webhook] amount mismatch for %s: webhook %s, order %s",
            order.transaction_id, event["amount"], order.total_price,
        )
        raise HTTPException(400, detail="Amount mismatch")

    if event["api_key"] and not ct_equal(event["api_key"], settings.PAKASIR_API_KEY):
        logger.error("[Webhook] invalid api_key for %s", order.transaction_id)
        raise HTTPException(401, detail="Unauthorized")

    if order.payment_status == FAILED:
        logger.warning(
            "[Webhook] payment for failed order %s", order.transaction_id
        )
        raise HTTPException(409, detail="Order is not pending")

    async with timeit("fulfillment.confirm"):
        result = await confirm_order_paid(
            FulfillmentContext(db=db, notifier=notifier, settings=settings),
            order.id,
        )
    if result.already_paid:
        return {"received": True, "already_paid": True}
    if not result.ok:
        logger.error(
            "[Webhook] confirm failed for %s: %s",
            order.transaction_id, result.error,
        )
        raise HTTPException(500, detail=result.error)
    return {"received": True, "confirmed": True}


# ----------------------------
# Stock probe
# ----------------------------
@app.get("/api/products/stock")
async def product_stock(
    request: Request,
    productId: Optional[str] = None,
    db: GatedAsyncSession = Depends(get_db),
    limiter=Depends(ratelimiter),
):
    if not productId:
        raise HTTPException(400, detail="Missing productId")
    limit, window = STOCK_RATE_LIMIT
    rl = await limiter.check(
        f"stock:{client_fingerprint(request.headers)}", limit, window
    )
    if not rl.success:
        raise HTTPException(429, detail="Too many requests")
    return {"count": await stock_store.available_stock(db, productId)}


# ----------------------------
# OTP
# ----------------------------
def _otp_identifier(payload: dict) -> Optional[str]:
    email = payload.get("email")
    if email:
        email = str(email).strip().lower()
        return email if is_valid_email(email) else None
    return normalize_phone(payload.get("phone"))


@app.post("/api/auth/send-otp")
async def send_otp(
    request: Request,
    db: GatedAsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    limiter=Depends(ratelimiter),
):
    payload = await _json_body(request)
    purpose = payload.get("purpose")
    if not (payload.get("phone") or payload.get("email")) or not purpose:
        raise HTTPException(400, detail="Phone/Email and purpose required")
    if purpose not in otp_store.PURPOSES:
        raise HTTPException(400, detail="Invalid purpose")
    identifier = _otp_identifier(payload)
    if identifier is None:
        raise HTTPException(400, detail="Invalid phone or email")

    limit, window = OTP_RATE_LIMIT
    rl = await limiter.check(
        f"otp:{client_fingerprint(request.headers)}", limit, window
    )
    if not rl.success:
        raise HTTPException(429, detail=rl.message)

    limit, window = OTP_IDENTIFIER_LIMIT
    recent = await otp_store.count_recent(db, identifier, now_ts() - window)
    if recent >= limit:
        raise HTTPException(429, detail="Too many requests. Please wait a minute.")

    code = await otp_store.issue(db, identifier, purpose)
    if "@" in identifier:
        await notifier.email(
            identifier, f"Kode OTP F-PEDIA: {code}",
            render("otp.html", code=code), label="otp-mail",
        )
        logger.info("[OTP] %s code sent to %s", purpose, mask_email(identifier))
    else:
        await notifier.whatsapp(
            identifier, render("otp.txt", code=code), label="otp-wa"
        )
        logger.info("[OTP] %s code sent to %s", purpose, mask_phone(identifier))
    return {"success": True, "message": "OTP sent"}


@app.post("/api/auth/verify-otp")
async def verify_otp(
    request: Request,
    db: GatedAsyncSession = Depends(get_db),
    limiter=Depends(ratelimiter),
):
    payload = await _json_body(request)
    code = payload.get("code")
    purpose = payload.get("purpose")
    if not (payload.get("phone") or payload.get("email")) or not code or not purpose:
        raise HTTPException(400, detail="Phone/Email, code, and purpose required")

    limit, window = OTP_RATE_LIMIT
    rl = await limiter.check(
        f"otp:{client_fingerprint(request.headers)}", limit, window
    )
    if not rl.success:
        raise HTTPException(429, detail=rl.message)

    identifier = _otp_identifier(payload)
    if identifier is None:
        raise HTTPException(400, detail="Invalid phone or email")

    outcome = await otp_store.verify(db, identifier, str(code), purpose)
    if outcome == otp_store.NOT_FOUND:
        return ORJSONResponse(
            {"valid": False, "error": "Kode OTP salah atau tidak ditemukan"},
            status_code=400,
        )
    if outcome == otp_store.EXPIRED:
        logger.info(
            "[OTP] expired code for %s",
            mask_email(identifier) if "@" in identifier else mask_phone(identifier),
        )
        return ORJSONResponse(
            {"valid": False, "error": "Kode OTP sudah kadaluarsa (Expired)"},
            status_code=400,
        )
    return {"valid": True}


# ----------------------------
# Admin session
# ----------------------------
@app.post("/admin/login")
async def admin_login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    settings: Settings = Depends(get_app_settings),
):
    email = email.strip()
    ok_user = bool(settings.ADMIN_EMAIL) and ct_equal(email, settings.ADMIN_EMAIL)
    ok_pass = bool(settings.ADMIN_PASSWORD) and ct_equal(
        password, settings.ADMIN_PASSWORD
    )
    if ok_user and ok_pass:
        request.session["admin_email"] = email
        return {"ok": True}
    raise HTTPException(401, detail="Invalid credentials.")


@app.get("/admin/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return {"ok": True}


# ----------------------------
# Admin: preorder delivery
# ----------------------------
@app.post("/api/admin/preorder/deliver")
async def admin_preorder_deliver(
    request: Request,
    admin: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    payload = await _json_body(request)
    order_id = payload.get("order_id")
    accounts = payload.get("accounts")
    if not order_id or not isinstance(accounts, list) or not accounts:
        raise HTTPException(400, detail="order_id dan accounts diperlukan")

    pairs = []
    for acc in accounts:
        if not isinstance(acc, dict):
            raise HTTPException(400, detail="Invalid account entry")
        e = str(acc.get("email") or "").strip()
        p = str(acc.get("password") or "").strip()
        if not e or not p:
            raise HTTPException(400, detail="Each account needs email and password")
        pairs.append((e, p))

    order = await order_store.get_order(db, order_id)
    if order is None:
        raise HTTPException(404, detail="Order tidak ditemukan")

    if order.payment_status != PAID:
        logger.warning(
            "[Preorder] delivering to %s while status is %s",
            order.transaction_id, order.payment_status,
        )
    if len(pairs) != order.quantity:
        logger.warning(
            "[Preorder] %s: %d accounts for quantity %d",
            order.transaction_id, len(pairs), order.quantity,
        )

    try:
        n = await stock_store.insert_sold_accounts(
            db, order.id, order.product_id, pairs, settings.ENCRYPTION_KEY
        )
    except SQLAlchemyError:
        logger.exception("[Preorder] insert failed for %s", order.transaction_id)
        raise HTTPException(500, detail="Gagal menyimpan akun")

    product = await catalog.get_product(db, order.product_id, include_deleted=True)
    title = product.title if product else "Produk"

    await notifier.whatsapp(
        normalize_phone(order.buyer_whatsapp),
        render("buyer_preorder.txt", product_title=title, accounts=pairs),
        label="buyer-preorder-wa",
    )
    await notifier.email(
        order.buyer_email,
        f"Pre-Order Dikirim: {title}",
        render("buyer_preorder.html", product_title=title, accounts=pairs),
        label="buyer-preorder-mail",
    )
    logger.info(
        "[Preorder] %d accounts delivered for %s by %s",
        n, order.transaction_id, mask_email(admin),
    )
    return {"ok": True, "count": n}


# ----------------------------
# Admin: products & stock
# ----------------------------
def _as_int(value, field: str, minimum: int) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        raise HTTPException(400, detail=f"Valid {field} is required")
    if n < minimum:
        raise HTTPException(400, detail=f"Valid {field} is required")
    return n


def _product_fields(payload: dict, partial: bool) -> dict:
    out = {}
    if "title" in payload or not partial:
        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            raise HTTPException(400, detail="Title is required")
        out["title"] = title.strip()
    if "price" in payload or not partial:
        out["price"] = _as_int(payload.get("price"), "price", 0)
    if "min_buy" in payload:
        out["min_buy"] = _as_int(payload.get("min_buy"), "min_buy", 1)
    for k in ("description", "category", "instructions"):
        if k in payload:
            out[k] = str(payload.get(k) or "").strip()
    if "wholesale_prices" in payload:
        tiers = payload.get("wholesale_prices") or []
        if not isinstance(tiers, list):
            raise HTTPException(400, detail="wholesale_prices must be a list")
        out["wholesale_prices"] = [
            {
                "min_qty": _as_int(t.get("min_qty"), "min_qty", 1),
                "price": _as_int(t.get("price"), "price", 0),
            }
            for t in tiers if isinstance(t, dict)
        ]
    if "is_preorder" in payload:
        out["is_preorder"] = payload.get("is_preorder") is True
    return out


def _product_out(p) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "price": p.price,
        "category": p.category,
        "instructions": p.instructions,
        "min_buy": p.min_buy,
        "wholesale_prices": p.wholesale_prices or [],
        "is_preorder": bool(p.is_preorder),
        "is_deleted": bool(p.is_deleted),
        "created_at": to_iso(p.created_at),
    }


@app.post("/api/admin/products")
async def admin_create_product(
    request: Request,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    fields = _product_fields(await _json_body(request), partial=False)
    product = await catalog.create_product(db, fields)
    return _product_out(product)


@app.patch("/api/admin/products/{product_id}")
async def admin_update_product(
    product_id: str,
    request: Request,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    fields = _product_fields(await _json_body(request), partial=True)
    product = await catalog.update_product(db, product_id, fields)
    if product is None:
        raise HTTPException(404, detail="Product not found")
    return _product_out(product)


@app.delete("/api/admin/products/{product_id}")
async def admin_delete_product(
    product_id: str,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    if not await catalog.soft_delete_product(db, product_id):
        raise HTTPException(404, detail="Product not found")
    return {"ok": True}


@app.post("/api/admin/products/import-stock")
async def admin_import_stock(
    request: Request,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    payload = await _json_body(request)
    product_id = payload.get("productId")
    accounts = payload.get("accounts")
    if not product_id or not isinstance(accounts, list) or not accounts:
        raise HTTPException(400, detail="Invalid data")
    pairs = [
        (str(a.get("email") or "").strip(), str(a.get("password") or "").strip())
        for a in accounts if isinstance(a, dict)
    ]
    if not pairs or any(not e or not p for e, p in pairs):
        raise HTTPException(400, detail="Invalid data")
    if await catalog.get_product(db, product_id) is None:
        raise HTTPException(404, detail="Product not found")

    n = await stock_store.import_stock(
        db, product_id, pairs, settings.ENCRYPTION_KEY
    )
    logger.info("[Stock] imported %d accounts for %s", n, product_id)
    return {"success": True, "count": n}


# ----------------------------
# Admin: promos
# ----------------------------
def _promo_out(p: Promo) -> dict:
    return {
        "id": p.id,
        "code": p.code,
        "title": p.title,
        "description": p.description,
        "discount_percent": p.discount_percent,
        "discount_value": p.discount_value,
        "valid_from": to_iso(p.valid_from),
        "valid_until": to_iso(p.valid_until),
        "is_active": bool(p.is_active),
        "created_at": to_iso(p.created_at),
    }


@app.get("/api/admin/promos")
async def admin_list_promos(
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    return [_promo_out(p) for p in await catalog.list_promos(db)]


@app.post("/api/admin/promos")
async def admin_create_promo(
    request: Request,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    payload = await _json_body(request)
    code = str(payload.get("code") or "").strip()
    title = str(payload.get("title") or "").strip()
    if not code or not title:
        raise HTTPException(400, detail="Code dan title wajib")
    try:
        valid_from = from_iso(payload.get("valid_from"))
        valid_until = from_iso(payload.get("valid_until"))
        percent = float(payload.get("discount_percent") or 0)
        value = int(float(payload.get("discount_value") or 0))
    except (TypeError, ValueError):
        raise HTTPException(400, detail="Invalid promo data")

    promo = Promo(
        id=uuid.uuid4().hex,
        code=code.upper(),
        title=title,
        description=str(payload.get("description") or "").strip() or None,
        discount_percent=max(0.0, percent),
        discount_value=max(0, value),
        valid_from=valid_from,
        valid_until=valid_until,
        is_active=payload.get("is_active") is not False,
        created_at=now_ts(),
    )
    try:
        await catalog.create_promo(db, promo)
    except SQLAlchemyError:
        raise HTTPException(400, detail="Promo code already exists")
    return _promo_out(promo)


# ----------------------------
# Admin: orders
# ----------------------------
def _order_out(o: Order, titles: dict) -> dict:
    return {
        "id": o.id,
        "transaction_id": o.transaction_id,
        "product_id": o.product_id,
        "product_title": titles.get(o.product_id, ""),
        "buyer_name": o.buyer_name,
        "buyer_email": o.buyer_email,
        "buyer_whatsapp": o.buyer_whatsapp,
        "quantity": o.quantity,
        "subtotal": o.subtotal,
        "fee": o.fee,
        "total_price": o.total_price,
        "promo_text": o.promo_text,
        "status": o.payment_status,
        "created_at": to_iso(o.created_at),
        "paid_at_iso": "-" if o.paid_at is None else to_iso(o.paid_at),
    }


@app.get("/api/admin/orders")
async def api_admin_orders(
    limit: int = 200,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    rows = await order_store.recent_orders(db, limit=limit)
    titles = await catalog.product_titles(db, [o.product_id for o in rows])
    return {"items": [_order_out(o, titles) for o in rows], "limit": limit}


@app.post("/api/admin/orders/{order_id}/fail")
async def api_admin_fail_order(
    order_id: str,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
):
    order = await order_store.get_order(db, order_id)
    if order is None:
        raise HTTPException(404, detail="order not found")
    if not await order_store.mark_failed(db, order_id):
        raise HTTPException(409, detail="Order is not pending")
    logger.info("[Admin] order %s marked failed", order.transaction_id)
    return {"ok": True, "status": FAILED}


# ----------------------------
# Admin: maintenance & timings
# ----------------------------
@app.get("/api/admin/maintenance")
async def admin_get_maintenance(
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    stored = bool(await catalog.get_setting(db, "maintenance_mode", False))
    return {
        "maintenance_mode": stored or settings.MAINTENANCE_MODE,
        "stored": stored,
        "env": settings.MAINTENANCE_MODE,
    }


@app.post("/api/admin/maintenance")
async def admin_set_maintenance(
    request: Request,
    _: str = Depends(require_admin),
    db: GatedAsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    payload = await _json_body(request)
    enabled = payload.get("enabled") is True
    await catalog.set_setting(db, "maintenance_mode", enabled)
    logger.info("[Admin] maintenance mode set to %s", enabled)
    return {
        "maintenance_mode": enabled or settings.MAINTENANCE_MODE,
        "stored": enabled,
        "env": settings.MAINTENANCE_MODE,
    }


@app.get("/api/admin/timings")
async def admin_timings(_: str = Depends(require_admin)):
    return {"items": snapshot()}


# ----------------------------
# Scheduled jobs
# ----------------------------
def require_cron(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> None:
    if is_admin_email(request.session.get("admin_email"), settings.ADMIN_EMAIL):
        return
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if (settings.CRON_SECRET and scheme.lower() == "bearer"
            and ct_equal(token.strip(), settings.CRON_SECRET)):
        return
    raise HTTPException(401, detail="Unauthorized")


@app.get("/api/cron/payment-reminder")
async def cron_payment_reminder(
    _: None = Depends(require_cron),
    db: GatedAsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
    limiter=Depends(ratelimiter),
):
    now = now_ts()
    oldest, newest = REMINDER_WINDOW
    orders = await order_store.pending_orders_between(
        db, now - oldest, now - newest
    )
    titles = await catalog.product_titles(db, [o.product_id for o in orders])

    reminded = []
    for o in orders:
        if not o.buyer_email:
            continue
        title = titles.get(o.product_id, "Produk")
        await notifier.email(
            o.buyer_email,
            f"[Reminder] Menunggu Pembayaran - {title}",
            render(
                "payment_reminder.html",
                product_title=title,
                total=o.total_price,
                transaction_id=o.transaction_id,
                site_url=settings.SITE_URL,
            ),
            label="payment-reminder",
        )
        reminded.append(o.transaction_id)

    pruned_otp = await otp_store.prune_expired(db, now)
    pruned_rl = await limiter.prune(now - RATE_LIMIT_RETENTION)
    logger.info(
        "[Cron] reminded %d orders, pruned %d otp / %d rate-limit rows",
        len(reminded), pruned_otp, pruned_rl,
    )
    return {
        "success": True,
        "reminded_count": len(reminded),
        "orders": reminded,
        "pruned_otp": pruned_otp,
        "pruned_rate_limits": pruned_rl,
    }
