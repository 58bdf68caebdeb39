import time
import re
import random
from datetime import datetime, timezone
import hmac
from typing import Optional


# ----------------------------
# Helpers
# ----------------------------
def now_ts() -> float:
    return time.time()


def to_iso(ts: float | None) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    email = email.strip()
    # simple but effective email check
    return re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """08xxx / +62xxx / 8xxx -> 62xxx, or None when not 10-15 digits."""
    if not isinstance(value, str):
        return None
    digits = re.sub(r"\D", "", value)
    if len(digits) < 10 or len(digits) > 15:
        return None
    if digits.startswith("0"):
        return "62" + digits[1:]
    if not digits.startswith("62"):
        return "62" + digits
    return digits


def new_transaction_id() -> str:
    return f"INV-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def format_idr(amount: int | float) -> str:
    # id-ID grouping: 300.000
    return f"{int(round(amount)):,}".replace(",", ".")


def mask_phone(number: Optional[str]) -> str:
    if not number:
        return "-"
    return number[:4] + "***" + number[-3:]


def mask_email(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return "-"
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain}"


def client_fingerprint(headers) -> str:
    ip = headers.get("x-forwarded-for") or "unknown"
    ua = headers.get("user-agent") or "unknown"
    return f"{ip}:{ua}"
