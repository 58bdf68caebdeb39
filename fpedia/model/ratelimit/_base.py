from dataclasses import dataclass
from typing import Optional

DENIED_MESSAGE = "Too many requests. Please try again later."


@dataclass
class RateLimitResult:
    success: bool
    message: Optional[str] = None


ALLOWED = RateLimitResult(success=True)
DENIED = RateLimitResult(success=False, message=DENIED_MESSAGE)
