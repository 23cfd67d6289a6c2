"""
Small helpers shared by services and routes: time, slugs, money, pagination.
"""

import math
import re
import secrets
import unicodedata
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

CENTS = Decimal("0.01")

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_COLLAPSE = re.compile(r"[\s_-]+")
_FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def slugify(text: str) -> str:
    """
    Lowercase ASCII slug: "Street Art & Murals" -> "street-art-murals".
    """
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_STRIP.sub("", normalized.lower().strip())
    slug = _SLUG_COLLAPSE.sub("-", slug)
    return slug.strip("-")


def safe_filename(title: str, extension: str, fallback: str = "photo") -> str:
    """Attachment filename derived from a photo title."""
    stem = _FILENAME_UNSAFE.sub("_", title.strip()).strip("._")[:100]
    return f"{stem or fallback}{extension}"


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def split_commission(amount: Decimal, rate: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split a sale into (platform commission, photographer earning).

    The commission is rounded half-up to cents and the photographer gets the
    exact remainder, so the two always add up to the amount.
    """
    amount = to_money(amount)
    commission = (amount * Decimal(str(rate))).quantize(CENTS, rounding=ROUND_HALF_UP)
    return commission, amount - commission


def generate_transaction_id() -> str:
    return f"txn_{secrets.token_hex(12)}"


def generate_verification_code() -> str:
    """Four-digit numeric code, zero padded."""
    return f"{secrets.randbelow(10_000):04d}"


def pagination_meta(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
