# coachdesk/validators.py
import re
from typing import Any

from .models import to_decimal

# ── Patterns ──────────────────────────────────────────────────────────────────
TEN_DIGITS_RE = re.compile(r"[0-9]{10}")
EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LEN = 6

# ── Checks ────────────────────────────────────────────────────────────────────

def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())

def is_ten_digits(value: Any) -> bool:
    return isinstance(value, str) and TEN_DIGITS_RE.fullmatch(value) is not None

def is_email(value: Any) -> bool:
    # loose on purpose: anything@anything.anything
    return isinstance(value, str) and EMAIL_RE.search(value) is not None

def is_number(value: Any) -> bool:
    return to_decimal(value) is not None

# ── Input sanitisers ──────────────────────────────────────────────────────────

def digits_only(value: Any, max_len: int | None = None) -> str:
    s = re.sub(r"[^0-9]", "", str(value or ""))
    return s[:max_len] if max_len else s
