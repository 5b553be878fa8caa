# coachdesk/models.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence


class Category(str, enum.Enum):
    general = "General"
    obc = "OBC"
    sc = "SC"
    st = "ST"
    ews = "EWS"
    ex_serviceman = "Ex-Serviceman"
    ph = "PH"


class Medium(str, enum.Enum):
    hindi = "Hindi"
    english = "English"


class PaymentMethod(str, enum.Enum):
    cash = "Cash"
    card = "Card"
    upi = "UPI"
    net_banking = "Net Banking"
    cheque = "Cheque"


def enum_values(kind: type[enum.Enum]) -> List[str]:
    return [m.value for m in kind]


@dataclass(frozen=True)
class LookupItem:
    label: str
    value: str


@dataclass(frozen=True)
class RegistrationLookup:
    """A registration number plus the student/fee snapshot used to pre-fill a fee entry."""
    label: str
    value: str
    student_name: str = ""
    course: str = ""
    total_fees: Optional[Decimal] = None
    due_fees: Optional[Decimal] = None


# --- Helpers ---

def to_decimal(raw: Any) -> Optional[Decimal]:
    """Parse a money-ish value; None for blanks and junk."""
    if raw is None or isinstance(raw, bool):
        return None
    s = str(raw).strip().replace(",", "")
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def format_amount(d: Decimal) -> str:
    """'5000', '3499.5' – no exponent, no trailing zeros."""
    if d == d.to_integral_value():
        return str(d.quantize(Decimal(1)))
    return format(d.normalize(), "f")


def _first(item: dict, keys: Sequence[str]) -> Any:
    for k in keys:
        v = item.get(k)
        if v not in (None, ""):
            return v
    return None


def _as_list(data: Any) -> list:
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def to_lookup_items(
    data: Any,
    label_keys: Sequence[str] = ("label", "name", "title"),
    value_keys: Sequence[str] = ("value", "id"),
) -> List[LookupItem]:
    """Plain strings become (s, s); dicts use the first present label/value key."""
    out: List[LookupItem] = []
    for item in _as_list(data):
        if isinstance(item, dict):
            label = _first(item, label_keys)
            value = _first(item, value_keys)
            if label is None and value is None:
                continue
            label = label if label is not None else value
            value = value if value is not None else label
            out.append(LookupItem(str(label), str(value)))
        elif item not in (None, ""):
            out.append(LookupItem(str(item), str(item)))
    return out


def to_registration_lookups(data: Any) -> List[RegistrationLookup]:
    out: List[RegistrationLookup] = []
    for item in _as_list(data):
        if isinstance(item, str):
            out.append(RegistrationLookup(item, item))
            continue
        if not isinstance(item, dict):
            continue
        reg_no = _first(item, ("registration_no", "value", "id"))
        if reg_no is None:
            continue
        reg_no = str(reg_no)
        name = str(_first(item, ("student_name", "name")) or "")
        total = to_decimal(_first(item, ("total_fees", "course_fees")))
        due = to_decimal(item.get("due_fees"))
        if due is None and total is not None:
            paid = to_decimal(item.get("paid_fees")) or Decimal(0)
            due = max(total - paid, Decimal(0))
        out.append(RegistrationLookup(
            label=f"{reg_no} - {name}" if name else reg_no,
            value=reg_no,
            student_name=name,
            course=str(_first(item, ("course", "course_admission_sought")) or ""),
            total_fees=total,
            due_fees=due,
        ))
    return out


def find_lookup(items: Iterable[RegistrationLookup], value: str) -> Optional[RegistrationLookup]:
    key = (value or "").strip().upper()
    for item in items:
        if item.value.strip().upper() == key:
            return item
    return None
