# coachdesk/listings.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping

from .operations import InstituteApi, status_ok

log = logging.getLogger(__name__)

# ── Search ────────────────────────────────────────────────────────────────────

def _s(value: Any) -> str:
    return "" if value is None else str(value)

def filter_enquiries(items: Iterable[Mapping[str, Any]], query: str) -> List[Mapping[str, Any]]:
    """Name (case-insensitive) or contact number substring."""
    items = list(items)
    q = (query or "").strip()
    if not q:
        return items
    ql = q.lower()
    return [
        e for e in items
        if ql in _s(e.get("student_name")).lower() or q in _s(e.get("contact_number"))
    ]

def filter_registrations(items: Iterable[Mapping[str, Any]], query: str) -> List[Mapping[str, Any]]:
    """Name or registration number (case-insensitive), or contact number substring."""
    items = list(items)
    q = (query or "").strip()
    if not q:
        return items
    ql = q.lower()
    return [
        r for r in items
        if ql in _s(r.get("student_name")).lower()
        or ql in _s(r.get("registration_no")).lower()
        or q in _s(r.get("contact_no"))
    ]

def is_registered(enquiry: Mapping[str, Any]) -> bool:
    return _s(enquiry.get("register_status")) == "1"

# ── Payment history ───────────────────────────────────────────────────────────

def _reg_key(registration_no: Any) -> str:
    return _s(registration_no).strip().upper()

def student_name_index(registrations: Iterable[Mapping[str, Any]]) -> Dict[str, str]:
    """Registration number (trimmed, upper-cased) → student name."""
    index: Dict[str, str] = {}
    for r in registrations:
        if r.get("registration_no"):
            index[_reg_key(r["registration_no"])] = _s(r.get("student_name"))
    return index

def payment_student_name(payment: Mapping[str, Any], index: Mapping[str, str]) -> str:
    if payment.get("student_name"):
        return _s(payment["student_name"])
    if not payment.get("registration_no"):
        return "N/A"
    return index.get(_reg_key(payment["registration_no"])) or "N/A"

def payment_history(api: InstituteApi) -> List[Dict[str, Any]]:
    """
    Payments with a resolved `student_name`. Empty when the history
    envelope is not a success.
    """
    envelope = api.get_payment_history()
    if not status_ok(envelope):
        return []
    index = student_name_index(api.get_registrations())
    rows = envelope.get("data") or []
    out = []
    for p in rows if isinstance(rows, list) else [rows]:
        if isinstance(p, dict):
            out.append({**p, "student_name": payment_student_name(p, index)})
    return out
