"""
operations.py – Institute API domain operations
────────────────────────────────────────────────────────────
Every server capability is an Operation descriptor (endpoint,
verb, body encoding, field mapping, status policy, error-field
priority). InstituteApi.call() is the one place that turns a
descriptor plus a payload into a gateway request, so enquiry,
registration and fee-entry paths cannot drift apart.

Backend quirks kept on purpose:
 • create_fee_entry is a PUT to the collection endpoint
 • updates carry the id in the URL *and* the body
 • every form body carries app=true
 • `status` may be true, 200, 201 or "true"
────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from .errors import ApiError
from .gateway import HttpGateway, MultipartBody, UrlEncodedBody
from .models import (
    LookupItem,
    RegistrationLookup,
    to_lookup_items,
    to_registration_lookups,
)

log = logging.getLogger(__name__)

Encoding = Literal["none", "multipart", "urlencoded", "json"]
StatusPolicy = Literal["required", "if_present", "ignore"]
AppFlag = Literal["first", "last", "none"]

# ── Envelope status ──────────────────────────────────────────
SUCCESS_STATUSES: Tuple[Any, ...] = (True, 200, 201, "true")


def status_ok(envelope: Any) -> bool:
    """
    True only for the allow-listed success encodings. Anything else
    (including 1, "success", "200") is not-success and gets logged.
    """
    if not isinstance(envelope, dict) or "status" not in envelope:
        return False
    raw = envelope["status"]
    for accepted in SUCCESS_STATUSES:
        # bool is an int subclass: keep True from matching 1 and vice versa
        if type(raw) is type(accepted) and raw == accepted:
            return True
    if raw not in (False, "false", 0, None, ""):
        log.warning(f"⚠️ [ENVELOPE] Unrecognised status value {raw!r}, treating as failure")
    return False


# ── Form value coercion ──────────────────────────────────────
def form_value(value: Any) -> str:
    """Render one value the way the backend expects it in a form body."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


# ── Descriptor ───────────────────────────────────────────────
@dataclass(frozen=True)
class Operation:
    name: str
    method: str
    path: str
    encoding: Encoding = "none"
    authenticated: bool = True
    status_policy: StatusPolicy = "if_present"
    error_fields: Tuple[str, ...] = ()
    error_fallback: Optional[str] = None
    # (wire key, payload key); None means "every payload key, in order"
    field_map: Optional[Tuple[Tuple[str, str], ...]] = None
    echo_id: bool = False
    app_flag: AppFlag = "last"
    headers: Tuple[Tuple[str, str], ...] = ()


OPERATIONS: Dict[str, Operation] = {op.name: op for op in (
    # Auth
    Operation("login", "POST", "/login", "multipart", authenticated=False,
              status_policy="required", error_fields=("password", "email"),
              error_fallback="Invalid credentials",
              field_map=(("email", "email"), ("password", "password"))),
    Operation("forgot_password", "POST", "/forget-password", "multipart", authenticated=False,
              status_policy="required", error_fields=("email",),
              error_fallback="Failed to send OTP",
              field_map=(("email", "email"),)),
    Operation("reset_password", "POST", "/reset-password", "multipart", authenticated=False,
              status_policy="required", error_fields=("otp",),
              error_fallback="Failed to reset password",
              field_map=(("otp", "otp"), ("password", "password"))),
    Operation("logout", "POST", "/logout", "none", status_policy="ignore", app_flag="none",
              headers=(("Content-Type", "application/json"),)),
    Operation("get_profile", "GET", "/profile/true"),
    Operation("get_dashboard_stats", "GET", "/dashboard/true"),
    # Enquiries
    Operation("create_enquiry", "POST", "/enquiry/true", "multipart"),
    Operation("list_enquiries", "GET", "/enquiry-list/true"),
    Operation("get_enquiry", "GET", "/enquiry/{id}"),
    Operation("get_enquiry_registration_data", "GET", "/enquiry-registrations/true/{id}"),
    Operation("update_enquiry", "PUT", "/enquiry/{id}", "urlencoded", echo_id=True),
    Operation("get_courses", "GET", "/course-list"),
    Operation("get_franchisees", "GET", "/franchisee-list"),
    # Registrations
    Operation("create_registration", "POST", "/registrations/true", "multipart"),
    Operation("list_registrations", "GET", "/registrations-list/true"),
    Operation("get_registration_number", "GET", "/registrations/number/true"),
    Operation("get_registration", "GET", "/registrations/{id}?app=true"),
    Operation("update_registration", "PUT", "/registration/{id}", "urlencoded", echo_id=True),
    # Fees
    Operation("create_fee_entry", "PUT", "/fee-payments", "urlencoded", app_flag="first",
              field_map=(
                  ("registration_no", "registration_no"),
                  ("fee_date", "date"),
                  ("paid_fees", "paid_fees"),
                  ("paid_through", "paid_through"),
                  ("received_by", "received_by"),
              )),
    Operation("get_fee_registration_numbers", "GET", "/fee-registrations-number/true"),
    Operation("get_payment_history", "GET", "/fee-payments/true", status_policy="ignore"),
)}


# ─────────────────────────────────────────────────────────────
# API facade
# ─────────────────────────────────────────────────────────────
class InstituteApi:
    """Typed wrappers over OPERATIONS; construct once and inject."""

    def __init__(self, gateway: HttpGateway):
        self.gateway = gateway

    # ── Generic dispatch ─────────────────────────────────────
    def call(
        self,
        op: Operation | str,
        payload: Optional[Mapping[str, Any]] = None,
        record_id: Any = None,
    ) -> Any:
        if isinstance(op, str):
            op = OPERATIONS[op]

        path = op.path
        if "{id}" in path:
            if record_id in (None, ""):
                raise ValueError(f"{op.name} needs a record id")
            path = path.replace("{id}", str(record_id))

        body = self._build_body(op, payload or {}, record_id)
        data = self.gateway.request(
            path,
            method=op.method,
            body=body,
            headers=dict(op.headers) or None,
            authenticated=op.authenticated,
            error_fields=op.error_fields,
            error_fallback=op.error_fallback,
        )
        self._check_status(op, data)
        return data

    @staticmethod
    def _build_body(op: Operation, payload: Mapping[str, Any], record_id: Any):
        if op.encoding == "none":
            return None
        if op.encoding == "json":
            return dict(payload)

        if op.field_map is not None:
            pairs = [(wire, form_value(payload.get(key))) for wire, key in op.field_map]
        else:
            pairs = [(str(k), form_value(v)) for k, v in payload.items()]
        if op.echo_id:
            pairs.append(("id", form_value(record_id)))
        if op.app_flag == "first":
            pairs.insert(0, ("app", "true"))
        elif op.app_flag == "last":
            pairs.append(("app", "true"))

        return MultipartBody(pairs) if op.encoding == "multipart" else UrlEncodedBody(pairs)

    @staticmethod
    def _check_status(op: Operation, data: Any) -> None:
        if op.status_policy == "ignore":
            return
        present = isinstance(data, dict) and "status" in data
        if op.status_policy == "if_present" and not present:
            return
        if not status_ok(data):
            message = data.get("message") if isinstance(data, dict) else None
            log.warning(f"⚠️ [API] {op.name} returned non-success status")
            raise ApiError(message or f"{op.name} failed", payload=data)

    # ── Auth ─────────────────────────────────────────────────
    def login(self, email: str, password: str) -> dict:
        return self.call("login", {"email": email, "password": password})

    def forgot_password(self, email: str) -> dict:
        return self.call("forgot_password", {"email": email})

    def reset_password(self, otp: str, password: str) -> dict:
        return self.call("reset_password", {"otp": otp, "password": password})

    def logout(self) -> Any:
        return self.call("logout")

    def get_profile(self) -> dict:
        return self.call("get_profile")

    def get_dashboard_stats(self) -> dict:
        return self.call("get_dashboard_stats")

    # ── Enquiries ────────────────────────────────────────────
    def create_enquiry(self, enquiry: Mapping[str, Any]) -> dict:
        return self.call("create_enquiry", enquiry)

    def list_enquiries(self) -> dict:
        return self.call("list_enquiries")

    def get_enquiry(self, enquiry_id: Any) -> dict:
        return self.call("get_enquiry", record_id=enquiry_id)

    def get_enquiry_registration_data(self, enquiry_id: Any) -> dict:
        return self.call("get_enquiry_registration_data", record_id=enquiry_id)

    def update_enquiry(self, enquiry_id: Any, enquiry: Mapping[str, Any]) -> dict:
        return self.call("update_enquiry", enquiry, record_id=enquiry_id)

    def get_courses(self) -> List[LookupItem]:
        data = self.call("get_courses")
        return to_lookup_items(
            _data_of(data),
            label_keys=("label", "course_name", "name", "title"),
            value_keys=("value", "course_name", "name", "id"),
        )

    def get_franchisees(self) -> List[LookupItem]:
        data = self.call("get_franchisees")
        return to_lookup_items(
            _data_of(data),
            label_keys=("label", "franchisee_name", "name", "title"),
            value_keys=("value", "franchisee_name", "name", "id"),
        )

    # ── Registrations ────────────────────────────────────────
    def create_registration(self, registration: Mapping[str, Any]) -> dict:
        return self.call("create_registration", registration)

    def list_registrations(self) -> dict:
        return self.call("list_registrations")

    def get_registrations(self) -> List[dict]:
        return _as_rows(_data_of(self.list_registrations()))

    def get_registration_number(self) -> str:
        data = self.call("get_registration_number")
        number = _data_of(data)
        if isinstance(number, dict):
            number = number.get("registration_no")
        return "" if number is None else str(number)

    def get_registration(self, registration_id: Any) -> dict:
        return self.call("get_registration", record_id=registration_id)

    def update_registration(self, registration_id: Any, registration: Mapping[str, Any]) -> dict:
        return self.call("update_registration", registration, record_id=registration_id)

    # ── Fees ─────────────────────────────────────────────────
    def create_fee_entry(self, fee: Mapping[str, Any]) -> dict:
        return self.call("create_fee_entry", fee)

    def get_fee_registration_numbers(self) -> List[RegistrationLookup]:
        return to_registration_lookups(_data_of(self.call("get_fee_registration_numbers")))

    def get_payment_history(self) -> dict:
        return self.call("get_payment_history")


def _data_of(envelope: Any) -> Any:
    """The envelope's `data`, or the body itself when it is a bare list."""
    if isinstance(envelope, dict):
        return envelope.get("data")
    return envelope


def _as_rows(data: Any) -> list:
    if data is None:
        return []
    rows = data if isinstance(data, list) else [data]
    return [r for r in rows if isinstance(r, dict)]
