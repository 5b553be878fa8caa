"""
forms.py – Form state controllers
────────────────────────────────────────────────────────────
One controller per create/edit screen. Each holds a draft,
validates it on submit (never per keystroke), derives computed
fields and dispatches exactly one API call.

State flow:
  editing ──submit──▶ submitting ──▶ succeeded   (terminal)
     ▲                    │
     └──── failed ◀───────┘   (editable; input kept)

A failing validation pass never leaves `editing` and never
touches the network. A second submit while one is outstanding
is rejected. A response arriving after close() is discarded.
────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ApiError
from .models import (
    Category,
    Medium,
    PaymentMethod,
    RegistrationLookup,
    enum_values,
    find_lookup,
    format_amount,
    to_decimal,
)
from .validators import (
    MIN_PASSWORD_LEN,
    digits_only,
    is_blank,
    is_email,
    is_number,
    is_ten_digits,
)

log = logging.getLogger(__name__)


class FormState(str, enum.Enum):
    editing = "editing"
    submitting = "submitting"
    succeeded = "succeeded"
    failed = "failed"


class ReadOnlyFieldError(ValueError):
    pass


@dataclass
class SubmitResult:
    ok: bool
    errors: Dict[str, str] = field(default_factory=dict)
    alert: Optional[str] = None
    response: Any = None
    discarded: bool = False


def _text(record: Mapping[str, Any], *keys: str) -> str:
    for k in keys:
        v = record.get(k)
        if v not in (None, ""):
            return str(v)
    return ""


def _first_choice(value: Any) -> str:
    """Category/medium arrive as a string or a one-element list."""
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else ""
    return "" if value is None else str(value)


# ─────────────────────────────────────────────────────────────
# Base controller
# ─────────────────────────────────────────────────────────────
class FormController:
    FIELDS: Tuple[str, ...] = ()
    # form field → key the backend uses for it
    WIRE_NAMES: Dict[str, str] = {}
    failure_message = "Failed to save"
    field_errors_from_server = True

    def __init__(self, api: Any, read_only: Iterable[str] = ()):
        self.api = api
        self.values: Dict[str, Any] = {f: "" for f in self.FIELDS}
        self.read_only = frozenset(read_only)
        self.state = FormState.editing
        self.errors: Dict[str, str] = {}
        self.alert: Optional[str] = None
        self.response: Any = None
        self.closed = False
        self._inflight = threading.Lock()

    # ── Draft access ─────────────────────────────────────────
    def get(self, name: str) -> Any:
        if name not in self.values:
            raise KeyError(name)
        return self.values[name]

    def is_editable(self, name: str) -> bool:
        return name not in self.read_only and self.state != FormState.succeeded

    def set(self, name: str, value: Any) -> None:
        if name not in self.values:
            raise KeyError(name)
        if name in self.read_only:
            raise ReadOnlyFieldError(f"{name} is read-only")
        if self.state == FormState.succeeded:
            raise ReadOnlyFieldError("form already submitted")
        self.values[name] = value
        self.errors.pop(name, None)
        if self.state == FormState.failed:
            self.state = FormState.editing
            self.alert = None

    def update(self, **changes: Any) -> None:
        for name, value in changes.items():
            self.set(name, value)

    def close(self) -> None:
        """The consuming screen went away; late responses are dropped."""
        self.closed = True

    # ── Validation ───────────────────────────────────────────
    def validate(self) -> Dict[str, str]:
        """Pure: same draft, same errors. Does not touch self.errors."""
        return self._validate(dict(self.values))

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        return {}

    # ── Submission ───────────────────────────────────────────
    def submit(self) -> SubmitResult:
        if self.state == FormState.succeeded:
            return SubmitResult(False, alert="Already submitted")
        if not self._inflight.acquire(blocking=False):
            log.warning(f"[FORM] {type(self).__name__}: submit ignored, one already in flight")
            return SubmitResult(False, alert="A submission is already in progress")
        try:
            return self._submit()
        finally:
            self._inflight.release()

    def _submit(self) -> SubmitResult:
        errors = self.validate()
        if errors:
            self.errors = errors
            self.state = FormState.editing
            return SubmitResult(False, errors=dict(errors))

        self.errors = {}
        self.alert = None
        self.state = FormState.submitting
        name = type(self).__name__
        try:
            response = self._dispatch()
        except ApiError as e:
            if self.closed:
                log.info(f"[FORM] {name}: late failure discarded")
                return SubmitResult(False, alert=e.message, discarded=True)
            mapped = self._map_server_errors(e.field_errors) if self.field_errors_from_server else {}
            if mapped:
                self.errors = mapped
            else:
                self.alert = e.message or self.failure_message
            self.state = FormState.failed
            log.warning(f"[FORM] {name}: submit failed → {e.message}")
            return SubmitResult(False, errors=dict(self.errors), alert=self.alert)
        except Exception:
            self.state = FormState.editing
            raise

        if self.closed:
            log.info(f"[FORM] {name}: late response discarded")
            return SubmitResult(True, response=response, discarded=True)
        self.response = response
        self.state = FormState.succeeded
        log.info(f"[FORM] {name}: submitted")
        return SubmitResult(True, response=response)

    def _dispatch(self) -> Any:
        raise NotImplementedError

    def _map_server_errors(self, server_errors: Dict[str, str]) -> Dict[str, str]:
        by_wire = {wire: name for name, wire in self.WIRE_NAMES.items()}
        out: Dict[str, str] = {}
        for key, message in server_errors.items():
            name = by_wire.get(key, key)
            if name in self.values:
                out[name] = message
        return out

    def payload(self) -> Dict[str, Any]:
        return {self.WIRE_NAMES.get(f, f): self.values[f] for f in self.FIELDS}


# ─────────────────────────────────────────────────────────────
# Enquiry
# ─────────────────────────────────────────────────────────────
class EnquiryForm(FormController):
    FIELDS = (
        "date", "student_name", "contact_number", "whatsapp_number",
        "course_enquiry", "mode_of_reference", "place", "counsellor_name",
        "franchisee", "remarks", "follow_up_1", "follow_up_2", "follow_up_3",
    )
    WIRE_NAMES = {
        "date": "date",
        "student_name": "studentName",
        "contact_number": "contactNumber",
        "whatsapp_number": "whatsappNumber",
        "course_enquiry": "courseEnquiry",
        "mode_of_reference": "modeOfReference",
        "place": "place",
        "counsellor_name": "counsellorName",
        "franchisee": "franchisee",
        "remarks": "remarks",
        "follow_up_1": "followUp1",
        "follow_up_2": "followUp2",
        "follow_up_3": "followUp3",
    }
    failure_message = "Failed to save enquiry"

    def __init__(self, api: Any, record: Optional[Mapping[str, Any]] = None):
        super().__init__(api)
        # a blank id means the record was never saved: create mode
        self.record_id = (record.get("id") or None) if record else None
        self.values["date"] = date.today().isoformat()
        if record:
            self.values.update({
                "date": _text(record, "enquiry_date", "date") or self.values["date"],
                "student_name": _text(record, "student_name"),
                "contact_number": _text(record, "contact_number"),
                "whatsapp_number": _text(record, "whatsapp_number"),
                "course_enquiry": _text(record, "course", "course_enquiry"),
                "mode_of_reference": _text(record, "reference_mode", "mode_of_reference"),
                "place": _text(record, "place"),
                "counsellor_name": _text(record, "counsellor_name"),
                "franchisee": _text(record, "franchisee"),
                "remarks": _text(record, "remarks"),
                "follow_up_1": _text(record, "follow_up_1"),
                "follow_up_2": _text(record, "follow_up_2"),
                "follow_up_3": _text(record, "follow_up_3"),
            })

    @property
    def is_edit(self) -> bool:
        return self.record_id is not None

    def can_set_follow_up_3(self) -> bool:
        return not is_blank(self.values["follow_up_2"])

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if is_blank(v["student_name"]):
            errors["student_name"] = "Student name is required"
        if is_blank(v["contact_number"]):
            errors["contact_number"] = "Contact number is required"
        elif not is_ten_digits(v["contact_number"]):
            errors["contact_number"] = "Contact number must be 10 digits"
        if not is_blank(v["whatsapp_number"]) and not is_ten_digits(v["whatsapp_number"]):
            errors["whatsapp_number"] = "WhatsApp number must be 10 digits"
        if is_blank(v["course_enquiry"]):
            errors["course_enquiry"] = "Course selection is required"
        if is_blank(v["franchisee"]):
            errors["franchisee"] = "Franchisee selection is required"
        if not is_blank(v["follow_up_3"]) and is_blank(v["follow_up_2"]):
            errors["follow_up_3"] = "Set follow up 2 before follow up 3"
        return errors

    def payload(self) -> Dict[str, Any]:
        out = super().payload()
        for name in ("follow_up_1", "follow_up_2", "follow_up_3"):
            value = self.values[name]
            if isinstance(value, datetime):
                out[self.WIRE_NAMES[name]] = value.strftime("%Y-%m-%d %H:%M")
        return out

    def _dispatch(self) -> Any:
        if self.is_edit:
            return self.api.update_enquiry(self.record_id, self.payload())
        return self.api.create_enquiry(self.payload())


# ─────────────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────────────
class RegistrationForm(FormController):
    FIELDS = (
        "registration_no", "student_name", "guardian_name", "guardian_occupation",
        "course", "dob", "address", "contact_no", "guardian_contact_no", "email",
        "category", "computer_course", "medium", "registration_date", "registration_fees",
    )
    failure_message = "Failed to save registration"

    def __init__(
        self,
        api: Any,
        record: Optional[Mapping[str, Any]] = None,
        enquiry: Optional[Mapping[str, Any]] = None,
    ):
        read_only = {"registration_no"}
        if enquiry:
            read_only |= {"student_name", "contact_no"}
        super().__init__(api, read_only=read_only)
        # a blank id means the record was never saved: create mode
        self.record_id = (record.get("id") or None) if record else None
        self.values["dob"] = None
        self.values["registration_date"] = date.today()

        if record:
            self.values.update({
                "registration_no": _text(record, "registration_no"),
                "student_name": _text(record, "student_name"),
                "guardian_name": _text(record, "parent_husband_name", "guardian_name"),
                "guardian_occupation": _text(record, "parent_husband_occupation", "guardian_occupation"),
                "course": _text(record, "course_admission_sought", "course"),
                "dob": _parse_date(record.get("dob")),
                "address": _text(record, "address"),
                "contact_no": _text(record, "contact_no", "contact_number"),
                "guardian_contact_no": _text(record, "guardian_contact_no"),
                "email": _text(record, "email"),
                "category": _first_choice(record.get("category")),
                "computer_course": _text(record, "computer_course"),
                "medium": _first_choice(record.get("medium")),
                "registration_date": _parse_date(
                    record.get("date_of_registration") or record.get("registration_date")
                ) or date.today(),
                "registration_fees": _text(record, "registration_fees"),
            })
        elif enquiry:
            self.values.update({
                "student_name": _text(enquiry, "student_name"),
                "course": _text(enquiry, "course"),
                "contact_no": _text(enquiry, "contact_number", "contact_no"),
            })

    @property
    def is_edit(self) -> bool:
        return self.record_id is not None

    def prepare(self) -> str:
        """Create mode: fetch the server-issued registration number."""
        if self.is_edit:
            return self.values["registration_no"]
        try:
            self.values["registration_no"] = self.api.get_registration_number()
        except ApiError as e:
            log.error(f"❌ [FORM] Registration number fetch failed: {e.message}")
        return self.values["registration_no"]

    def set_contact(self, name: str, value: Any) -> None:
        self.set(name, digits_only(value, 10))

    def set_fees(self, value: Any) -> None:
        self.set("registration_fees", digits_only(value))

    def toggle_category(self, category: str) -> None:
        self.set("category", "" if self.values["category"] == category else category)

    def toggle_medium(self, medium: str) -> None:
        self.set("medium", "" if self.values["medium"] == medium else medium)

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if is_blank(v["student_name"]):
            errors["student_name"] = "Student name is required"
        if is_blank(v["guardian_name"]):
            errors["guardian_name"] = "Parent/Husband name is required"
        if is_blank(v["course"]):
            errors["course"] = "Course is required"
        if not v["dob"]:
            errors["dob"] = "Date of birth is required"
        if is_blank(v["address"]):
            errors["address"] = "Address is required"
        if is_blank(v["contact_no"]):
            errors["contact_no"] = "Contact number is required"
        elif not is_ten_digits(v["contact_no"]):
            errors["contact_no"] = "Contact number must be 10 digits"
        if not is_blank(v["email"]) and not is_email(v["email"]):
            errors["email"] = "Please enter a valid email"
        if is_blank(v["registration_fees"]):
            errors["registration_fees"] = "Registration fees is required"
        if v["category"] and v["category"] not in enum_values(Category):
            errors["category"] = "Unknown category"
        if v["medium"] and v["medium"] not in enum_values(Medium):
            errors["medium"] = "Unknown medium"
        return errors

    def _dispatch(self) -> Any:
        if self.is_edit:
            return self.api.update_registration(self.record_id, self.payload())
        return self.api.create_registration(self.payload())


def _parse_date(raw: Any) -> Optional[date]:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not raw:
        return None
    try:
        return datetime.strptime(str(raw)[:10], "%Y-%m-%d").date()
    except ValueError:
        log.warning(f"[FORM] Could not parse date {raw!r}")
        return None


# ─────────────────────────────────────────────────────────────
# Fee entry
# ─────────────────────────────────────────────────────────────
class FeeEntryForm(FormController):
    FIELDS = (
        "registration_no", "date", "student_name", "course", "total_fees",
        "paid_fees", "initial_due", "due_date", "paid_through", "received_by",
    )
    failure_message = "Failed to create fees entry"

    def __init__(self, api: Any):
        super().__init__(api, read_only={"student_name", "course"})
        self.values["date"] = date.today()
        self.values["due_date"] = None
        self.registration_options: List[RegistrationLookup] = []

    def load_registrations(self) -> List[RegistrationLookup]:
        try:
            self.registration_options = self.api.get_fee_registration_numbers()
        except ApiError as e:
            log.error(f"❌ [FORM] Registration numbers fetch failed: {e.message}")
            self.registration_options = []
        return self.registration_options

    def select_registration(self, registration_no: str) -> None:
        self.set("registration_no", registration_no)
        lookup = find_lookup(self.registration_options, registration_no) if registration_no else None
        # the snapshot always belongs to the current selection
        self.values.update(student_name="", course="", total_fees="", initial_due="")
        if lookup is None:
            return
        self.values.update(student_name=lookup.student_name, course=lookup.course)
        if lookup.total_fees is not None:
            self.set("total_fees", format_amount(lookup.total_fees))
        due = lookup.due_fees if lookup.due_fees is not None else lookup.total_fees
        if due is not None:
            self.set("initial_due", format_amount(due))

    # ── Derived ──────────────────────────────────────────────
    def _initial_due_amount(self, v: Mapping[str, Any]) -> Decimal:
        due = to_decimal(v["initial_due"])
        if due is None:
            due = to_decimal(v["total_fees"])
        return due if due is not None else Decimal(0)

    @property
    def due_fees(self) -> str:
        """initial due − paid, floored at zero; blanks count as zero."""
        paid = to_decimal(self.values["paid_fees"]) or Decimal(0)
        due = self._initial_due_amount(self.values) - paid
        return format_amount(max(due, Decimal(0)))

    def snapshot(self) -> Dict[str, Any]:
        return {**self.values, "due_fees": self.due_fees}

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if is_blank(v["registration_no"]):
            errors["registration_no"] = "Registration number is required"
        if is_blank(v["total_fees"]):
            errors["total_fees"] = "Total fees is required"
        elif not is_number(v["total_fees"]):
            errors["total_fees"] = "Total fees must be a valid number"
        if is_blank(v["paid_fees"]):
            errors["paid_fees"] = "Paid fees is required"
        elif not is_number(v["paid_fees"]):
            errors["paid_fees"] = "Paid fees must be a valid number"
        elif to_decimal(v["paid_fees"]) < 0:
            errors["paid_fees"] = "Paid fees cannot be negative"
        elif to_decimal(v["paid_fees"]) > self._initial_due_amount(v):
            errors["paid_fees"] = "Paid fees cannot exceed due fees"
        if v["paid_through"] not in enum_values(PaymentMethod):
            errors["paid_through"] = "Payment method is required"
        if is_blank(v["received_by"]):
            errors["received_by"] = "Received by is required"
        return errors

    def _dispatch(self) -> Any:
        return self.api.create_fee_entry(self.values)


# ─────────────────────────────────────────────────────────────
# Auth screens
# ─────────────────────────────────────────────────────────────
class LoginForm(FormController):
    FIELDS = ("email", "password")
    failure_message = "Invalid credentials or server error"
    field_errors_from_server = False

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if is_blank(v["email"]):
            errors["email"] = "Email is required"
        elif not is_email(v["email"]):
            errors["email"] = "Please enter a valid email"
        if is_blank(v["password"]):
            errors["password"] = "Password is required"
        elif len(v["password"]) < MIN_PASSWORD_LEN:
            errors["password"] = f"Password must be at least {MIN_PASSWORD_LEN} characters"
        return errors

    def _dispatch(self) -> Any:
        return self.api.login(self.values["email"].strip(), self.values["password"])


class ForgotPasswordForm(FormController):
    FIELDS = ("email",)
    failure_message = "Failed to send OTP"
    field_errors_from_server = False

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        if is_blank(v["email"]):
            return {"email": "Email is required"}
        if not is_email(v["email"]):
            return {"email": "Please enter a valid email"}
        return {}

    def _dispatch(self) -> Any:
        return self.api.forgot_password(self.values["email"].strip())


class ResetPasswordForm(FormController):
    FIELDS = ("otp", "password")
    failure_message = "Failed to reset password"
    field_errors_from_server = False

    def __init__(self, api: Any, email: str = ""):
        super().__init__(api)
        self.email = email

    def resend_otp(self) -> SubmitResult:
        if is_blank(self.email):
            return SubmitResult(False, alert="Email is required")
        try:
            return SubmitResult(True, response=self.api.resend_otp(self.email))
        except ApiError as e:
            return SubmitResult(False, alert=e.message or "Failed to resend OTP")

    def _validate(self, v: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if is_blank(v["otp"]):
            errors["otp"] = "OTP is required"
        if is_blank(v["password"]):
            errors["password"] = "New password is required"
        elif len(v["password"]) < MIN_PASSWORD_LEN:
            errors["password"] = f"Password must be at least {MIN_PASSWORD_LEN} characters"
        return errors

    def _dispatch(self) -> Any:
        return self.api.reset_password(self.values["otp"].strip(), self.values["password"])
