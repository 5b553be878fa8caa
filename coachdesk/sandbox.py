"""
sandbox.py – In-process stand-in for the institute API
────────────────────────────────────────────────────────────
A Flask app that answers the same endpoints as the real
backend, quirks included:

 • list endpoints return HTML-entity encoded JSON
 • the profile endpoint prefixes a byte-order mark
 • `status` comes back as true / 200 / 201 / "true"
   depending on the endpoint
 • 401 for missing, bad or revoked bearer tokens
 • `errors` envelopes for login / OTP / validation failures

SandboxAdapter plugs the app into a requests.Session so the
real gateway can be exercised without a network.

Run standalone:  python -m coachdesk.sandbox
────────────────────────────────────────────────────────────
"""

import json
import logging
from datetime import date
from decimal import Decimal
from functools import wraps
from urllib.parse import urlsplit

import requests
from flask import Blueprint, Flask, Response, current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from . import config
from .models import format_amount, to_decimal

log = logging.getLogger(__name__)

bp = Blueprint("sandbox_bp", __name__)

API_PREFIX = "/api/student-enquiry"
SALT = "coachdesk-sandbox"
TOKEN_MAX_AGE = 7 * 24 * 3600
DEFAULT_OTP = "123456"


# ─────────────────────────────────────────────────────────────
# In-memory data
# ─────────────────────────────────────────────────────────────
class SandboxData:
    def __init__(self, users=None, otp: str = DEFAULT_OTP):
        self.users = dict(users or {"admin@coachdesk.test": "secret123"})
        self.otp = otp
        self.pending_otp: dict = {}
        self.revoked: set = set()
        self.courses = [
            {"id": 1, "course_name": "UPSC", "fees": 60000},
            {"id": 2, "course_name": "RAS", "fees": 45000},
            {"id": 3, "course_name": "SSC", "fees": 30000},
            {"id": 4, "course_name": "BANK", "fees": 30000},
            {"id": 5, "course_name": "CLAT", "fees": 40000},
        ]
        self.franchisees = [
            {"id": 1, "franchisee_name": "KS Academy"},
            {"id": 2, "franchisee_name": "RS Academy"},
            {"id": 3, "franchisee_name": "RPS Academy"},
            {"id": 4, "franchisee_name": "NS Academy"},
        ]
        self.enquiries: dict = {}
        self.registrations: dict = {}
        self.payments: list = []
        self._next_enquiry = 1
        self._next_registration = 1

    def course_fees(self, name: str) -> Decimal:
        for c in self.courses:
            if c["course_name"].lower() == (name or "").lower():
                return Decimal(c["fees"])
        return Decimal(25000)

    def next_registration_no(self) -> str:
        return f"REG{self._next_registration:03d}"

    def add_enquiry(self, fields: dict) -> dict:
        eid = self._next_enquiry
        self._next_enquiry += 1
        record = {"id": eid, "register_status": "0", **fields}
        self.enquiries[eid] = record
        return record

    def add_registration(self, fields: dict) -> dict:
        rid = self._next_registration
        self._next_registration += 1
        record = {
            "id": rid,
            **fields,
            "registration_no": fields.get("registration_no") or f"REG{rid:03d}",
            "total_fees": format_amount(self.course_fees(fields.get("course", ""))),
        }
        self.registrations[rid] = record
        for enquiry in self.enquiries.values():
            if enquiry.get("contact_number") and enquiry["contact_number"] == record.get("contact_no"):
                enquiry["register_status"] = "1"
        return record

    def registration_by_no(self, registration_no: str):
        key = (registration_no or "").strip().upper()
        for r in self.registrations.values():
            if r["registration_no"].upper() == key:
                return r
        return None

    def paid_total(self, registration_no: str) -> Decimal:
        return sum(
            (to_decimal(p["paid_fees"]) or Decimal(0)
             for p in self.payments if p["registration_no"] == registration_no),
            Decimal(0),
        )

    def due(self, registration: dict) -> Decimal:
        total = to_decimal(registration["total_fees"]) or Decimal(0)
        return max(total - self.paid_total(registration["registration_no"]), Decimal(0))


def seed(data: SandboxData) -> None:
    data.add_enquiry({
        "enquiry_date": "2026-10-01", "student_name": "Ravi Kumar",
        "contact_number": "9123456780", "whatsapp_number": "9123456780",
        "course": "RAS", "franchisee": "RS Academy", "counsellor_name": "Meena",
        "reference_mode": "Walk-in", "place": "Jaipur", "remarks": "",
        "follow_up_1": "", "follow_up_2": "", "follow_up_3": "",
    })
    data.add_registration({
        "student_name": "Priya Sharma", "guardian_name": "Anil Sharma",
        "guardian_occupation": "Teacher", "course": "SSC", "dob": "2004-05-12",
        "address": "12 MI Road, Jaipur", "contact_no": "9988776655",
        "guardian_contact_no": "", "email": "priya@example.com", "category": "General",
        "computer_course": "", "medium": "Hindi", "registration_date": "2026-09-15",
        "registration_fees": "500",
    })


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────
def _data() -> SandboxData:
    return current_app.config["SANDBOX_DATA"]


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=SALT)


def _reply(payload, status: int = 200, mangle: bool = False, bom: bool = False) -> Response:
    body = json.dumps(payload)
    if mangle:
        body = (body.replace("&", "&amp;").replace('"', "&quot;")
                    .replace("<", "&lt;").replace(">", "&gt;"))
    if bom:
        body = "\ufeff" + body
    return Response(body, status=status, mimetype="application/json")


def _invalid(errors: dict, message: str = "The given data was invalid.") -> Response:
    return _reply({"status": False, "message": message, "errors": errors}, 422)


def _not_found(what: str) -> Response:
    return _reply({"status": False, "message": f"{what} not found"}, 404)


def require_token(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        token = header[7:] if header.startswith("Bearer ") else ""
        if not token or token in _data().revoked:
            return _reply({"message": "Unauthenticated."}, 401)
        try:
            claims = _serializer().loads(token, max_age=TOKEN_MAX_AGE)
        except (SignatureExpired, BadSignature):
            return _reply({"message": "Unauthenticated."}, 401)
        request.environ["sandbox.user"] = claims.get("email")
        request.environ["sandbox.token"] = token
        return view(*args, **kwargs)
    return wrapper


# ─────────────────────────────────────────────────────────────
# Auth
# ─────────────────────────────────────────────────────────────
@bp.route("/login", methods=["POST"])
def login():
    email = request.form.get("email", "").strip().lower()
    password = request.form.get("password", "")
    users = _data().users
    if email not in users:
        return _invalid({"email": ["No account found for this email."]})
    if users[email] != password:
        return _invalid({"password": ["The password is incorrect."]})
    token = _serializer().dumps({"email": email})
    log.info(f"[SANDBOX] login {email}")
    return _reply({"status": True, "message": "Login successful", "token": token,
                   "user": {"email": email}})


@bp.route("/forget-password", methods=["POST"])
def forget_password():
    email = request.form.get("email", "").strip().lower()
    data = _data()
    if email not in data.users:
        return _invalid({"email": ["We can't find a user with that email address."]})
    data.pending_otp[data.otp] = email
    return _reply({"status": 200, "message": "OTP sent to your email"})


@bp.route("/reset-password", methods=["POST"])
def reset_password():
    otp = request.form.get("otp", "").strip()
    password = request.form.get("password", "")
    data = _data()
    email = data.pending_otp.pop(otp, None)
    if email is None:
        return _invalid({"otp": ["Invalid or expired OTP."]})
    data.users[email] = password
    return _reply({"status": 201, "message": "Password reset successfully"})


@bp.route("/logout", methods=["POST"])
@require_token
def logout():
    _data().revoked.add(request.environ["sandbox.token"])
    return _reply({"status": True, "message": "Logged out successfully"})


@bp.route("/profile/true", methods=["GET"])
@require_token
def profile():
    email = request.environ["sandbox.user"]
    return _reply({"status": True, "data": {"email": email, "name": email.split("@")[0].title()}},
                  bom=True)


@bp.route("/dashboard/true", methods=["GET"])
@require_token
def dashboard():
    data = _data()
    collected = sum((to_decimal(p["paid_fees"]) or Decimal(0) for p in data.payments), Decimal(0))
    return _reply({"status": True, "data": {
        "total_enquiries": len(data.enquiries),
        "total_registrations": len(data.registrations),
        "total_fees_collected": format_amount(collected),
    }})


# ─────────────────────────────────────────────────────────────
# Enquiries
# ─────────────────────────────────────────────────────────────
_ENQUIRY_FIELDS = {
    "date": "enquiry_date",
    "studentName": "student_name",
    "contactNumber": "contact_number",
    "whatsappNumber": "whatsapp_number",
    "courseEnquiry": "course",
    "modeOfReference": "reference_mode",
    "place": "place",
    "counsellorName": "counsellor_name",
    "franchisee": "franchisee",
    "remarks": "remarks",
    "followUp1": "follow_up_1",
    "followUp2": "follow_up_2",
    "followUp3": "follow_up_3",
}


def _enquiry_fields(form) -> dict:
    return {col: form.get(key, "") for key, col in _ENQUIRY_FIELDS.items()}


def _enquiry_errors(fields: dict) -> dict:
    errors = {}
    if not fields["student_name"].strip():
        errors["studentName"] = ["The student name field is required."]
    if not fields["contact_number"].strip():
        errors["contactNumber"] = ["The contact number field is required."]
    return errors


@bp.route("/enquiry/true", methods=["POST"])
@require_token
def create_enquiry():
    fields = _enquiry_fields(request.form)
    errors = _enquiry_errors(fields)
    if errors:
        return _invalid(errors)
    record = _data().add_enquiry(fields)
    return _reply({"status": 201, "message": "Enquiry created successfully", "data": record})


@bp.route("/enquiry-list/true", methods=["GET"])
@require_token
def list_enquiries():
    return _reply({"status": True, "data": list(_data().enquiries.values())}, mangle=True)


@bp.route("/enquiry/<int:enquiry_id>", methods=["GET", "PUT"])
@require_token
def enquiry_detail(enquiry_id: int):
    record = _data().enquiries.get(enquiry_id)
    if record is None:
        return _not_found("Enquiry")
    if request.method == "GET":
        return _reply({"status": True, "data": record})

    if request.form.get("id") != str(enquiry_id):
        return _reply({"status": False, "message": "Enquiry id mismatch"}, 422)
    fields = _enquiry_fields(request.form)
    errors = _enquiry_errors(fields)
    if errors:
        return _invalid(errors)
    record.update(fields)
    return _reply({"status": True, "message": "Enquiry updated successfully", "data": record})


@bp.route("/enquiry-registrations/true/<int:enquiry_id>", methods=["GET"])
@require_token
def enquiry_registration_data(enquiry_id: int):
    record = _data().enquiries.get(enquiry_id)
    if record is None:
        return _not_found("Enquiry")
    return _reply({"status": True, "data": {
        "id": record["id"],
        "student_name": record["student_name"],
        "course": record["course"],
        "contact_number": record["contact_number"],
    }})


@bp.route("/course-list", methods=["GET"])
@require_token
def course_list():
    return _reply({"status": True, "data": _data().courses})


@bp.route("/franchisee-list", methods=["GET"])
@require_token
def franchisee_list():
    return _reply({"status": True, "data": _data().franchisees})


# ─────────────────────────────────────────────────────────────
# Registrations
# ─────────────────────────────────────────────────────────────
_REGISTRATION_FIELDS = (
    "registration_no", "student_name", "guardian_name", "guardian_occupation",
    "course", "dob", "address", "contact_no", "guardian_contact_no", "email",
    "category", "computer_course", "medium", "registration_date", "registration_fees",
)


def _registration_fields(form) -> dict:
    return {k: form.get(k, "") for k in _REGISTRATION_FIELDS}


def _registration_errors(fields: dict) -> dict:
    errors = {}
    for key in ("student_name", "guardian_name", "course", "contact_no"):
        if not fields[key].strip():
            errors[key] = [f"The {key.replace('_', ' ')} field is required."]
    return errors


@bp.route("/registrations/true", methods=["POST"])
@require_token
def create_registration():
    fields = _registration_fields(request.form)
    errors = _registration_errors(fields)
    if errors:
        return _invalid(errors)
    record = _data().add_registration(fields)
    return _reply({"status": 201, "message": "Registration created successfully", "data": record})


@bp.route("/registrations-list/true", methods=["GET"])
@require_token
def list_registrations():
    return _reply({"status": True, "data": list(_data().registrations.values())}, mangle=True)


@bp.route("/registrations/number/true", methods=["GET"])
@require_token
def registration_number():
    return _reply({"status": True, "data": _data().next_registration_no()})


@bp.route("/registrations/<int:registration_id>", methods=["GET"])
@require_token
def registration_detail(registration_id: int):
    record = _data().registrations.get(registration_id)
    if record is None:
        return _not_found("Registration")
    return _reply({"status": True, "data": record})


@bp.route("/registration/<int:registration_id>", methods=["PUT"])
@require_token
def update_registration(registration_id: int):
    record = _data().registrations.get(registration_id)
    if record is None:
        return _not_found("Registration")
    if request.form.get("id") != str(registration_id):
        return _reply({"status": False, "message": "Registration id mismatch"}, 422)
    fields = _registration_fields(request.form)
    errors = _registration_errors(fields)
    if errors:
        return _invalid(errors)
    fields["registration_no"] = record["registration_no"]
    record.update(fields)
    return _reply({"status": True, "message": "Registration updated successfully", "data": record})


# ─────────────────────────────────────────────────────────────
# Fees
# ─────────────────────────────────────────────────────────────
@bp.route("/fee-payments", methods=["PUT"])
@require_token
def create_fee_payment():
    data = _data()
    form = request.form
    registration = data.registration_by_no(form.get("registration_no", ""))
    if registration is None:
        return _invalid({"registration_no": ["Unknown registration number."]})
    paid = to_decimal(form.get("paid_fees"))
    if paid is None or paid <= 0:
        return _invalid({"paid_fees": ["Paid fees must be a positive amount."]})
    if paid > data.due(registration):
        return _invalid({"paid_fees": ["Paid fees exceed the due amount."]})
    payment = {
        "id": len(data.payments) + 1,
        "registration_no": registration["registration_no"],
        "fee_date": form.get("fee_date") or date.today().isoformat(),
        "total_fees": registration["total_fees"],
        "paid_fees": format_amount(paid),
        "paid_through": form.get("paid_through", ""),
        "received_by": form.get("received_by", ""),
        "payment_status": "Success",
    }
    data.payments.append(payment)
    payment["due_fees"] = format_amount(data.due(registration))
    return _reply({"status": "true", "message": "Fee payment recorded", "data": payment})


@bp.route("/fee-registrations-number/true", methods=["GET"])
@require_token
def fee_registration_numbers():
    data = _data()
    rows = [{
        "registration_no": r["registration_no"],
        "student_name": r["student_name"],
        "course": r["course"],
        "total_fees": r["total_fees"],
        "paid_fees": format_amount(data.paid_total(r["registration_no"])),
        "due_fees": format_amount(data.due(r)),
    } for r in data.registrations.values()]
    return _reply({"status": True, "data": rows})


@bp.route("/fee-payments/true", methods=["GET"])
@require_token
def payment_history():
    # rows carry no student_name; clients join it from the registrations list
    return _reply({"status": True, "data": list(_data().payments)})


# ─────────────────────────────────────────────────────────────
# App factory & transport
# ─────────────────────────────────────────────────────────────
def create_sandbox_app(secret_key: str = config.SECRET_KEY, users=None, otp: str = DEFAULT_OTP,
                       seeded: bool = True) -> Flask:
    """Create a sandbox Flask app with its own in-memory data."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = secret_key
    data = SandboxData(users=users, otp=otp)
    if seeded:
        seed(data)
    app.config["SANDBOX_DATA"] = data
    app.register_blueprint(bp, url_prefix=API_PREFIX)

    @app.route("/health", methods=["GET"])
    def health_root():
        return {"status": "ok", "service": "coachdesk sandbox"}, 200

    return app


class SandboxAdapter(BaseAdapter):
    """requests transport that dispatches into a Flask app in-process."""

    def __init__(self, app: Flask):
        super().__init__()
        self.app = app
        self.client = app.test_client()

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        url = urlsplit(request.url)
        body = request.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        result = self.client.open(
            url.path,
            method=request.method,
            headers=dict(request.headers),
            data=body,
            query_string=url.query,
        )

        resp = requests.Response()
        resp.status_code = result.status_code
        resp.reason = result.status.split(" ", 1)[1] if " " in result.status else ""
        resp.headers = CaseInsensitiveDict(result.headers)
        resp._content = result.get_data()
        resp.encoding = requests.utils.get_encoding_from_headers(resp.headers) or "utf-8"
        resp.url = request.url
        resp.request = request
        resp.connection = self
        return resp

    def close(self):
        pass


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    print(f"🚀 Starting coachdesk sandbox on port {config.SANDBOX_PORT} (prefix {API_PREFIX})")
    create_sandbox_app().run(host="0.0.0.0", port=config.SANDBOX_PORT)
