"""
Domain operations: descriptors, payload shapes, status polymorphism
"""
import json
from datetime import date, datetime
from decimal import Decimal
from urllib.parse import parse_qsl

import pytest

from coachdesk.errors import ApiError
from coachdesk.models import LookupItem, PaymentMethod
from coachdesk.operations import OPERATIONS, form_value, status_ok

from conftest import STATIC_BASE_URL, body_text


def multipart_fields(prepared):
    """(name, value) pairs of a simple multipart body, in order."""
    text = body_text(prepared)
    boundary = prepared.headers["Content-Type"].split("boundary=")[1]
    out = []
    for part in text.split(f"--{boundary}")[1:-1]:
        head, _, value = part.partition("\r\n\r\n")
        name = head.split('name="')[1].split('"')[0]
        out.append((name, value[:-2]))
    return out


class TestStatus:

    @pytest.mark.parametrize("raw", [True, 200, 201, "true"])
    def test_allow_listed_values_are_success(self, raw):
        assert status_ok({"status": raw}) is True

    @pytest.mark.parametrize("raw", [False, 1, 0, "200", "success", "TRUE", None, "", 500])
    def test_everything_else_is_not(self, raw):
        assert status_ok({"status": raw}) is False

    def test_missing_status_or_non_dict(self):
        assert status_ok({"message": "ok"}) is False
        assert status_ok([1, 2]) is False
        assert status_ok(None) is False


class TestFormValue:

    def test_coercions(self):
        assert form_value(None) == ""
        assert form_value(True) == "true"
        assert form_value(date(2026, 10, 18)) == "2026-10-18"
        assert form_value(datetime(2026, 10, 18, 14, 30)) == "2026-10-18"
        assert form_value(5000.0) == "5000"
        assert form_value(12.5) == "12.5"
        assert form_value(Decimal("3000.00")) == "3000"
        assert form_value(PaymentMethod.net_banking) == "Net Banking"
        assert form_value(42) == "42"


class TestPayloadShapes:

    def test_login_is_unauthenticated_multipart(self, static_api, static_adapter, store):
        store.set("authToken", "stale")
        static_adapter.body = '{"status": true, "token": "t"}'
        static_api.login("a@b.co", "secret1")
        req = static_adapter.last
        assert req.method == "POST"
        assert req.url == f"{STATIC_BASE_URL}/login"
        assert "Authorization" not in req.headers
        assert multipart_fields(req) == [("email", "a@b.co"), ("password", "secret1"), ("app", "true")]

    def test_create_enquiry_appends_every_key_then_app(self, static_api, static_adapter, store):
        store.set("authToken", "tok")
        static_api.create_enquiry({"studentName": "Asha Rao", "whatsappNumber": None, "followUp1": ""})
        req = static_adapter.last
        assert req.method == "POST"
        assert req.url == f"{STATIC_BASE_URL}/enquiry/true"
        assert req.headers["Authorization"] == "Bearer tok"
        assert multipart_fields(req) == [
            ("studentName", "Asha Rao"), ("whatsappNumber", ""), ("followUp1", ""), ("app", "true"),
        ]

    def test_update_enquiry_duplicates_id(self, static_api, static_adapter):
        static_api.update_enquiry(7, {"place": "Kota", "remarks": None})
        req = static_adapter.last
        assert req.method == "PUT"
        assert req.url == f"{STATIC_BASE_URL}/enquiry/7"
        assert req.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert parse_qsl(body_text(req), keep_blank_values=True) == [
            ("place", "Kota"), ("remarks", ""), ("id", "7"), ("app", "true"),
        ]

    def test_update_registration_path(self, static_api, static_adapter):
        static_api.update_registration("12", {"student_name": "Priya"})
        assert static_adapter.last.url == f"{STATIC_BASE_URL}/registration/12"
        assert ("id", "12") in parse_qsl(body_text(static_adapter.last))

    def test_fee_entry_is_put_with_fixed_mapping(self, static_api, static_adapter):
        static_adapter.body = '{"status": "true"}'
        static_api.create_fee_entry({
            "registration_no": "REG001",
            "date": date(2026, 10, 18),
            "paid_fees": "1500",
            "paid_through": "UPI",
            "received_by": "Admin",
            "student_name": "ignored",
        })
        req = static_adapter.last
        assert req.method == "PUT"
        assert req.url == f"{STATIC_BASE_URL}/fee-payments"
        assert parse_qsl(body_text(req)) == [
            ("app", "true"), ("registration_no", "REG001"), ("fee_date", "2026-10-18"),
            ("paid_fees", "1500"), ("paid_through", "UPI"), ("received_by", "Admin"),
        ]

    def test_fee_entry_keeps_string_date(self, static_api, static_adapter):
        static_api.create_fee_entry({"registration_no": "REG001", "date": "2026-01-05"})
        assert ("fee_date", "2026-01-05") in parse_qsl(body_text(static_adapter.last), keep_blank_values=True)

    def test_logout_is_authenticated_json(self, static_api, static_adapter, store):
        store.set("authToken", "tok")
        static_api.logout()
        req = static_adapter.last
        assert req.method == "POST"
        assert req.url == f"{STATIC_BASE_URL}/logout"
        assert req.headers["Content-Type"] == "application/json"
        assert req.headers["Authorization"] == "Bearer tok"
        assert req.body is None

    def test_registration_detail_carries_app_query(self, static_api, static_adapter):
        static_api.get_registration(5)
        assert static_adapter.last.url == f"{STATIC_BASE_URL}/registrations/5?app=true"

    def test_id_required_for_templated_paths(self, static_api):
        with pytest.raises(ValueError):
            static_api.update_enquiry(None, {})

    @pytest.mark.parametrize("name", sorted(OPERATIONS))
    def test_every_descriptor_is_consistent(self, name):
        op = OPERATIONS[name]
        assert op.method in ("GET", "POST", "PUT")
        assert op.path.startswith("/")
        if op.method == "GET":
            assert op.encoding == "none"


class TestStatusPolicies:

    def test_login_requires_success_status(self, static_api, static_adapter):
        static_adapter.body = '{"status": false, "message": "Account locked"}'
        with pytest.raises(ApiError) as exc:
            static_api.login("a@b.co", "secret1")
        assert exc.value.message == "Account locked"

    @pytest.mark.parametrize("raw", [True, 200, 201, "true"])
    def test_forgot_password_accepts_all_success_forms(self, static_api, static_adapter, raw):
        static_adapter.body = json.dumps({"status": raw, "message": "OTP sent"})
        assert static_api.forgot_password("a@b.co")["message"] == "OTP sent"

    def test_present_false_status_fails_write(self, static_api, static_adapter):
        static_adapter.body = '{"status": false, "message": "Duplicate contact number"}'
        with pytest.raises(ApiError) as exc:
            static_api.create_enquiry({"studentName": "x"})
        assert exc.value.message == "Duplicate contact number"
        assert exc.value.status_code is None

    def test_unrecognised_status_is_flagged_not_coerced(self, static_api, static_adapter):
        static_adapter.body = '{"status": "success"}'
        with pytest.raises(ApiError):
            static_api.create_enquiry({"studentName": "x"})

    def test_missing_status_is_fine_for_if_present(self, static_api, static_adapter):
        static_adapter.body = "<html>saved</html>"
        data = static_api.create_enquiry({"studentName": "x"})
        assert data["message"].startswith("Server returned invalid JSON")

    def test_history_ignores_status(self, static_api, static_adapter):
        static_adapter.body = '{"status": false, "data": []}'
        assert static_api.get_payment_history() == {"status": False, "data": []}


class TestLookups:

    def test_courses_to_lookup_items(self, static_api, static_adapter):
        static_adapter.body = json.dumps({"status": True, "data": [
            {"id": 1, "course_name": "UPSC"}, "RAS", {"label": "SSC", "value": "ssc"},
        ]})
        assert static_api.get_courses() == [
            LookupItem("UPSC", "UPSC"), LookupItem("RAS", "RAS"), LookupItem("SSC", "ssc"),
        ]

    def test_franchisees(self, static_api, static_adapter):
        static_adapter.body = json.dumps({"data": [{"id": 2, "franchisee_name": "KS Academy"}]})
        assert static_api.get_franchisees() == [LookupItem("KS Academy", "KS Academy")]

    def test_fee_registration_numbers_carry_snapshot(self, static_api, static_adapter):
        static_adapter.body = json.dumps({"status": True, "data": [
            {"registration_no": "REG001", "student_name": "Priya", "course": "SSC",
             "total_fees": "30000", "due_fees": "12000"},
            {"registration_no": "REG002", "student_name": "Ravi", "total_fees": 45000, "paid_fees": 5000},
        ]})
        first, second = static_api.get_fee_registration_numbers()
        assert first.label == "REG001 - Priya"
        assert first.total_fees == Decimal("30000")
        assert first.due_fees == Decimal("12000")
        assert second.due_fees == Decimal("40000")

    def test_registration_number_from_data(self, static_api, static_adapter):
        static_adapter.body = '{"status": true, "data": "REG007"}'
        assert static_api.get_registration_number() == "REG007"
