"""
Listing helpers: search filters and payment-history name join
"""
import pytest

from coachdesk.listings import (
    filter_enquiries,
    filter_registrations,
    is_registered,
    payment_history,
    payment_student_name,
    student_name_index,
)

ENQUIRIES = [
    {"id": 1, "student_name": "Ravi Kumar", "contact_number": "9123456780", "register_status": "1"},
    {"id": 2, "student_name": "Asha Rao", "contact_number": "9876543210", "register_status": "0"},
    {"id": 3, "student_name": None, "contact_number": None},
]

REGISTRATIONS = [
    {"registration_no": "REG001", "student_name": "Priya Sharma", "contact_no": "9988776655"},
    {"registration_no": "reg002 ", "student_name": "Kiran Joshi", "contact_no": "9000012345"},
]


class TestFilters:

    def test_blank_query_returns_everything(self):
        assert filter_enquiries(ENQUIRIES, "  ") == ENQUIRIES

    def test_enquiry_name_is_case_insensitive(self):
        assert [e["id"] for e in filter_enquiries(ENQUIRIES, "ASHA")] == [2]

    def test_enquiry_contact_substring(self):
        assert [e["id"] for e in filter_enquiries(ENQUIRIES, "45678")] == [1]

    def test_registration_number_and_contact(self):
        assert [r["student_name"] for r in filter_registrations(REGISTRATIONS, "reg001")] == ["Priya Sharma"]
        assert [r["student_name"] for r in filter_registrations(REGISTRATIONS, "0000123")] == ["Kiran Joshi"]

    def test_registered_flag(self):
        assert is_registered(ENQUIRIES[0])
        assert not is_registered(ENQUIRIES[1])
        assert not is_registered({"register_status": 1.0})


class TestPaymentNames:

    def test_index_normalises_keys(self):
        assert student_name_index(REGISTRATIONS) == {"REG001": "Priya Sharma", "REG002": "Kiran Joshi"}

    @pytest.mark.parametrize("payment, expected", [
        ({"registration_no": " reg002"}, "Kiran Joshi"),
        ({"registration_no": "REG001", "student_name": "Given"}, "Given"),
        ({"registration_no": "REG999"}, "N/A"),
        ({}, "N/A"),
    ])
    def test_resolution(self, payment, expected):
        index = student_name_index(REGISTRATIONS)
        assert payment_student_name(payment, index) == expected


class _HistoryApi:
    def __init__(self, envelope):
        self.envelope = envelope
        self.registrations_fetched = False

    def get_payment_history(self):
        return self.envelope

    def get_registrations(self):
        self.registrations_fetched = True
        return REGISTRATIONS


class TestPaymentHistory:

    def test_joins_names(self):
        api = _HistoryApi({"status": True, "data": [
            {"id": 1, "registration_no": "REG001", "paid_fees": "5000"},
            {"id": 2, "registration_no": "REG404", "paid_fees": "100"},
        ]})
        rows = payment_history(api)
        assert [r["student_name"] for r in rows] == ["Priya Sharma", "N/A"]
        assert rows[0]["paid_fees"] == "5000"

    @pytest.mark.parametrize("envelope", [
        {"status": False, "data": [{"registration_no": "REG001"}]},
        {"data": [{"registration_no": "REG001"}]},
        {"message": "Server returned invalid JSON: <html>"},
    ])
    def test_non_success_is_empty(self, envelope):
        api = _HistoryApi(envelope)
        assert payment_history(api) == []
        assert not api.registrations_fetched

    def test_against_sandbox(self, logged_in):
        logged_in.api.create_fee_entry({
            "registration_no": "REG001", "date": "2026-10-18", "paid_fees": "1000",
            "paid_through": "Cash", "received_by": "Admin",
        })
        rows = payment_history(logged_in.api)
        assert len(rows) == 1
        assert rows[0]["student_name"] == "Priya Sharma"
        assert rows[0]["fee_date"] == "2026-10-18"
