"""
Shared fixtures: canned-response transport, a recording sandbox
transport and a fake API for controller tests.
"""
import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from coachdesk import SANDBOX_BASE_URL, create_client
from coachdesk.credentials import MemoryCredentialStore
from coachdesk.errors import ApiError
from coachdesk.gateway import HttpGateway
from coachdesk.operations import InstituteApi
from coachdesk.sandbox import SandboxAdapter, create_sandbox_app

STATIC_BASE_URL = "http://api.test/api/student-enquiry"
ADMIN_EMAIL = "admin@coachdesk.test"
ADMIN_PASSWORD = "secret123"


def body_text(prepared) -> str:
    body = prepared.body
    if body is None:
        return ""
    return body.decode("utf-8") if isinstance(body, bytes) else body


class StaticAdapter(BaseAdapter):
    """Answers every request with the same canned response and records it."""

    def __init__(self, status=200, body="", reason="OK", headers=None, exc=None):
        super().__init__()
        self.status = status
        self.body = body
        self.reason = reason
        self.headers = headers or {"Content-Type": "application/json"}
        self.exc = exc
        self.requests = []

    def send(self, request, **kwargs):
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        resp = requests.Response()
        resp.status_code = self.status
        resp.reason = self.reason
        resp.headers = CaseInsensitiveDict(self.headers)
        resp._content = self.body.encode("utf-8")
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        return resp

    def close(self):
        pass

    @property
    def last(self):
        return self.requests[-1]


class RecordingSandboxAdapter(SandboxAdapter):
    def __init__(self, app):
        super().__init__(app)
        self.requests = []

    def send(self, request, **kwargs):
        self.requests.append(request)
        return super().send(request, **kwargs)


class CountingStore(MemoryCredentialStore):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.reads = 0
        self.writes = 0

    def get(self, key):
        self.reads += 1
        return super().get(key)

    def set(self, key, value):
        self.writes += 1
        super().set(key, value)

    def delete(self, key):
        self.writes += 1
        super().delete(key)


class FakeApi:
    """Records calls; returns `response` or raises `error` for write operations."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else {"status": True}
        self.error = error
        self.calls = []
        self.hook = None
        self.registration_number = "REG042"
        self.fee_lookups = []

    def _write(self, name, *args):
        self.calls.append((name, args))
        if self.hook:
            self.hook()
        if self.error is not None:
            raise self.error
        return self.response

    def create_enquiry(self, payload):
        return self._write("create_enquiry", payload)

    def update_enquiry(self, record_id, payload):
        return self._write("update_enquiry", record_id, payload)

    def create_registration(self, payload):
        return self._write("create_registration", payload)

    def update_registration(self, record_id, payload):
        return self._write("update_registration", record_id, payload)

    def create_fee_entry(self, payload):
        return self._write("create_fee_entry", payload)

    def get_registration_number(self):
        self.calls.append(("get_registration_number", ()))
        if self.error is not None:
            raise self.error
        return self.registration_number

    def get_fee_registration_numbers(self):
        self.calls.append(("get_fee_registration_numbers", ()))
        return list(self.fee_lookups)


# ─────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────
@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def static_adapter():
    return StaticAdapter(body='{"status": true, "data": []}')


@pytest.fixture
def static_api(static_adapter, store):
    session = requests.Session()
    session.mount("http://api.test", static_adapter)
    return InstituteApi(HttpGateway(STATIC_BASE_URL, store, session=session))


@pytest.fixture
def sandbox_app():
    return create_sandbox_app(secret_key="test-secret")


@pytest.fixture
def sandbox_adapter(sandbox_app):
    return RecordingSandboxAdapter(sandbox_app)


@pytest.fixture
def client(sandbox_adapter):
    session = requests.Session()
    session.mount("http://sandbox.local", sandbox_adapter)
    return create_client(
        base_url=SANDBOX_BASE_URL,
        credentials=MemoryCredentialStore(),
        session=session,
        configure_logging=False,
    )


@pytest.fixture
def logged_in(client):
    client.auth.login(ADMIN_EMAIL, ADMIN_PASSWORD)
    return client


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def api_error():
    return ApiError("Server exploded", status_code=500, payload={"message": "Server exploded"})
