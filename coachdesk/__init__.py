"""
coachdesk – Coaching institute back-office client
────────────────────────────────────────────────────────────
API access layer and form controllers for the institute's
enquiry / registration / fee-collection backend.

create_client() wires one of each and hands them out:
 • HttpGateway      → requests + response normalisation
 • InstituteApi     → declarative domain operations
 • AuthSession      → token lifecycle (login / logout / OTP)
 • CredentialStore  → durable token storage
────────────────────────────────────────────────────────────
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from . import config
from .auth import AuthSession
from .credentials import CredentialStore, MemoryCredentialStore, SqlCredentialStore
from .errors import ApiError
from .forms import (
    EnquiryForm,
    FeeEntryForm,
    ForgotPasswordForm,
    FormState,
    LoginForm,
    RegistrationForm,
    ResetPasswordForm,
    SubmitResult,
)
from .gateway import HttpGateway
from .operations import InstituteApi

SANDBOX_BASE_URL = "http://sandbox.local/api/student-enquiry"


@dataclass
class Client:
    gateway: HttpGateway
    api: InstituteApi
    auth: AuthSession
    credentials: CredentialStore

    # Form factories, so screens never build their own API objects
    def enquiry_form(self, record=None) -> EnquiryForm:
        return EnquiryForm(self.api, record=record)

    def registration_form(self, record=None, enquiry=None) -> RegistrationForm:
        return RegistrationForm(self.api, record=record, enquiry=enquiry)

    def fee_entry_form(self) -> FeeEntryForm:
        return FeeEntryForm(self.api)

    def login_form(self) -> LoginForm:
        return LoginForm(self.auth)

    def forgot_password_form(self) -> ForgotPasswordForm:
        return ForgotPasswordForm(self.auth)

    def reset_password_form(self, email: str = "") -> ResetPasswordForm:
        return ResetPasswordForm(self.auth, email=email)


# ─────────────────────────────────────────────────────────────
# Client factory
# ─────────────────────────────────────────────────────────────
def create_client(
    base_url: Optional[str] = None,
    credentials: Optional[CredentialStore] = None,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    sandbox: bool = False,
    configure_logging: bool = True,
) -> Client:
    """Create and wire the API client."""
    if configure_logging:
        logging.basicConfig(
            level=config.LOG_LEVEL,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )

    session = session or requests.Session()
    if sandbox:
        from .sandbox import SandboxAdapter, create_sandbox_app
        base_url = base_url or SANDBOX_BASE_URL
        session.mount("http://sandbox.local", SandboxAdapter(create_sandbox_app()))
        credentials = credentials or MemoryCredentialStore()

    if credentials is None:
        credentials = SqlCredentialStore(config.CREDENTIALS_DB_URL, config.SECRET_KEY)

    gateway = HttpGateway(
        base_url or config.API_BASE_URL,
        credentials,
        session=session,
        timeout=timeout if timeout is not None else config.REQUEST_TIMEOUT,
    )
    api = InstituteApi(gateway)
    auth = AuthSession(api, credentials)
    return Client(gateway=gateway, api=api, auth=auth, credentials=credentials)


__all__ = [
    "ApiError",
    "Client",
    "EnquiryForm",
    "FeeEntryForm",
    "ForgotPasswordForm",
    "FormState",
    "LoginForm",
    "RegistrationForm",
    "ResetPasswordForm",
    "SubmitResult",
    "create_client",
]
