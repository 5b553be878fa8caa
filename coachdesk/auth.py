"""
auth.py – Login session lifecycle
────────────────────────────────────────────
Owns the bearer token's lifecycle on the device:
 • login   → token stored only on a success envelope with a token
 • logout  → server told (best effort), token always removed
 • forgot / reset password (OTP flow)

The gateway reads the token; only this module writes it.
────────────────────────────────────────────
"""

import logging

from .credentials import CredentialStore
from .errors import ApiError
from .operations import InstituteApi, status_ok
from . import config

log = logging.getLogger(__name__)


class AuthSession:
    def __init__(self, api: InstituteApi, credentials: CredentialStore, token_key: str = config.AUTH_TOKEN_KEY):
        self.api = api
        self.credentials = credentials
        self.token_key = token_key

    def is_authenticated(self) -> bool:
        return bool(self.credentials.get(self.token_key))

    def login(self, email: str, password: str) -> dict:
        response = self.api.login(email, password)
        token = response.get("token") if isinstance(response, dict) else None
        if not (status_ok(response) and token):
            log.warning(f"[AUTH] Login for {email} returned no usable token")
            raise ApiError("Invalid credentials or server error", payload=response)
        self.credentials.set(self.token_key, str(token))
        log.info(f"[AUTH] Logged in {email}")
        return response

    def logout(self) -> None:
        """Always ends with the token removed, whatever the server says."""
        try:
            self.api.logout()
        except ApiError as e:
            log.warning(f"⚠️ [AUTH] Logout call failed, clearing token anyway: {e.message}")
        finally:
            self.credentials.delete(self.token_key)
        log.info("[AUTH] Logged out")

    def forgot_password(self, email: str) -> dict:
        return self.api.forgot_password(email)

    def resend_otp(self, email: str) -> dict:
        return self.api.forgot_password(email)

    def reset_password(self, otp: str, password: str) -> dict:
        return self.api.reset_password(otp, password)
