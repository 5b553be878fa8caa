"""
gateway.py – HTTP gateway to the institute API
────────────────────────────────────────────
Builds and sends one request, then runs the body through the
normalizer.

Request rules:
 • Accept: application/json on every call
 • Authorization: Bearer <token> when the credential store has one
   (skipped entirely for unauthenticated calls)
 • body encoding follows the payload type:
     MultipartBody   → multipart/form-data (boundary set by requests)
     UrlEncodedBody  → application/x-www-form-urlencoded
     str             → sent as-is
     anything else   → JSON
 • caller headers win over computed ones

Non-2xx responses raise ApiError. The gateway never writes to the
credential store.
────────────────────────────────────────────
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

import requests

from .credentials import CredentialStore
from .errors import ApiError
from .normalizer import parse_body
from . import config

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Body types
# ─────────────────────────────────────────────────────────────
class _FieldBody:
    """Ordered key/value pairs; duplicate keys are kept."""

    def __init__(self, fields: Optional[Iterable[Tuple[str, str]]] = None):
        self.fields: List[Tuple[str, str]] = list(fields or [])

    def append(self, key: str, value: str) -> None:
        self.fields.append((key, value))

    def get(self, key: str) -> Optional[str]:
        for k, v in self.fields:
            if k == key:
                return v
        return None

    def keys(self) -> List[str]:
        return [k for k, _ in self.fields]

    def __eq__(self, other) -> bool:
        return type(other) is type(self) and other.fields == self.fields

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.fields!r})"


class MultipartBody(_FieldBody):
    pass


class UrlEncodedBody(_FieldBody):
    def encode(self) -> str:
        return urlencode(self.fields)


# ─────────────────────────────────────────────────────────────
# Gateway
# ─────────────────────────────────────────────────────────────
class HttpGateway:
    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        token_key: str = config.AUTH_TOKEN_KEY,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token_key = token_key

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        authenticated: bool = True,
        error_fields: Tuple[str, ...] = (),
        error_fallback: Optional[str] = None,
    ) -> Any:
        """
        Send one request and return the parsed body.
        Raises ApiError on transport failure or a non-2xx status.
        """
        computed: Dict[str, str] = {"Accept": "application/json"}
        if authenticated:
            token = self.credentials.get(self.token_key)
            if token:
                computed["Authorization"] = f"Bearer {token}"

        explicit = dict(headers or {})
        kwargs: Dict[str, Any] = {}

        if isinstance(body, MultipartBody):
            # (None, value) parts carry no filename, so they arrive as plain fields
            kwargs["files"] = [(k, (None, v)) for k, v in body.fields]
        elif isinstance(body, UrlEncodedBody):
            kwargs["data"] = body.encode()
            computed["Content-Type"] = "application/x-www-form-urlencoded"
        elif isinstance(body, str):
            kwargs["data"] = body
        elif body is not None:
            kwargs["data"] = json.dumps(body)
            computed["Content-Type"] = "application/json"

        final_headers = {**computed, **explicit}
        url = f"{self.base_url}{endpoint}"
        log.info(f"[GATEWAY] {method} {endpoint} auth={'Authorization' in final_headers}")

        try:
            resp = self.session.request(
                method, url, headers=final_headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            log.error(f"❌ [GATEWAY] {method} {endpoint} transport failure: {e}")
            raise ApiError(f"Network error: {e}") from e

        data, parsed = parse_body(resp.text, resp.ok)

        if not resp.ok:
            message = self._error_message(
                data if parsed else None, resp.status_code, resp.reason,
                error_fields, error_fallback,
            )
            log.warning(f"⚠️ [GATEWAY] {method} {endpoint} → HTTP {resp.status_code}: {message}")
            raise ApiError(message, status_code=resp.status_code, payload=data if parsed else None)

        return data

    @staticmethod
    def _error_message(
        payload: Any,
        status_code: int,
        reason: Optional[str],
        error_fields: Tuple[str, ...],
        error_fallback: Optional[str],
    ) -> str:
        """
        Field error (call-site priority) > top-level message > fallback text
        > "HTTP <code>: <reason>".
        """
        http_text = f"HTTP {status_code}: {reason or ''}".rstrip()
        if not isinstance(payload, dict):
            return http_text
        errors = payload.get("errors")
        if isinstance(errors, dict) and error_fields:
            for field in error_fields:
                value = errors.get(field)
                if isinstance(value, (list, tuple)):
                    value = value[0] if value else None
                if value:
                    return str(value)
            return payload.get("message") or error_fallback or http_text
        return payload.get("message") or http_text
