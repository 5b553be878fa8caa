"""
errors.py – Institute API error type
────────────────────────────────────────────
One exception for every failure the API layer can surface:
transport failures, non-2xx responses and 2xx envelopes whose
`status` is not a success value. Callers tell them apart by
message (and status_code), never by exception class.
────────────────────────────────────────────
"""

from typing import Any, Dict, Optional


class ApiError(Exception):
    """Raised by the gateway and domain operations."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def field_errors(self) -> Dict[str, str]:
        """
        The envelope's `errors` map, flattened to {field: first message}.
        Empty when the payload carries no field errors.
        """
        if not isinstance(self.payload, dict):
            return {}
        errors = self.payload.get("errors")
        if not isinstance(errors, dict):
            return {}
        out: Dict[str, str] = {}
        for field, value in errors.items():
            if isinstance(value, (list, tuple)):
                value = value[0] if value else ""
            if value:
                out[str(field)] = str(value)
        return out

    def __repr__(self) -> str:
        return f"ApiError({self.message!r}, status_code={self.status_code})"
