# coachdesk/config.py
import os, logging

# ── Helpers ───────────────────────────────────────────────────────────────────
def _optional_float(env_val: str | None) -> float | None:
    """
    Parse an optional numeric env value; blank or junk means "not set".
    """
    if not env_val or not env_val.strip():
        return None
    try:
        return float(env_val)
    except ValueError:
        logging.getLogger(__name__).warning(f"[CONFIG] Ignoring non-numeric value {env_val!r}")
        return None


def _int_or_default(env_val: str | None, default: int) -> int:
    """Parse an integer env value; blank or junk falls back to `default`."""
    if not env_val or not env_val.strip():
        return default
    try:
        return int(env_val)
    except ValueError:
        logging.getLogger(__name__).warning(f"[CONFIG] Ignoring non-integer value {env_val!r}, using {default}")
        return default

# ── Institute API ────────────────────────────────────────────────────────────
API_BASE_URL    = os.environ.get("COACHDESK_API_BASE_URL", "http://localhost:8080/api/student-enquiry")

# No timeout unless explicitly configured (transport default)
REQUEST_TIMEOUT = _optional_float(os.environ.get("COACHDESK_REQUEST_TIMEOUT"))

# ── Credential store ─────────────────────────────────────────────────────────
CREDENTIALS_DB_URL = os.environ.get("COACHDESK_CREDENTIALS_DB_URL", "sqlite:///./coachdesk_credentials.db")
SECRET_KEY         = os.environ.get("COACHDESK_SECRET_KEY", "dev-secret-change-me")
AUTH_TOKEN_KEY     = "authToken"

# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("COACHDESK_LOG_LEVEL", "INFO").upper()

# ── Sandbox backend ──────────────────────────────────────────────────────────
SANDBOX_PORT = _int_or_default(os.environ.get("COACHDESK_SANDBOX_PORT"), 8080)

# ── Startup logging ──────────────────────────────────────────────────────────
logger = logging.getLogger(__name__)
logger.info(f"[CONFIG] Loaded API_BASE_URL={API_BASE_URL}, REQUEST_TIMEOUT={REQUEST_TIMEOUT}")
