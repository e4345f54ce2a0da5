import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name, default):
    raw = os.getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Stub auth: every request acts as this user
DEMO_USER_ID = os.getenv("DEMO_USER_ID", "demo-user-1")
DEMO_USER_EMAIL = os.getenv("DEMO_USER_EMAIL", "demo@example.com")
DEMO_USER_NAME = "Demo User"

SECRET_KEY = os.getenv("SECRET_KEY") or os.urandom(24).hex()

API_PORT = _int_env("PORT", _int_env("API_PORT", 8081))

# Enforced by the HTTP/CLI boundary, not the repository
BULK_IMPORT_MAX_ROWS = _int_env("BULK_IMPORT_MAX_ROWS", 200)

# Fixed-window limits per operation class
RATE_LIMITS = {
    "create": {
        "window_seconds": 60,
        "max_requests": 50,
    },
    "update": {
        "window_seconds": 60,
        "max_requests": 20,
    },
    "csv_import": {
        "window_seconds": 60,
        "max_requests": 5,
    },
}
