"""App-wide configuration and environment settings."""

import os
from dotenv import load_dotenv

load_dotenv()  # Load from .env file


def get_flag(key, default="false"):
    """Read a boolean env var ("true"/"1" are truthy)."""
    return os.getenv(key, default).lower() in ("true", "1")


# Backend
API_URL = os.getenv("API_URL", "http://localhost:5000/api")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

# Demo mode
DEMO_MODE = get_flag("DEMO_MODE")
DEMO_TOKEN = "demo-token"
DEMO_LATENCY_MIN = float(os.getenv("DEMO_LATENCY_MIN", "0.3"))
DEMO_LATENCY_MAX = float(os.getenv("DEMO_LATENCY_MAX", "0.5"))
FIXTURE_STRICT = get_flag("FIXTURE_STRICT")

# Durable client storage
SESSION_FILE = os.getenv("SESSION_FILE", ".udhaar_session.json")

# Loan limits
MIN_LOAN_AMOUNT = float(os.getenv("MIN_LOAN_AMOUNT", "1000"))
MAX_LOAN_AMOUNT = float(os.getenv("MAX_LOAN_AMOUNT", "100000"))
MIN_DURATION_DAYS = int(os.getenv("MIN_DURATION_DAYS", "7"))
MAX_DURATION_DAYS = int(os.getenv("MAX_DURATION_DAYS", "90"))
DEFAULT_INTEREST_RATE = float(os.getenv("DEFAULT_INTEREST_RATE", "2"))
MAX_INTEREST_RATE = float(os.getenv("MAX_INTEREST_RATE", "5"))
OVERDUE_GRACE_DAYS = int(os.getenv("OVERDUE_GRACE_DAYS", "5"))

# Accounts
MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
VERIFICATION_CODE_LENGTH = 6

# Polling (notifications, verification status)
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "30"))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
