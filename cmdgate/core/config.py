"""
Runtime configuration for the command gateway.
Settings come from the environment (a local .env is loaded first); the charge amount and
the approval threshold are fixed constants.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/cmdgate.db")
DB_BUSY_TIMEOUT_SEC = float(os.getenv("DB_BUSY_TIMEOUT_SEC", "10"))

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS - FRONTEND_URL kept as an alias for single-origin deployments
CORS_ORIGINS = os.getenv("CORS_ORIGINS", os.getenv("FRONTEND_URL", "*"))

# Outbound mail for approver notifications (disabled while SMTP_PASSWORD is unset)
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SENDER_EMAIL = os.getenv("SENDER_EMAIL", "noreply@cmdgate.local")
SMTP_USER = os.getenv("SMTP_USER", SENDER_EMAIL)
SMTP_TIMEOUT_SEC = float(os.getenv("SMTP_TIMEOUT_SEC", "10"))

# Fixed business constants
COMMAND_COST = 10
APPROVAL_THRESHOLD = 2
INITIAL_CREDITS = 100
HISTORY_LIMIT = 100
AUDIT_LOG_LIMIT = 500

API_KEY_HEADER = "X-API-Key"
API_KEY_PREFIX = "sk_"
MIN_USERNAME_LENGTH = 3

VERSION = "1.0.0"


def get_db_path() -> str:
    """Current database path; re-read so tests can repoint it."""
    return os.getenv("DB_PATH", DB_PATH)


def debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_smtp_password():
    """SMTP password, or None when mail delivery is not configured."""
    password = os.getenv("SMTP_PASSWORD", "")
    return password if password.strip() else None


def get_cors_origins():
    """Allowed CORS origins as a list."""
    return [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)
