import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

APP_NAME = "EasyCal"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./easycal.db")

# GHL / LeadConnector
GHL_API_BASE_URL = os.getenv("GHL_API_BASE_URL", "https://services.leadconnectorhq.com")
GHL_MARKETPLACE_URL = os.getenv("GHL_MARKETPLACE_URL", "https://marketplace.gohighlevel.com")
GHL_API_VERSION = "2021-07-28"
# Calendar detail GET/PUT are served by the older API revision
GHL_CALENDAR_API_VERSION = "2021-04-15"

HL_CLIENT_ID = os.getenv("HL_CLIENT_ID", "")
HL_CLIENT_SECRET = os.getenv("HL_CLIENT_SECRET", "")

# Frontend base URL for post-install redirects
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")
OAUTH_REDIRECT_URL = os.getenv("OAUTH_REDIRECT_URL", "http://localhost:8000/auth/callback")
OAUTH_STATE_TTL_SECONDS = int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600"))

# Expired access tokens stay refreshable; rows are only purged after this many days
TOKEN_RETENTION_DAYS = int(os.getenv("TOKEN_RETENTION_DAYS", "30"))

# Token encryption - CRITICAL: No default key in production
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")
if not ENCRYPTION_KEY:
    import warnings

    warnings.warn(
        "ENCRYPTION_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    ENCRYPTION_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

DEFAULT_TIMEZONE = "America/New_York"

# Bulk job rate limiting against the GHL API
JOB_MAX_CONCURRENT = int(os.getenv("JOB_MAX_CONCURRENT", "3"))
JOB_MIN_TIME_MS = int(os.getenv("JOB_MIN_TIME_MS", "1000"))
JOB_RESERVOIR = int(os.getenv("JOB_RESERVOIR", "10"))
JOB_RESERVOIR_REFRESH_SECONDS = int(os.getenv("JOB_RESERVOIR_REFRESH_SECONDS", "60"))

# Per-call limits for interactive endpoints (import, bulk delete)
GHL_MIN_TIME_MS = int(os.getenv("GHL_MIN_TIME_MS", "100"))
# Calls per minute; unset means unlimited
GHL_RESERVOIR = int(os.getenv("GHL_RESERVOIR")) if os.getenv("GHL_RESERVOIR") else None

# Pause before verifying an ambiguous delete response
DELETE_VERIFY_DELAY_SECONDS = float(os.getenv("DELETE_VERIFY_DELAY_SECONDS", "0.5"))
