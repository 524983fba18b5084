import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload (and not get
# stuck on old environment variables).
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_bool(name: str, default: str = "1") -> bool:
    v = (os.getenv(name, default) or default).strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
# Use an absolute path so it works regardless of current working directory.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# Auth / JWT
# NOTE: keep a default for local dev so the server can boot even if SECRET_KEY isn't set.
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")

# Public CV links in application emails point at the frontend viewer: {FRONTEND_URL}/cv/{cv_id}
FRONTEND_URL = (os.getenv("FRONTEND_URL") or "http://localhost:5173").rstrip("/")

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()

# -------------------- Application emails --------------------
# Hard cap on outbound application emails per student per (server-local) calendar day.
DAILY_EMAIL_LIMIT = 10

# When disabled, every dispatch fails, so nothing is recorded as submitted.
EMAIL_ENABLED = _env_bool("EMAIL_ENABLED", "1")
EMAIL_PROVIDER = (os.getenv("EMAIL_PROVIDER") or "smtp").strip().lower()  # smtp | brevo
# Upper bound for a single dispatch; the submit request blocks on it.
EMAIL_TIMEOUT_S = float(os.getenv("EMAIL_TIMEOUT_S", "15") or "15")

SMTP_HOST = (os.getenv("SMTP_HOST") or "").strip()
SMTP_PORT = int((os.getenv("SMTP_PORT") or "587").strip())
SMTP_USER = (os.getenv("SMTP_USER") or "").strip()
SMTP_PASS = (os.getenv("SMTP_PASS") or "").strip()
SMTP_FROM = (os.getenv("SMTP_FROM") or SMTP_USER).strip()
SMTP_TLS = _env_bool("SMTP_TLS", "1")

BREVO_API_KEY = (os.getenv("BREVO_API_KEY") or "").strip()
BREVO_BASE_URL = (os.getenv("BREVO_BASE_URL") or "https://api.brevo.com").rstrip("/")
BREVO_SENDER_EMAIL = (os.getenv("BREVO_SENDER_EMAIL") or "").strip()
BREVO_SENDER_NAME = (os.getenv("BREVO_SENDER_NAME") or "OJTech").strip()

# Cover letters are dated in the placement office's timezone.
COVER_LETTER_TIMEZONE = os.getenv("COVER_LETTER_TIMEZONE", "Asia/Manila")
