# backend/bufet/config.py
from __future__ import annotations
import os


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app by default; PostgreSQL in production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///bufet.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Login: empty list means any domain may request a code
    ALLOWED_EMAIL_DOMAINS = _env_list("ALLOWED_EMAIL_DOMAINS")
    # Email suffixes (e.g. "@office.example.com" or a full address) that get the office_assistant role
    OFFICE_ASSISTANT_EMAILS = _env_list("OFFICE_ASSISTANT_EMAILS")
    LOGIN_CODE_TTL_MINUTES = int(os.environ.get("LOGIN_CODE_TTL_MINUTES", "10"))
    LOGIN_CODE_BCRYPT_ROUNDS = int(os.environ.get("LOGIN_CODE_BCRYPT_ROUNDS", "10"))
    SESSION_TTL_DAYS = int(os.environ.get("SESSION_TTL_DAYS", "365"))

    # Notifications: console | smtp | http
    MAIL_MODE = os.environ.get("MAIL_MODE", "console")
    MAIL_FROM = os.environ.get("MAIL_FROM", "noreply@bufet.local")
    SMTP_HOST = os.environ.get("SMTP_HOST", "")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USERNAME = os.environ.get("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
    MAIL_RELAY_URL = os.environ.get("MAIL_RELAY_URL", "")
    MAIL_RELAY_API_KEY = os.environ.get("MAIL_RELAY_API_KEY", "")

    # Users below this balance get the monthly reminder (-5.00 EUR)
    DEBT_REMINDER_THRESHOLD_CENTS = int(os.environ.get("DEBT_REMINDER_THRESHOLD_CENTS", "-500"))

    HISTORY_PAGE_SIZE = 50
