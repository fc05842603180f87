# storefront/config.py
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from dotenv import load_dotenv
from flask import current_app

ROOT_DIR = Path(__file__).resolve().parent.parent


def load_env(base_dir: Path = ROOT_DIR):
    # .env first, then .env.<APP_ENV> on top of it
    load_dotenv(base_dir / ".env")
    app_env = os.getenv("APP_ENV", "").strip()
    if app_env:
        variant = base_dir / f".env.{app_env}"
        if variant.exists():
            load_dotenv(variant, override=True)


def _bool(val) -> bool:
    if isinstance(val, bool):
        return val
    return str(val or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    DATABASE_URL: str = "sqlite:///storefront.db"
    JWT_SECRET: str = "your-secret-key-change-in-production"
    TOKEN_TTL_DAYS: int = 7
    COOKIE_SECURE: bool = False
    CLIENT_URL: str = "http://localhost:3000"
    API_BASE_URL: str = ""
    UPLOAD_DIR: str = str(ROOT_DIR / "uploads")
    MAX_CONTENT_MB: int = 5
    SITE_NAME: str = "Nuthu Archive"
    DEFAULT_CURRENCY: str = "kes"

    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_ALLOWED_COUNTRIES: str = "ALL"
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"

    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    MAIL_FROM: str = ""

    SLACK_WEBHOOK_URL: str = ""
    ALERT_EMAIL_TO: str = ""

    VERIFICATION_TTL_MINUTES: int = 10
    LOG_FILE: str = "app.log"
    DEBUG_ROUTES: bool = False
    PORT: int = 4000
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        # send_from_directory resolves relative paths against the app root, not the cwd
        self.UPLOAD_DIR = os.path.abspath(self.UPLOAD_DIR)

    @classmethod
    def from_env(cls, overrides=None):
        """Read every known setting from the environment, then apply overrides."""
        overrides = dict(overrides or {})
        values = {}
        for f in fields(cls):
            if f.name == "extra":
                continue
            if f.name in overrides:
                raw = overrides.pop(f.name)
            else:
                raw = os.getenv(f.name)
                if raw is None:
                    continue
            if f.type in (int, "int"):
                raw = int(raw)
            elif f.type in (bool, "bool"):
                raw = _bool(raw)
            values[f.name] = raw
        return cls(extra=overrides, **values)

    @property
    def mail_sender(self) -> str:
        return self.MAIL_FROM or self.SMTP_USER or "noreply@localhost"


def get_settings() -> Settings:
    return current_app.extensions["storefront.settings"]
