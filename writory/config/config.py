# writory/config/config.py
# Canonical Writory configuration (env-first, production-safe)

from __future__ import annotations

import os
from datetime import timedelta
from typing import Optional


# ----------------------------
# Env helpers
# ----------------------------
_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n"}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def _bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    s = v.strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def _int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        return default


def _csv(name: str, default: str = "") -> list[str]:
    raw = _env(name, default) or ""
    return [p.strip().lower() for p in raw.split(",") if p.strip()]


def _clean_base_url(v: Optional[str]) -> str:
    return (v or "").strip().rstrip("/")


# ----------------------------
# Config classes
# ----------------------------
class BaseConfig:
    """
    Env-first config:
    - all important settings can be overridden via environment variables
    - safe defaults for local dev
    """

    ENV = (_env("APP_ENV") or _env("ENV") or _env("FLASK_ENV") or "base").strip().lower()

    DEBUG = _bool("FLASK_DEBUG", False)
    TESTING = _bool("TESTING", False)
    LOG_LEVEL = _env("LOG_LEVEL", "INFO")
    SENTRY_DSN = _env("SENTRY_DSN", "")
    SENTRY_TRACES_SAMPLE_RATE = float(_env("SENTRY_TRACES_SAMPLE_RATE", "0.0") or 0.0)

    # Security
    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")
    WTF_CSRF_ENABLED = _bool("WTF_CSRF_ENABLED", False)

    # URLs / scheme
    PUBLIC_BASE_URL = _clean_base_url(_env("PUBLIC_BASE_URL", ""))
    PREFERRED_URL_SCHEME = _env("PREFERRED_URL_SCHEME", "https")
    TRUST_PROXY = _bool("TRUST_PROXY", False)
    CORS_ORIGINS = _env("CORS_ORIGINS", "*")

    PERMANENT_SESSION_LIFETIME = timedelta(days=_int("SESSION_DAYS", 31))

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("DATABASE_URL", _env("SQLALCHEMY_DATABASE_URI", "sqlite:///writory-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    AUTO_CREATE_SQLITE = _bool("AUTO_CREATE_SQLITE", True)

    # Contest
    BRAND_NAME = _env("BRAND_NAME", "Writory")
    CURRENCY = (_env("CURRENCY", "inr") or "inr").lower()
    ADMIN_EMAILS = _csv("ADMIN_EMAILS")
    DEMO_MODE = _bool("DEMO_MODE", False)

    # Uploads (10 MB per file; request cap leaves room for a bulk entry)
    MAX_UPLOAD_BYTES = _int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    MAX_CONTENT_LENGTH = _int("MAX_CONTENT_LENGTH", 80 * 1024 * 1024)

    # Stripe
    STRIPE_SECRET_KEY = _env("STRIPE_SECRET_KEY", "")
    STRIPE_PUBLISHABLE_KEY = _env("STRIPE_PUBLISHABLE_KEY", "")
    STRIPE_MAX_NETWORK_RETRIES = _int("STRIPE_MAX_NETWORK_RETRIES", 2)

    # PayPal
    PAYPAL_CLIENT_ID = _env("PAYPAL_CLIENT_ID", "")
    PAYPAL_SECRET = _env("PAYPAL_CLIENT_SECRET", _env("PAYPAL_SECRET", ""))
    PAYPAL_ENV = _env("PAYPAL_ENV", "sandbox")
    PAYPAL_TIMEOUT = _int("PAYPAL_TIMEOUT", 15)

    # Google (service account JSON, base64-encoded)
    GOOGLE_SERVICE_ACCOUNT_JSON = _env("GOOGLE_SERVICE_ACCOUNT_JSON", "")
    GOOGLE_SHEET_ID = _env("GOOGLE_SHEET_ID", "")
    GOOGLE_DRIVE_PARENT_FOLDER_ID = _env("GOOGLE_DRIVE_PARENT_FOLDER_ID", "")
    GOOGLE_TIMEOUT = _int("GOOGLE_TIMEOUT", 30)

    # Sheet mirror outbox
    SHEETS_ASYNC_FLUSH = _bool("SHEETS_ASYNC_FLUSH", True)
    OUTBOX_MAX_ATTEMPTS = _int("OUTBOX_MAX_ATTEMPTS", 5)

    # Mail
    MAIL_SERVER = _env("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = _int("MAIL_PORT", 587)
    MAIL_USE_TLS = _bool("MAIL_USE_TLS", True)
    MAIL_USERNAME = _env("MAIL_USERNAME", "")
    MAIL_PASSWORD = _env("MAIL_PASSWORD", "")
    DEFAULT_MAIL_SENDER = _env("DEFAULT_MAIL_SENDER", _env("MAIL_USERNAME", "noreply@writory.local"))
    SUBMISSION_EMAILS_ENABLED = _bool("SUBMISSION_EMAILS_ENABLED", True)
    WELCOME_EMAILS_ENABLED = _bool("WELCOME_EMAILS_ENABLED", True)

    @classmethod
    def init_app(cls, app) -> None:
        """
        Optional hook for factory boot hardening.
        Called from create_app() after app.config.from_object(...)
        """
        uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")

        if uri.startswith("sqlite:"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            opts["connect_args"] = connect_args
            opts.setdefault("pool_pre_ping", True)
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts

        # Heroku-style URLs
        if uri.startswith("postgres://"):
            app.config["SQLALCHEMY_DATABASE_URI"] = "postgresql://" + uri[len("postgres://"):]


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True

    PREFERRED_URL_SCHEME = _env("PREFERRED_URL_SCHEME", "http")
    DEMO_MODE = _bool("DEMO_MODE", True)


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SECRET_KEY = "testing-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    DEMO_MODE = False
    ADMIN_EMAILS = ["admin@writory.test"]

    GOOGLE_SHEET_ID = "sheet-test"
    GOOGLE_DRIVE_PARENT_FOLDER_ID = "parent-test"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_PUBLISHABLE_KEY = "pk_test_dummy"

    SHEETS_ASYNC_FLUSH = False
    SUBMISSION_EMAILS_ENABLED = False
    WELCOME_EMAILS_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    OUTBOX_MAX_ATTEMPTS = 3


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    PREFERRED_URL_SCHEME = _env("PREFERRED_URL_SCHEME", "https")
    TRUST_PROXY = _bool("TRUST_PROXY", True)
    PAYPAL_ENV = _env("PAYPAL_ENV", "live")

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        # ---- Production guardrails (fail fast) ----
        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        base = (app.config.get("PUBLIC_BASE_URL") or "").strip()
        if base and base.startswith("http://"):
            raise RuntimeError("PUBLIC_BASE_URL must be https:// in production.")

        if app.config.get("DEMO_MODE"):
            raise RuntimeError("DEMO_MODE must be off in production.")
