# writory/__init__.py
# Writory: Flask app factory for the poetry contest API
# - env-first config (FLASK_CONFIG / APP_ENV), never overriding real env vars
# - request ids on every log line and response
# - one JSON error shape for every failure under /api

from __future__ import annotations

import logging
import os
import time
from importlib import import_module
from typing import Any, List, Optional, Tuple, Type, Union
from uuid import uuid4

from dotenv import load_dotenv
from flask import Blueprint, Flask, g, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

from writory.blueprints.common import json_error  # noqa: E402
from writory.config import CONFIG_BY_NAME  # noqa: E402
from writory.errors import WritoryError  # noqa: E402
from writory.extensions import cors, csrf, db, init_stripe, mail, migrate  # noqa: E402

# Optional Sentry
try:
    import sentry_sdk  # type: ignore
    from sentry_sdk.integrations.flask import FlaskIntegration  # type: ignore
    from sentry_sdk.integrations.logging import LoggingIntegration  # type: ignore
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration  # type: ignore
except Exception:  # pragma: no cover
    sentry_sdk = None  # type: ignore

ConfigLike = Union[str, Type[Any]]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _resolve_config(target: Optional[ConfigLike]) -> ConfigLike:
    """
    Choose the config class.
    - explicit argument wins (class, short name, or dotted path)
    - else FLASK_CONFIG
    - else APP_ENV / FLASK_ENV, defaulting to development
    """
    if target is None:
        target = (os.getenv("FLASK_CONFIG") or "").strip() or None
    if target is None:
        env = (os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or "development").strip().lower()
        target = {"prod": "production", "dev": "development"}.get(env, env)
    if isinstance(target, str) and target.lower() in CONFIG_BY_NAME:
        return CONFIG_BY_NAME[target.lower()]
    return target


def _parse_cors_origins(raw: Optional[str]) -> Union[str, List[str]]:
    raw = (raw or "*").strip()
    if raw in {"", "*"}:
        return "*"
    if "," in raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return raw


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside an app/request context
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s [rid=%(request_id)s]: %(message)s"
    root = logging.getLogger()

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RequestIDFilter())
        root.addHandler(handler)
    else:
        for h in root.handlers:
            if not any(isinstance(f, _RequestIDFilter) for f in h.filters):
                h.addFilter(_RequestIDFilter())
            if not getattr(h, "formatter", None) or "%(request_id)s" not in getattr(h.formatter, "_fmt", ""):
                h.setFormatter(logging.Formatter(fmt))

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s DEMO=%s", app.config.get("ENV", "?"), app.debug, app.config.get("DEMO_MODE"))


# -----------------------------------------------------------------------------
# ProxyFix (reverse proxy / load balancer)
# -----------------------------------------------------------------------------
def _apply_proxyfix(app: Flask) -> None:
    if not app.config.get("TRUST_PROXY"):
        return
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
    app.logger.info("ProxyFix enabled (trusting X-Forwarded-* headers).")


# -----------------------------------------------------------------------------
# Blueprint registration
# -----------------------------------------------------------------------------
def _safe_register(app: Flask, dotted: str, url_prefix: Optional[str], *, required: bool = False) -> bool:
    disabled = {p.strip().lower() for p in (os.getenv("DISABLE_BPS", "")).split(",") if p.strip()}
    mod_key = dotted.split(".")[-1].lower()
    if mod_key in disabled and not required:
        app.logger.info("Disabled module: %s", dotted)
        return False

    try:
        mod = import_module(dotted)
    except Exception as e:
        if required:
            raise
        app.logger.warning("Import failed: %s → %s", dotted, e)
        return False

    blueprint = getattr(mod, "bp", None)
    if not isinstance(blueprint, Blueprint):
        if required:
            raise RuntimeError(f"{dotted} must define `bp = Blueprint(...)`")
        app.logger.warning("No blueprint found in %s", dotted)
        return False

    if blueprint.name in app.blueprints:
        return False

    app.register_blueprint(blueprint, url_prefix=url_prefix)
    app.logger.info("Registered blueprint: %-12s → %s", blueprint.name, url_prefix or "/")
    return True


def _register_blueprints(app: Flask) -> None:
    core: List[Tuple[str, str]] = [
        ("writory.blueprints.submissions", "/api"),
        ("writory.blueprints.payments", "/api"),
        ("writory.admin.routes", "/api/admin"),
    ]
    for dotted, prefix in core:
        _safe_register(app, dotted, prefix, required=True)

    optional: List[Tuple[str, str]] = [
        ("writory.blueprints.users", "/api"),
        ("writory.blueprints.wall", "/api"),
        ("writory.blueprints.contact", "/api"),
        ("writory.blueprints.content", "/api"),
    ]
    for dotted, prefix in optional:
        _safe_register(app, dotted, prefix)


# -----------------------------------------------------------------------------
# Integrations
# -----------------------------------------------------------------------------
def _init_sentry(app: Flask) -> None:
    dsn = (app.config.get("SENTRY_DSN") or "").strip()
    if not dsn or not sentry_sdk:
        return
    try:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[
                FlaskIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
            send_default_pii=False,
            environment=app.config.get("ENV", "development"),
        )
        sentry_sdk.set_tag("demo_mode", bool(app.config.get("DEMO_MODE")))
        app.logger.info("Sentry initialized (env=%s)", app.config.get("ENV"))
    except Exception as e:
        app.logger.warning("Sentry init failed: %s", e)


def _init_cors(app: Flask) -> None:
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": _parse_cors_origins(app.config.get("CORS_ORIGINS"))}},
        allow_headers=["Content-Type", "X-Request-ID", "x-user-email", "admin-email"],
        expose_headers=["X-Request-ID", "X-Response-Time-ms"],
    )


def _maybe_create_sqlite_tables(app: Flask) -> None:
    uri = (app.config.get("SQLALCHEMY_DATABASE_URI") or "").strip()
    if not uri.startswith("sqlite"):
        return
    if app.config.get("AUTO_CREATE_SQLITE", True) is not True:
        return
    try:
        with app.app_context():
            # Ensure every model is registered on the metadata.
            import writory.models  # noqa: F401

            db.create_all()
    except Exception:
        app.logger.exception("SQLite create_all failed (continuing)")


# -----------------------------------------------------------------------------
# Request lifecycle + errors
# -----------------------------------------------------------------------------
def _register_request_lifecycle(app: Flask) -> None:
    @app.before_request
    def _bootstrap_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g._start_ts = time.perf_counter()

    @app.after_request
    def _attach_request_headers(resp):
        resp.headers["X-Request-ID"] = getattr(g, "request_id", "-")
        start = getattr(g, "_start_ts", None)
        if start:
            resp.headers["X-Response-Time-ms"] = str(int((time.perf_counter() - start) * 1000))
        return resp


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(WritoryError)
    def _domain_err(err: WritoryError):
        db.session.rollback()
        level = logging.WARNING if err.status_code < 500 else logging.ERROR
        app.logger.log(level, "%s %s -> %s %s: %s", request.method, request.path, err.status_code, err.code, err.message)
        return json_error(err.message, err.status_code, code=err.code, **err.extra)

    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        return json_error(err.description or err.name, err.code or 500)

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return json_error("Internal Server Error", 500)


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
def _register_health_endpoints(app: Flask) -> None:
    @app.get("/healthz")
    def _healthz():
        return {
            "status": "ok",
            "brand": app.config.get("BRAND_NAME", "Writory"),
            "env": app.config.get("ENV", "unknown"),
            "demo": bool(app.config.get("DEMO_MODE")),
            "request_id": getattr(g, "request_id", "-"),
        }


# -----------------------------------------------------------------------------
# Factory
# -----------------------------------------------------------------------------
def create_app(config_class: Optional[ConfigLike] = None) -> Flask:
    app = Flask(__name__)

    cfg = _resolve_config(config_class)
    try:
        app.config.from_object(cfg)
    except ImportError as exc:
        raise RuntimeError(f"Invalid FLASK_CONFIG '{cfg}': {exc}") from exc

    init_hook = getattr(cfg, "init_app", None)
    if callable(init_hook):
        init_hook(app)

    app.url_map.strict_slashes = False
    app.config.setdefault("JSON_SORT_KEYS", False)

    # ---- Proxy handling first
    _apply_proxyfix(app)
    _configure_logging(app)

    # ---- Optional integrations
    _init_sentry(app)
    _init_cors(app)

    # ---- Core extensions
    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db, compare_type=True, render_as_batch=True)
    mail.init_app(app)
    _maybe_create_sqlite_tables(app)

    # ---- External services (Stripe, PayPal, Drive, Sheets)
    from writory.services import init_services

    init_stripe(app)
    init_services(app)

    # ---- Request lifecycle / errors
    _register_request_lifecycle(app)
    _register_error_handlers(app)

    _register_blueprints(app)
    _register_health_endpoints(app)

    from writory.cli import writory_cli

    app.cli.add_command(writory_cli)

    return app


__all__ = ["create_app"]
