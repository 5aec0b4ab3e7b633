import atexit
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import stripe
from flask_cors import CORS
from flask_mail import Mail, Message
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect
from jinja2 import Environment, FileSystemLoader, select_autoescape


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy()
migrate = Migrate()
mail = Mail()
csrf = CSRFProtect()
cors = CORS()


# ─────────────────────────────────────────────────────────────
# Background tasks + clean shutdown
# ─────────────────────────────────────────────────────────────
_BG_MAX_WORKERS = int(os.getenv("BG_MAX_WORKERS", "4"))
_EXECUTOR = ThreadPoolExecutor(max_workers=_BG_MAX_WORKERS)


def run_bg(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    return _EXECUTOR.submit(func, *args, **kwargs)


def run_in_app_context(app: Any, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    """Run ``func`` on the background pool inside a fresh app context."""

    def _job():
        with app.app_context():
            try:
                return func(*args, **kwargs)
            except Exception:
                app.logger.exception("Background job %s failed", getattr(func, "__name__", func))
                raise

    return run_bg(_job)


@atexit.register
def _shutdown_executor() -> None:
    _EXECUTOR.shutdown(wait=False, cancel_futures=True)


# ─────────────────────────────────────────────────────────────
# Transactions
# ─────────────────────────────────────────────────────────────
def tx_commit() -> None:
    """Commit or roll back and re-raise."""
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# ─────────────────────────────────────────────────────────────
# Email (writory/templates/emails/<name>.html + <name>.txt)
# ─────────────────────────────────────────────────────────────
_MAIL_DIR = Path(__file__).resolve().parent / "templates" / "emails"
_mail_env = Environment(
    loader=FileSystemLoader(str(_MAIL_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render_email(name: str, context: Dict[str, Any]) -> Tuple[str, str]:
    """Render the html/text pair for template ``name``."""
    html = _mail_env.get_template(f"{name}.html").render(**context)
    text = _mail_env.get_template(f"{name}.txt").render(**context)
    return html, text


def send_email_async(
    app: Any,
    template: str,
    recipients: List[str],
    subject: str,
    context: Optional[Dict[str, Any]] = None,
    *,
    attempts: int = 3,
    backoff: float = 0.5,
) -> Future:
    """Render now, send on the background pool. Failures are logged, never raised."""
    html, text = render_email(template, context or {})
    sender = app.config.get("DEFAULT_MAIL_SENDER")

    def _job() -> bool:
        with app.app_context():
            msg = Message(subject=subject, recipients=recipients, sender=sender, html=html, body=text)
            for n in range(1, attempts + 1):
                try:
                    mail.send(msg)
                    app.logger.info("Sent %s email to %s", template, ", ".join(recipients))
                    return True
                except Exception as e:
                    app.logger.warning("%s email to %s failed (%d/%d): %s", template, recipients, n, attempts, e)
                    if n < attempts:
                        time.sleep(backoff * n)
            app.logger.error("Giving up on %s email to %s", template, recipients)
            return False

    return run_bg(_job)


# ─────────────────────────────────────────────────────────────
# Stripe
# ─────────────────────────────────────────────────────────────
def init_stripe(app: Any) -> None:
    """Module-level stripe key; demo mode and missing keys leave Stripe unconfigured."""
    api_key = (app.config.get("STRIPE_SECRET_KEY") or "").strip()
    if not api_key or app.config.get("DEMO_MODE"):
        app.logger.warning("Stripe not configured (%s)", "demo mode" if api_key else "no STRIPE_SECRET_KEY")
        return

    stripe.api_key = api_key
    stripe.max_network_retries = int(app.config.get("STRIPE_MAX_NETWORK_RETRIES") or 2)
    mode = "live" if "_live_" in api_key else "test" if "_test_" in api_key else "unknown"
    app.logger.info("Stripe configured (%s mode, currency=%s)", mode, app.config.get("CURRENCY", "inr"))


__all__ = [
    "db",
    "migrate",
    "mail",
    "csrf",
    "cors",
    "run_bg",
    "run_in_app_context",
    "tx_commit",
    "render_email",
    "send_email_async",
    "init_stripe",
]
