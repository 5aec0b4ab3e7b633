# writory/cli.py
"""`flask writory ...` maintenance commands."""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup

from writory.extensions import db, tx_commit
from writory.models import AdminUser
from writory.models.admin_user import ADMIN_ROLES
from writory.services import coupons, pricing, sheets

writory_cli = AppGroup("writory", help="Writory contest maintenance.")


@writory_cli.command("init-db")
def init_db():
    """Create all tables (use `flask db upgrade` once migrations exist)."""
    db.create_all()
    click.echo("✅ Tables created.")


@writory_cli.command("seed-coupons")
def seed_coupons():
    """Insert the default promo coupons that are missing."""
    added = coupons.seed_default_coupons()
    click.echo(f"🌱 {added} coupon(s) added.")


@writory_cli.command("add-admin")
@click.argument("email")
@click.option("--role", type=click.Choice(ADMIN_ROLES), default="admin", show_default=True)
def add_admin(email: str, role: str):
    email = email.strip().lower()
    if AdminUser.by_email(email) is not None:
        click.echo(f"🔁 {email} is already an admin.")
        return
    db.session.add(AdminUser(email=email, role=role, added_by="cli"))
    tx_commit()
    click.echo(f"✨ {email} added as {role}.")


@writory_cli.command("flush-outbox")
@click.option("--limit", default=100, show_default=True)
def flush_outbox(limit: int):
    """Push pending rows to the spreadsheet mirror."""
    result = sheets.flush_outbox(
        sheets.get_sheets_client(),
        max_attempts=int(current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)),
        limit=limit,
    )
    click.echo(f"sent={result['sent']} retry={result['retry']} failed={result['failed']}")


@writory_cli.command("reset-free-tier")
@click.option("--month", default=None, help="YYYY-MM, defaults to the current contest month.")
def reset_free_tier(month):
    month = month or pricing.contest_month()
    touched = pricing.reset_free_tier(month)
    tx_commit()
    click.echo(f"♻️  Free tier reset for {touched} user(s) in {month}.")
