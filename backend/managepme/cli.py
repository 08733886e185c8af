# Overview: Flask CLI commands for bootstrap, inspection, and maintenance.

# backend/managepme/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask managepme <command> [options]
#
# - python -m flask managepme init-db
#   Create missing tables (development; use `flask db upgrade` in production).
# - python -m flask managepme seed-currencies
#   Insert the default currency list (idempotent).
# - python -m flask managepme set-rate EUR 3.3512 [--date 2026-01-31]
#   Record the rate of one currency for a day (1 EUR = 3.3512 base units).
# - python -m flask managepme check-schema
#   List tables/columns the models expect but the database lacks.
# - python -m flask managepme expire-quotes
#   Mark DRAFT/SENT quotes past their validity date as EXPIRED.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import currency_service, quote_service, schema_service
from .services.errors import ServiceError
from .time_utils import parse_iso_date


@click.group('managepme')
def managepme_group():
    """ManagePME bootstrap and maintenance commands."""


@managepme_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("Creating tables...")
    db.create_all()
    click.echo("OK Database ready")


@managepme_group.command('seed-currencies')
@with_appcontext
def seed_currencies():
    """Insert the default currencies."""
    created = currency_service.seed_currencies()
    click.echo(f"OK {created} currencies created")


@managepme_group.command('set-rate')
@click.argument('code')
@click.argument('rate')
@click.option('--date', 'rate_date', default=None, help='Rate date (YYYY-MM-DD), default today')
@with_appcontext
def set_rate(code, rate, rate_date):
    """Record CODE's rate against the base currency."""
    try:
        day = parse_iso_date(rate_date) if rate_date else None
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD", param_hint="--date")
    try:
        row = currency_service.record_rate(code, rate, rate_date=day)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"OK 1 {row.currency_code} = {row.rate} {currency_service.base_currency()} on {row.rate_date.isoformat()}")


@managepme_group.command('check-schema')
@with_appcontext
def check_schema():
    """Report missing tables/columns; exits with status 1 when any."""
    problems = schema_service.check_schema()
    if not problems:
        click.echo("OK Schema matches the models")
        return
    for table, columns in sorted(problems.items()):
        click.echo(f"MISSING {table}: {', '.join(columns)}")
    click.echo(schema_service.MIGRATE_HINT)
    raise SystemExit(1)


@managepme_group.command('expire-quotes')
@with_appcontext
def expire_quotes():
    """Expire quotes past valid_until."""
    count = quote_service.expire_quotes()
    click.echo(f"OK {count} quotes expired")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(managepme_group)
