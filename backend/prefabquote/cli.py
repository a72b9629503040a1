# Overview: Flask CLI command groups for pricing, quote inspection, and maintenance.

# backend/prefabquote/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Quotes:
# - python -m flask quotes estimate config.json [--no-vat]
#   Validate and price a configurator payload; prints the breakdown JSON.
# - python -m flask quotes list [--status paid] [--limit 20]
#   List the most recent quotes.
# - python -m flask quotes ledger <quote-id>
#   Print a quote's payment ledger, newest first.
# - python -m flask quotes recompute <quote-id>
#   Rebuild total_paid from the ledger.
#
# Maintenance:
# - python -m flask maintenance expired-quotes
#   List quotes past their retention window (deletion is an external job).
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import QuoteEngineError, ValidationError
from .extensions import db
from .services import maintenance_service, payment_service, quote_service
from .storage import get_store
from .storage.document_store import InMemoryDocumentStore
from .time_utils import to_utc_z


def _fail(exc: QuoteEngineError):
    if isinstance(exc, ValidationError):
        for error in exc.errors:
            click.echo(f"  {error.field}: {error.message} [{error.code}]", err=True)
    raise click.ClickException(str(exc))


@click.group('quotes')
def quotes_group():
    """Quote pricing and inspection commands."""


@quotes_group.command('estimate')
@click.argument('config_file', type=click.File('r'))
@click.option('--no-vat', is_flag=True, help='Exclude VAT from the total')
@with_appcontext
def estimate_quote(config_file, no_vat):
    """Price a configuration stored as JSON in CONFIG_FILE."""
    try:
        payload = json.load(config_file)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON: {exc}")
    try:
        breakdown, result = quote_service.estimate_configuration(
            payload,
            include_vat=not no_vat,
            catalog=quote_service.current_catalog(),
        )
    except QuoteEngineError as exc:
        _fail(exc)
    for warning in result.warnings:
        click.echo(f"WARN {warning.message}", err=True)
    click.echo(json.dumps(breakdown.to_dict(), indent=2))


@quotes_group.command('list')
@click.option('--status', default=None, help='Filter by payment status')
@click.option('--limit', default=20, show_default=True, help='Number of quotes to show')
@with_appcontext
def list_quotes(status, limit):
    """List the most recent quotes."""
    try:
        result = quote_service.list_quotes(get_store(), status=status, limit=limit)
    except QuoteEngineError as exc:
        _fail(exc)
    if not result["quotes"]:
        click.echo("No quotes found.")
        return
    for quote in result["quotes"]:
        click.echo(
            f"{quote['quote_number']}  {quote['payment_status']:<13} "
            f"paid={quote['total_paid']}  {quote['first_name']} {quote['last_name']}  "
            f"id={quote['id']}"
        )
    click.echo(f"Showing {len(result['quotes'])} of {result['total']}")


@quotes_group.command('ledger')
@click.argument('quote_id')
@with_appcontext
def show_ledger(quote_id):
    """Print a quote's payment ledger, newest first."""
    store = get_store()
    try:
        history = payment_service.get_history(store, quote_id)
        summary = payment_service.get_payment_summary(store, quote_id)
    except QuoteEngineError as exc:
        _fail(exc)
    click.echo(f"Quote {summary['quoteNumber']} ({summary['paymentStatus']})")
    for entry in history:
        click.echo(
            f"  {to_utc_z(entry['timestamp'])}  {entry['payment_type']:<11} {entry['amount']:>12}"
            + (f"  #{entry['installment_number']}" if entry.get('installment_number') else "")
            + (f"  {entry['note']}" if entry.get('note') else "")
        )
    click.echo(f"Total paid: {summary['totalPaid']:.2f} of {summary['quotedTotal']:.2f} {summary['currency']}")


@quotes_group.command('recompute')
@click.argument('quote_id')
@with_appcontext
def recompute_ledger(quote_id):
    """Rebuild total_paid from the ledger entries."""
    try:
        total = payment_service.recompute_total(get_store(), quote_id)
    except QuoteEngineError as exc:
        _fail(exc)
    click.echo(f"PASS total_paid recomputed: {total}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance and cleanup commands."""


@maintenance_group.command('expired-quotes')
@with_appcontext
def expired_quotes():
    """List quotes past their retention window that are not paid or in installments."""
    quotes = maintenance_service.find_expired_quotes(get_store())
    if not quotes:
        click.echo("No expired quotes.")
        return
    for quote in quotes:
        click.echo(f"{quote['quote_number']}  {quote['payment_status']:<13} expired {to_utc_z(quote['expires_at'])}  id={quote['id']}")
    click.echo(f"{len(quotes)} expired quote(s)")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables (deletes all data)."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    store = get_store()
    if isinstance(store, InMemoryDocumentStore):
        store.reset()
    else:
        db.drop_all()
        db.create_all()
    current_app.logger.warning("Storage reset via CLI")
    click.echo("PASS Storage reset")


def register_commands(app):
    app.cli.add_command(quotes_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(system_group)
