# Overview: Flask CLI command group for schema bootstrap, compensation replay and stock reconciliation.

# backend/storekeeper/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask engine <command> [options]
#
# - python -m flask engine init-db
#   Create every table that does not exist yet (use `flask db upgrade` once migrations exist).
# - python -m flask engine compensate [--limit 50] [--max-attempts 5]
#   Replay queued compensations left behind by operations that failed after partial writes.
# - python -m flask engine reconcile [--branch-id 1]
#   Compare every product's stock with its adjustment journal and report drift.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import compensation_service


@click.group('engine')
def engine_group():
    """Inventory and ledger engine maintenance commands."""


@engine_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the registered models."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Tables created")


@engine_group.command('compensate')
@click.option('--limit', type=int, default=None, help='Replay at most this many entries')
@click.option('--max-attempts', type=int, default=None, help='Mark an entry failed after this many attempts')
@with_appcontext
def compensate(limit, max_attempts):
    """
    Replay pending compensations, oldest first.

    Entries that fail again stay pending with their attempt count bumped;
    past the attempt limit they are marked failed and need an operator.
    """
    summary = compensation_service.run_pending_compensations(limit=limit, max_attempts=max_attempts)
    current_app.logger.info(
        "Compensation replay: %s done, %s retrying, %s failed",
        summary["done"], summary["retrying"], summary["failed"],
    )

    for result in summary["results"]:
        line = f"{result['status'].upper():8} #{result['id']} {result['compensation']}"
        if result.get("error"):
            line += f" ({result['error']})"
        click.echo(line)

    click.echo(f"\nDONE {summary['done']} done, {summary['retrying']} retrying, {summary['failed']} failed")


@engine_group.command('reconcile')
@click.option('--branch-id', type=int, default=None, help='Only check products of this branch')
@with_appcontext
def reconcile(branch_id):
    """Report products whose stock counter disagrees with the adjustment journal."""
    report = compensation_service.reconcile_stock(branch_id=branch_id)
    current_app.logger.info("Stock reconciliation: %s checked, %s drifted", report["checked"], report["drifted"])

    if not report["drift"]:
        click.echo(f"PASS {report['checked']} product(s) consistent with the journal")
        return

    for item in report["drift"]:
        click.echo(
            f"WARN  Product {item['product_id']} ({item['name']}): "
            f"stock={item['stock']} journal={item['journal_stock']} chain breaks={len(item['chain_breaks'])}"
        )
    click.echo(f"\nFAIL {report['drifted']} of {report['checked']} product(s) drifted")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(engine_group)
