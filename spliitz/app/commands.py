"""
app/commands.py — Flask CLI commands for scheduled and one-off maintenance.

Usage:
    flask --app spliitz.wsgi reconcile [--group-id N] [--dry-run]
    flask --app spliitz.wsgi send-payment-reminders [--days N]

Both commands call the same service functions as the HTTP API and commit
once at the end.
"""

from __future__ import annotations

from datetime import date

import click
from flask import Flask, current_app
from flask.cli import with_appcontext

from spliitz.app.extensions import db
from spliitz.app.services import activity_service, approval_service


@click.command("reconcile")
@click.option("--group-id", type=int, default=None, help="Only reconcile this group.")
@click.option("--dry-run", is_flag=True, help="Report what would change without saving.")
@with_appcontext
def reconcile_command(group_id: int | None, dry_run: bool) -> None:
    """Finalize fully approved proposals and backfill missing dues."""
    if group_id is not None:
        result = approval_service.reconcile_group(group_id, session=db.session)
    else:
        result = approval_service.reconcile_all(session=db.session)

    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()

    click.echo(
        f"finalized: {len(result['finalized'])} {result['finalized']}\n"
        f"backfilled: {len(result['backfilled'])} {result['backfilled']}"
    )
    if dry_run:
        click.echo("--dry-run: no changes saved.")


@click.command("send-payment-reminders")
@click.option("--days", type=int, default=None, help="Days ahead of the due date.")
@with_appcontext
def send_payment_reminders_command(days: int | None) -> None:
    """Notify debtors whose expense falls due in N days."""
    if days is None:
        days = current_app.config["PAYMENT_REMINDER_DAYS"]

    result = activity_service.send_payment_reminders(
        today=date.today(),
        days=days,
        session=db.session,
    )
    db.session.commit()

    click.echo(
        f"target date {result['target_date']}: "
        f"{result['dues_found']} dues, {result['notifications_sent']} reminders sent"
    )


def register_commands(app: Flask) -> None:
    app.cli.add_command(reconcile_command)
    app.cli.add_command(send_payment_reminders_command)
