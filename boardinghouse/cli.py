import json

import click
from flask.cli import AppGroup

from .extensions import db
from .models import User
from .models.user import STAFF_ROLES
from .services.deposits import backfill_deposits
from .services.occupancy import verify_room_tenant_integrity
from .services.scheduler import get_scheduler
from .utils.money import parse_month

billing_cli = AppGroup("billing", help="Billing jobs and maintenance sweeps.")


def _echo(result):
    click.echo(json.dumps(result, indent=2, default=str))


@billing_cli.command("generate-rent")
@click.option("--month", default=None, help="Target month as YYYY-MM (defaults to the current month).")
@click.option("--actor-id", type=int, default=None, help="Staff user recorded on the generated charges.")
def generate_rent(month, actor_id):
    target = None
    if month:
        try:
            target = parse_month(month)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--month")
    _echo(get_scheduler().trigger_monthly_rent(target=target, actor_id=actor_id))


@billing_cli.command("sweep-overdue")
def sweep_overdue():
    """Mark lapsed payments overdue and send payment reminders."""
    _echo(get_scheduler().trigger_overdue_and_reminders())


@billing_cli.command("lease-reminders")
def lease_reminders():
    _echo(get_scheduler().trigger_lease_expiry())


@billing_cli.command("archive")
def archive():
    """Archive old notifications and announcements."""
    _echo(get_scheduler().trigger_archival())


@billing_cli.command("reconcile")
def reconcile():
    """Take archived tenants out of rooms that still list them."""
    _echo(get_scheduler().trigger_reconciliation())


@billing_cli.command("verify-integrity")
def verify_integrity():
    issues = verify_room_tenant_integrity()
    _echo({"count": len(issues), "issues": issues})


@billing_cli.command("backfill-deposits")
def backfill():
    _echo(backfill_deposits())


@billing_cli.command("create-staff")
@click.argument("email")
@click.option("--name", required=True)
@click.option("--role", type=click.Choice(STAFF_ROLES), default="staff")
def create_staff(email, name, role):
    """Create or update a staff account."""
    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(email=email)
        db.session.add(user)
    user.name = name
    user.role = role
    user.is_archived = False
    db.session.commit()
    click.echo(f"Staff upserted: {user.id} {user.email} ({user.role})")


def register_cli(app):
    app.cli.add_command(billing_cli)
