"""
Flask CLI commands for billing runs, admin invites and course seeding.
"""

import secrets
from datetime import datetime, timedelta, timezone

import click
from flask.cli import with_appcontext

from academy.billing import generate_invoices, billing_period_label, academy_now
from academy.extensions import db
from academy.models import AdminInviteCode
from academy.scheduling import seed_courses


@click.command('generate-invoices')
@with_appcontext
@click.option('--date', 'run_date', default=None, help='Bill the month of this ISO date instead of today.')
def generate_invoices_command(run_date):
    """Create this month's Pending invoices for all enrolled students."""
    now = None
    if run_date:
        try:
            now = datetime.fromisoformat(run_date)
        except ValueError:
            raise click.BadParameter('Expected an ISO date such as 2025-03-10.', param_hint='--date')

    period = billing_period_label(now or academy_now())
    click.echo(f"Generating invoices for {period}...")
    result = generate_invoices(now=now)
    click.echo(f"✓ Created {result['createdCount']} invoices.")


@click.command('create-admin-invite')
@with_appcontext
@click.option('--code', default=None, help='Invite code to create (random when omitted).')
@click.option('--days', default=7, show_default=True, type=int, help='Days until the code expires; 0 for never.')
def create_admin_invite_command(code, days):
    """Create a single-use invite code for administrator registration."""
    code = code or secrets.token_urlsafe(12)
    if AdminInviteCode.query.filter_by(code=code).first():
        raise click.ClickException(f"Invite code '{code}' already exists.")

    expires_at = None
    if days > 0:
        expires_at = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=days)

    db.session.add(AdminInviteCode(code=code, expires_at=expires_at))
    db.session.commit()
    click.echo(f"✓ Invite code created: {code}")
    if expires_at:
        click.echo(f"  Expires at {expires_at.isoformat()} UTC")


@click.command('seed-courses')
@with_appcontext
def seed_courses_command():
    """Insert the default courses if none exist."""
    added = seed_courses()
    if added:
        click.echo(f"✓ Seeded {added} courses.")
    else:
        click.echo("Courses already present; nothing to seed.")


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(generate_invoices_command)
    app.cli.add_command(create_admin_invite_command)
    app.cli.add_command(seed_courses_command)
