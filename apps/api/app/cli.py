"""CLI tools for portal administration and scheduled jobs."""

import asyncio
from datetime import date

import click

from app.core.config import settings
from app.core.security import create_session_token
from app.db.models import Organization, User
from app.db.session import SessionLocal
from app.services import (
    email_dispatch_service,
    monthly_scheduler_service,
    reminder_service,
    retention_service,
)
from app.utils.due_dates import parse_iso_date, today_in_timezone


@click.group()
def cli():
    """Document portal CLI tools."""
    pass


def _today(value: str | None) -> date:
    if value:
        parsed = parse_iso_date(value)
        if parsed is None:
            raise click.BadParameter("must be YYYY-MM-DD", param_hint="--today")
        return parsed
    return today_in_timezone(settings.SCHEDULER_TIMEZONE)


def _base_url() -> str:
    if not settings.app_base_url:
        raise click.ClickException("APP_BASE_URL is not configured")
    return settings.app_base_url


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--admin-email", required=True, help="Staff email address")
@click.option("--display-name", default=None, help="Staff display name")
def create_org(name: str, slug: str, admin_email: str, display_name: str | None):
    """
    Create an organization with its first staff user and print a session token.

    Example:
        python -m app.cli create-org --name "Acme Books" --slug "acme" --admin-email "me@acme.com"
    """
    db = SessionLocal()
    try:
        slug = slug.lower().strip()
        if not slug.replace("-", "").replace("_", "").isalnum():
            click.echo("❌ Slug must be alphanumeric (with optional hyphens/underscores)")
            return

        if db.query(Organization).filter(Organization.slug == slug).first():
            click.echo(f"❌ Organization with slug '{slug}' already exists")
            return
        email = admin_email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            click.echo(f"❌ User already exists: {email}")
            return

        org = Organization(name=name, slug=slug)
        db.add(org)
        db.flush()
        user = User(
            organization_id=org.id,
            email=email,
            display_name=display_name or email.split("@")[0],
        )
        db.add(user)
        db.commit()

        token = create_session_token(user.id, org.id, user.token_version)
        click.echo(f"✓ Created organization: {name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"✓ Created staff user {email}")
        click.echo(f"→ Session token (cookie value): {token}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m app.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--today", default=None, help="Override date (YYYY-MM-DD)")
def run_monthly(today: str | None):
    """Open this month's auto sessions (no-op unless the date is the 1st)."""
    run_date = _today(today)
    base_url = _base_url()
    db = SessionLocal()
    try:
        result = monthly_scheduler_service.run_monthly_sessions(
            db, today=run_date, base_url=base_url, limit=settings.MONTHLY_BATCH_LIMIT
        )
    finally:
        db.close()
    if not result.ran:
        click.echo(f"→ Skipped: {run_date.isoformat()} is not the 1st")
        return
    click.echo(
        f"✓ {run_date.isoformat()}: created={result.created} "
        f"enqueued={result.enqueued} skipped={result.skipped}"
    )


@cli.command()
@click.option("--today", default=None, help="Override date (YYYY-MM-DD)")
def run_reminders(today: str | None):
    """Queue 14-day due reminders."""
    run_date = _today(today)
    base_url = _base_url()
    db = SessionLocal()
    try:
        result = reminder_service.run_due_reminders(
            db, today=run_date, base_url=base_url, limit=settings.REMINDER_BATCH_LIMIT
        )
    finally:
        db.close()
    click.echo(
        f"✓ due {result.target_due_on.isoformat()}: processed={result.processed} "
        f"enqueued={result.enqueued} skipped={result.skipped} failed={result.failed}"
    )


@cli.command()
@click.option("--limit", default=None, type=click.IntRange(1, 200), help="Max emails to send")
def dispatch_emails(limit: int | None):
    """Send pending outbox emails."""
    config = email_dispatch_service.DeliveryConfig(
        api_key=settings.RESEND_API_KEY,
        from_email=settings.EMAIL_FROM,
        dry_run=settings.ENV == "dev",
        max_attempts=settings.EMAIL_MAX_ATTEMPTS,
    )
    db = SessionLocal()
    try:
        result = asyncio.run(
            email_dispatch_service.dispatch_pending_emails(
                db, config, limit=limit or settings.EMAIL_DISPATCH_DEFAULT_LIMIT
            )
        )
    finally:
        db.close()
    click.echo(f"✓ processed={result.processed} sent={result.sent} failed={result.failed}")


@cli.command()
def cleanup_uploads():
    """Delete stored files past their retention deadline."""
    db = SessionLocal()
    try:
        deleted = retention_service.purge_expired_uploads(
            db, batch_size=settings.CLEANUP_BATCH_SIZE
        )
    finally:
        db.close()
    click.echo(f"✓ Purged {deleted} uploads")


if __name__ == "__main__":
    cli()
