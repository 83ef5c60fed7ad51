# Overview: Flask CLI command groups for tenant setup, FBR reporting and the retry worker.

# backend/posfiscal/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app posfiscal <group> <command> [options]
#
# Organization management (MULTI-TENANT):
# - python -m flask --app posfiscal orgs list
#   List all organizations with their FBR registration profile.
# - python -m flask --app posfiscal orgs create --name "Acme Traders" --code "ACME" --ntn 1234567 \
#       --business-name "Acme Traders (Pvt) Ltd" --province "Punjab" --address "Mall Road, Lahore"
#   Create a new organization (tenant) with its seller registration profile.
#
# FBR configuration and reporting:
# - python -m flask --app posfiscal fbr configure --org-id 1 --token "<bearer>" --sandbox
#   Create/update the tenant's FBR credentials (--production to go live, --inactive to pause).
# - python -m flask --app posfiscal fbr test-connection --org-id 1
#   Authenticated lookup against the FBR gateway.
# - python -m flask --app posfiscal fbr submit --sale-id 42
#   Report one sale now (same path as sale finalization).
# - python -m flask --app posfiscal fbr retry-failed --org-id 1
#   Resubmit every failed sale of a tenant after fixing its data.
# - python -m flask --app posfiscal fbr stats --org-id 1
#   Queue and sale sync counts.
# - python -m flask --app posfiscal fbr reference --org-id 1 provinces
#   Dump FBR reference data (provinces, document_types, hs_codes, uom, transaction_types).
#
# Retry worker (schedule via cron, e.g. */5 * * * *):
# - python -m flask --app posfiscal fbr process-queue --batch-size 10
#   One pass over the FBR retry queue.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import FbrConfig, Organization
from .services import fbr_config_service, fbr_queue_service, submission_service
from .services.fbr_client import FbrClient
from .services.fbr_config_service import FbrConfigError
from .services.submission_service import SubmissionError


# =============================================================================
# ORGANIZATION COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'NTN':<12} {'Province':<14} {'FBR'}")
    click.echo("="*80)

    for org in orgs:
        config = db.session.query(FbrConfig).filter_by(org_id=org.id).first()
        if not config:
            fbr_str = "not configured"
        else:
            fbr_str = ("sandbox" if config.sandbox_mode else "production") + ("" if config.is_active else " (inactive)")

        click.echo(f"{org.id:<5} {org.name:<30} {org.ntn or '-':<12} {org.province or '-':<14} {fbr_str}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--ntn', help='Seller NTN/CNIC')
@click.option('--business-name', help='Registered business name')
@click.option('--province', help='Seller province')
@click.option('--address', help='Seller address')
@with_appcontext
def create_org_cli(name, code, ntn, business_name, province, address):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(
        name=name,
        code=code,
        ntn=ntn,
        business_name=business_name or name,
        province=province,
        address=address,
        is_active=True,
    )
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# FBR COMMANDS
# =============================================================================

@click.group('fbr')
def fbr_group():
    """FBR Digital Invoicing configuration, reporting and retry worker."""


@fbr_group.command('configure')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--token', help='FBR bearer token (required the first time)')
@click.option('--sandbox/--production', 'sandbox_mode', default=None, help='Gateway environment')
@click.option('--active/--inactive', 'is_active', default=None, help='Enable or pause FBR reporting')
@with_appcontext
def configure_cli(org_id, token, sandbox_mode, is_active):
    """Create or update a tenant's FBR credentials."""
    try:
        config = fbr_config_service.configure_tenant(
            org_id,
            bearer_token=token,
            sandbox_mode=sandbox_mode,
            is_active=is_active,
        )
    except FbrConfigError as e:
        click.echo(f"FAIL {e}")
        return

    env = "sandbox" if config.sandbox_mode else "production"
    state = "active" if config.is_active else "inactive"
    click.echo(f"PASS FBR configured for org {org_id}: {env}, {state}")


@fbr_group.command('test-connection')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def test_connection_cli(org_id):
    """Check the tenant's token against the FBR gateway."""
    credentials = fbr_config_service.get_active_credentials(org_id)
    if credentials is None:
        click.echo("FAIL FBR not configured for this tenant")
        return

    result = FbrClient.for_tenant(credentials).test_connection()
    if result["success"]:
        click.echo(f"PASS Connected to FBR {result['environment']} gateway")
    else:
        click.echo(f"FAIL {result['error']}")


@fbr_group.command('submit')
@click.option('--sale-id', type=int, required=True, help='Sale ID')
@with_appcontext
def submit_cli(sale_id):
    """Report one sale to FBR."""
    try:
        outcome = submission_service.submit_sale_for_compliance(sale_id)
    except SubmissionError as e:
        click.echo(f"FAIL {e}")
        return

    if outcome.status == submission_service.OUTCOME_SYNCED:
        click.echo(f"PASS Sale {sale_id} synced: FBR invoice {outcome.fbr_invoice_number}")
    elif outcome.status == submission_service.OUTCOME_QUEUED:
        click.echo(f"WARN Sale {sale_id} queued for retry: {outcome.error}")
    else:
        click.echo(f"FAIL Sale {sale_id} failed: {outcome.error}")


@fbr_group.command('retry-failed')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def retry_failed_cli(org_id):
    """Resubmit all failed sales of a tenant."""
    outcomes = submission_service.retry_failed_sales(org_id)
    if not outcomes:
        click.echo("No failed sales to retry.")
        return

    for outcome in outcomes:
        click.echo(f"  Sale {outcome.sale_id}: {outcome.status}" + (f" - {outcome.error}" if outcome.error else ""))
    synced = sum(1 for o in outcomes if o.status == submission_service.OUTCOME_SYNCED)
    click.echo(f"PASS Retried {len(outcomes)} sale(s), {synced} synced")


@fbr_group.command('stats')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def stats_cli(org_id):
    """Show queue and sale sync counts for a tenant."""
    stats = fbr_queue_service.queue_statistics(org_id)

    click.echo(f"\nFBR statistics for org {org_id}")
    click.echo("-"*40)
    for status, count in stats["sales"].items():
        click.echo(f"  sales {status:<12} {count}")
    for status, count in stats["queue"].items():
        click.echo(f"  queue {status:<12} {count}")
    click.echo(f"  sync rate        {stats['sync_rate']}%")
    click.echo(f"  last sync        {stats['last_sync_at'] or '-'}\n")


@fbr_group.command('reference')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.argument('kind', type=click.Choice(['provinces', 'document_types', 'hs_codes', 'uom', 'transaction_types']))
@with_appcontext
def reference_cli(org_id, kind):
    """Print FBR reference data as JSON."""
    credentials = fbr_config_service.get_active_credentials(org_id)
    result = FbrClient.for_tenant(credentials).reference_data(kind)
    if not result.success:
        click.echo(f"FAIL {result.error}")
        return
    click.echo(json.dumps(result.data, indent=2, ensure_ascii=False))


@fbr_group.command('process-queue')
@click.option('--batch-size', type=click.IntRange(min=1), default=None, help='Items per pass (default FBR_QUEUE_BATCH_SIZE)')
@with_appcontext
def process_queue_cli(batch_size):
    """Run one pass of the FBR retry worker."""
    current_app.logger.info("FBR Queue Processor: starting")
    summary = fbr_queue_service.process_retry_queue(batch_size)
    click.echo(
        f"PASS Processed {summary.selected} item(s): "
        f"{summary.completed} completed, {summary.retried} to retry, "
        f"{summary.failed} failed, {summary.skipped} skipped, {summary.released} released"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(fbr_group)
