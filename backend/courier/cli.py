# Overview: Flask CLI command groups for bootstrap and provisioning.

# backend/courier/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use migrations in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Sequence counters (one TRACKING and one MANIFEST counter per tenant):
# - python -m flask sequences provision --tenant acme
#   Provision both counters with defaults (GT100001..., MAN1...).
# - python -m flask sequences provision --tenant acme --kind TRACKING --prefix AC --start 500000
#   Provision one counter with an explicit prefix/start.
# - python -m flask sequences show [--tenant acme]
#   List counters and the next value each will issue.
# - python -m flask sequences set --tenant acme --kind TRACKING --next-value 600000
#   Move a counter forward (never backwards) and/or change its prefix.
#
# Directory:
# - python -m flask directory add-branch --name "Main" --city "Baghdad"
# - python -m flask directory add-driver --id DRV-1 --name "Ali" --branch-id 1
# - python -m flask directory add-employee --id E1 --name "Sara" --job-title "Clerk" --branch-id 1 --salary 500000
# - python -m flask directory set-active driver DRV-1 --inactive

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import CourierError
from .validation import ValidationError, ConflictError
from .services import directory_service, sequence_service


CLI_ERRORS = (CourierError, ValidationError, ConflictError)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready. Provision sequences with 'python -m flask sequences provision --tenant <key>'.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including issued sequence counters!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('sequences')
def sequences_group():
    """Tenant sequence counters (tracking numbers, manifest ids)."""


@sequences_group.command('provision')
@click.option('--tenant', 'tenant_key', required=True, help='Tenant key')
@click.option('--kind', type=click.Choice(sorted(sequence_service.VALID_KINDS), case_sensitive=False), default=None,
              help='Only provision this counter (default: all)')
@click.option('--prefix', default=None, help='Prefix (default per kind: GT / MAN)')
@click.option('--start', 'start_value', type=int, default=None, help='First value to issue')
@with_appcontext
def provision_sequences(tenant_key, kind, prefix, start_value):
    """Provision counters for a tenant. Existing counters are left untouched."""
    kinds = [kind.upper()] if kind else sorted(sequence_service.VALID_KINDS)
    if (prefix is not None or start_value is not None) and len(kinds) > 1:
        raise click.UsageError("--prefix/--start require --kind")

    for k in kinds:
        try:
            counter = sequence_service.provision_counter(tenant_key, k, prefix=prefix, start_value=start_value)
            click.echo(f"PASS {k}: next value {counter.prefix}{counter.next_value}")
        except ConflictError as e:
            click.echo(f"WARN  {k}: {e}")
        except CLI_ERRORS as e:
            raise click.ClickException(str(e))


@sequences_group.command('show')
@click.option('--tenant', 'tenant_key', default=None, help='Filter by tenant key')
@with_appcontext
def show_sequences(tenant_key):
    """List counters."""
    counters = sequence_service.list_counters(tenant_key)
    if not counters:
        click.echo("No sequence counters provisioned.")
        return

    click.echo(f"\n{'Tenant':<20} {'Kind':<10} {'Next':<20} {'Last updated'}")
    click.echo("-" * 72)
    for c in counters:
        click.echo(f"{c.tenant_key:<20} {c.kind:<10} {c.prefix + str(c.next_value):<20} {c.last_updated}")
    click.echo("")


@sequences_group.command('set')
@click.option('--tenant', 'tenant_key', required=True, help='Tenant key')
@click.option('--kind', type=click.Choice(sorted(sequence_service.VALID_KINDS), case_sensitive=False), required=True)
@click.option('--prefix', default=None, help='New prefix')
@click.option('--next-value', type=int, default=None, help='New next value (forward only)')
@with_appcontext
def set_sequence(tenant_key, kind, prefix, next_value):
    """Change a counter's prefix or move it forward."""
    if prefix is None and next_value is None:
        raise click.UsageError("Nothing to change: pass --prefix and/or --next-value")
    try:
        counter = sequence_service.update_counter(tenant_key, kind.upper(), prefix=prefix, next_value=next_value)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {counter.kind}: next value {counter.prefix}{counter.next_value}")


@click.group('directory')
def directory_group():
    """Branches, drivers and employees."""


@directory_group.command('add-branch')
@click.option('--name', required=True)
@click.option('--city', required=True)
@click.option('--address', default=None)
@click.option('--phone', default=None)
@with_appcontext
def add_branch(name, city, address, phone):
    try:
        branch = directory_service.create_branch(name=name, city=city, address=address, phone=phone)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")


@directory_group.command('add-driver')
@click.option('--id', 'driver_id', required=True)
@click.option('--name', required=True)
@click.option('--branch-id', type=int, required=True)
@click.option('--phone', default=None)
@click.option('--license', 'license_number', default=None)
@with_appcontext
def add_driver(driver_id, name, branch_id, phone, license_number):
    try:
        driver = directory_service.create_driver(
            driver_id=driver_id,
            name=name,
            branch_id=branch_id,
            phone=phone,
            license_number=license_number,
        )
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created driver: {driver.name} (ID: {driver.id})")


@directory_group.command('add-employee')
@click.option('--id', 'employee_id', required=True)
@click.option('--name', required=True)
@click.option('--job-title', required=True)
@click.option('--branch-id', type=int, required=True)
@click.option('--salary', default="0")
@click.option('--driver-id', default=None, help='Link to a driver record')
@with_appcontext
def add_employee(employee_id, name, job_title, branch_id, salary, driver_id):
    try:
        employee = directory_service.create_employee(
            employee_id=employee_id,
            name=name,
            job_title=job_title,
            branch_id=branch_id,
            salary=salary,
            driver_id=driver_id,
        )
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created employee: {employee.name} (ID: {employee.id})")


@directory_group.command('set-active')
@click.argument('entity', type=click.Choice(['branch', 'driver']))
@click.argument('entity_id')
@click.option('--active/--inactive', default=True)
@with_appcontext
def set_active(entity, entity_id, active):
    """Activate or deactivate a branch or driver."""
    try:
        if entity == 'branch':
            if not entity_id.isdigit():
                raise click.UsageError("branch id must be an integer")
            directory_service.set_branch_active(int(entity_id), active)
        else:
            directory_service.set_driver_active(entity_id, active)
    except CLI_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {entity} {entity_id} is now {'active' if active else 'inactive'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sequences_group)
    app.cli.add_command(directory_group)
