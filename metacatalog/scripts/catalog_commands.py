"""CLI commands for the catalog.

Usage:
    flask catalog init-db
    flask catalog export user --team Engineering > users.csv
    flask catalog import user users.csv --team Engineering --dry-run
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup, with_appcontext

catalog_cli = AppGroup("catalog", help="Catalog maintenance commands.")


@catalog_cli.command("init-db")
@with_appcontext
def init_db_command():
    """Create tables and, unless disabled, the root Organization team."""
    from metacatalog.extensions import db
    from metacatalog.platform.persistence import models  # noqa: F401
    from metacatalog.platform.persistence.repositories import seed_organization
    from metacatalog.platform.wiring import catalog_services

    db.create_all()
    click.echo("  ✓ Tables created")
    if current_app.config.get("SEED_ORGANIZATION", True):
        created = seed_organization(catalog_services().persistence)
        click.echo("  ✓ Organization team seeded" if created else "  ✓ Organization team already present")


@catalog_cli.command("export")
@click.argument("entity_type")
@click.option("--team", "-t", default=None, help="Only entities under this team")
@with_appcontext
def export_command(entity_type: str, team: str | None):
    """Write the CSV export of ENTITY_TYPE to stdout."""
    from metacatalog.platform.wiring import catalog_services

    click.echo(catalog_services().bulk_service.export_csv(entity_type, scope=team), nl=False)


@catalog_cli.command("import")
@click.argument("entity_type")
@click.argument("csv_file", type=click.File("r", encoding="utf-8"))
@click.option("--team", "-t", default=None, help="Team the rows must fall under")
@click.option("--dry-run", is_flag=True, default=False, help="Validate only")
@with_appcontext
def import_command(entity_type: str, csv_file, team: str | None, dry_run: bool):
    """Import CSV_FILE as ENTITY_TYPE rows."""
    from metacatalog.platform.wiring import catalog_services

    result = catalog_services().bulk_service.import_csv(entity_type, csv_file.read(), scope=team, dry_run=dry_run)
    if result.abort_reason:
        raise click.ClickException(result.abort_reason)
    click.echo(
        f"  ✓ {result.status.value}: {result.success_count} passed, {result.failure_count} failed"
        + (" (dry run)" if dry_run else "")
    )
    for row in result.failed_rows:
        click.echo(f"  ✗ row {row.row_number}: {row.details}", err=True)


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(catalog_cli)
