# src/relstore/cli.py
"""Command-line interface for schema migrations."""

import asyncio
import sys
from typing import Optional, Sequence

import click

from relstore.errors import MigrationFailed, StoreError
from relstore.infrastructure.database import Database
from relstore.infrastructure.logging import configure_structlog
from relstore.migrations.catalog import MODULES
from relstore.migrations.engine import MigrationEngine


async def _render(addr: Optional[str], modules: Sequence[str]) -> bool:
    engine = MigrationEngine()
    if addr is None:
        # no database to ask: everything is pending
        for module in modules:
            click.echo(engine.render(module), nl=False)
        return True

    db = Database.from_url(addr)
    ok = True
    try:
        for module in modules:
            try:
                installed = await engine.installed(module, db)
            except StoreError as e:
                ok = False
                click.echo(click.style(f"{module}: cannot read installed version: {e}", fg="red"), err=True)
                continue
            click.echo(engine.render(module, installed, db.engine.dialect), nl=False)
    finally:
        await db.dispose()
    return ok


async def _apply(addr: Optional[str], modules: Sequence[str]) -> bool:
    engine = MigrationEngine()
    db = Database.from_url(addr)
    ok = True
    try:
        for module in modules:
            try:
                result = await engine.apply(module, db)
            except MigrationFailed as e:
                ok = False
                click.echo(
                    click.style(
                        f"{module}: FAILED at {e.failed}, last successful version "
                        f"{e.last_applied or 'none'}: {e.__cause__}",
                        fg="red",
                    ),
                    err=True,
                )
                continue
            except StoreError as e:
                ok = False
                click.echo(click.style(f"{module}: FAILED, last successful version unknown: {e}", fg="red"), err=True)
                continue

            if result.applied:
                steps = ", ".join(tag.isoformat() for tag in result.applied)
                click.echo(click.style(f"{module}: migrated to {result.version} ({steps})", fg="green"))
            else:
                click.echo(f"{module}: already at {result.version}")
    finally:
        await db.dispose()
    return ok


@click.command()
@click.version_option(package_name="relstore")
@click.option(
    "--addr",
    envvar="DATABASE_URL",
    default=None,
    help="SQLAlchemy database URL (default: $DATABASE_URL).",
)
@click.option(
    "--apply",
    "apply_",
    is_flag=True,
    help="Execute the pending migrations instead of printing them.",
)
@click.argument("modules", nargs=-1, required=True, type=click.Choice(MODULES))
def migrate(addr: Optional[str], apply_: bool, modules: Sequence[str]) -> None:
    """Bring the schema of each MODULE up to date.

    Without --apply the pending SQL of every MODULE is printed, one module
    after another, and nothing is written. With --apply the migrations run
    step by step and a summary line per module is printed.

    Examples:

        relstore-migrate auth cache

        relstore-migrate --addr=postgresql+asyncpg://db/app --apply auth
    """
    modules = list(dict.fromkeys(modules))
    configure_structlog()

    run = _apply if apply_ else _render
    if not asyncio.run(run(addr, modules)):
        sys.exit(1)


def main() -> None:
    """Entry point for the relstore-migrate CLI."""
    migrate()
