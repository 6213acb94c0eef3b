"""Schema migrations for the grading store, driven through alembic."""

from __future__ import annotations

import alembic.command
import alembic.config
import alembic.script
import sqlalchemy

import gradebook.lib.cli as click
from gradebook.core import di
from gradebook.storage.table import metadata


@click.group("schema")
def schema():
    """Inspect and migrate the database schema."""
    ...


@schema.command()
@click.option("--verbose", "-v", is_flag=True, default=False)
@di.inject
def current(verbose: bool, alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"]):
    """Show the revision the database is at."""
    alembic.command.current(alembic_conf, verbose=verbose)


@schema.command()
@click.argument("message")
@click.option("--empty", is_flag=True, default=False, help="skip autogeneration and write an empty revision")
@di.inject
def generate(
    message: str, empty: bool, alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"]
):
    """Write a new revision, diffed against the table definitions unless --empty."""
    alembic.command.revision(alembic_conf, message, autogenerate=not empty)


@schema.command()
@click.argument("revision", default="head")
@di.inject
def up(revision: str, alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"]):
    """Upgrade to REVISION, the latest by default."""
    alembic.command.upgrade(alembic_conf, revision)


@schema.command()
@click.argument("revision")
@di.inject
def down(revision: str, alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"]):
    alembic.command.downgrade(alembic_conf, revision)


@schema.command()
@click.option("--verbose", "-v", is_flag=True, default=False)
@di.inject
def history(verbose: bool, alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"]):
    alembic.command.history(alembic_conf, verbose=verbose, indicate_current=True)


@schema.command()
@click.argument("revision")
@di.inject
def stamp(revision: str, alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"]):
    """Record REVISION as applied without running it."""
    alembic.command.stamp(alembic_conf, revision)


@schema.command()
@di.inject
def tables(
    engine: sqlalchemy.Engine = di.Provide["storage.persistent.engine"],
    alembic_conf: alembic.config.Config = di.Provide["storage.persistent.alembic_config"],
):
    """List the grading tables and whether each exists in the database."""
    existing = set(sqlalchemy.inspect(engine).get_table_names())
    for name in sorted(metadata.tables):
        mark = click.style("ok", fg="green") if name in existing else click.style("missing", fg="red")
        click.echo(f"{name:<24} {mark}")
    heads = alembic.script.ScriptDirectory.from_config(alembic_conf).get_heads()
    click.echo(f"head revision(s): {', '.join(heads) or '(none)'}")
