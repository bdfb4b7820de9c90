"""Application-level CLI commands."""

import click
from flask.cli import with_appcontext

from receipt_verification.database import create_tables, drop_tables


def register_commands(app):
    """Register CLI commands with the application."""
    app.cli.add_command(init_db_command)


@click.command("init-db")
@click.option("--drop", is_flag=True, help="Drop existing tables first")
@with_appcontext
def init_db_command(drop: bool) -> None:
    """Create database tables."""
    if drop:
        drop_tables()
        click.echo("Dropped existing tables")
    create_tables()
    click.echo("✅ Database initialized")
