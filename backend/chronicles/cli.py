"""
Chronicles CLI - Command line interface for the Lore Chronicles rule engine.

Usage:
    chronicles run              Start the API server
    chronicles db init          Create tables directly (dev-time)
    chronicles db upgrade       Run database migrations
    chronicles load FILE        Import a campaign YAML file (or a directory)
    chronicles validate FILE    Parse a campaign file without importing it
"""

import asyncio
import sys
from pathlib import Path

import click
import yaml

from chronicles import __version__, config

database_option = click.option(
    "--database",
    "-d",
    default=None,
    help="Database URL (default: CHRONICLES_DATABASE_URL)",
)


def _alembic_config(database: str | None):
    from alembic.config import Config

    # Look for alembic.ini in current directory or use package default
    alembic_ini = Path("alembic.ini")
    if alembic_ini.exists():
        alembic_cfg = Config(str(alembic_ini))
    else:
        package_dir = Path(__file__).parent
        alembic_cfg = Config()
        alembic_cfg.set_main_option("script_location", str(package_dir / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database or config.DATABASE_URL)
    return alembic_cfg


@click.group()
@click.version_option(version=__version__, prog_name="chronicles")
def main():
    """Lore Chronicles - rule engine for multiplayer narrative campaigns."""
    pass


@main.command()
@click.option("--host", "-h", default=config.HOST, help="Host to bind to")
@click.option("--port", "-p", default=config.PORT, type=int, help="Port to bind to")
@click.option("--reload", "-r", is_flag=True, help="Enable auto-reload for development")
def run(host: str, port: int, reload: bool):
    """Start the Lore Chronicles API server."""
    import uvicorn

    click.echo(f"Starting Lore Chronicles on {host}:{port}...")
    uvicorn.run(
        "chronicles.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=config.LOG_LEVEL.lower(),
    )


@main.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
@database_option
def db_init(database: str | None):
    """Create all tables from the models (no migration history)."""
    from chronicles.db import create_tables, make_session_factory

    async def _init():
        engine, _ = make_session_factory(database or config.DATABASE_URL)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_init())
    click.echo(click.style("Tables created.", fg="green"))


@db.command()
@click.option("--revision", "-r", default="head", help="Revision to upgrade to")
@database_option
def upgrade(revision: str, database: str | None):
    """Run database migrations to upgrade the schema."""
    from alembic import command

    try:
        command.upgrade(_alembic_config(database), revision)
        click.echo(click.style("Database upgraded successfully!", fg="green"))
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)


@db.command()
@click.option("--revision", "-r", default="-1", help="Revision to downgrade to")
@database_option
def downgrade(revision: str, database: str | None):
    """Downgrade the database schema."""
    from alembic import command

    try:
        command.downgrade(_alembic_config(database), revision)
        click.echo(click.style("Database downgraded successfully!", fg="green"))
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)


@db.command()
@database_option
def current(database: str | None):
    """Show current database revision."""
    from alembic import command

    command.current(_alembic_config(database))


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@database_option
def load(path: Path, database: str | None):
    """Import campaign YAML into the database.

    PATH is a campaign file or a directory of campaign files. Campaigns
    that are already stored are skipped.
    """
    from chronicles.db import create_tables, make_session_factory
    from chronicles.engine.loader import (load_campaign_from_yaml,
                                          load_campaigns_from_dir)
    from chronicles.engine.store import ChronicleStore
    from chronicles.logging import configure_logging

    configure_logging(config.LOG_LEVEL)

    async def _load():
        engine, session_factory = make_session_factory(database or config.DATABASE_URL)
        try:
            await create_tables(engine)
            store = ChronicleStore(session_factory)
            if path.is_dir():
                return await load_campaigns_from_dir(store, path)
            parsed = await load_campaign_from_yaml(store, path)
            return [parsed] if parsed is not None else []
        finally:
            await engine.dispose()

    try:
        loaded = asyncio.run(_load())
    except (ValueError, yaml.YAMLError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)

    if not loaded:
        click.echo("Nothing imported (campaigns already loaded).")
    for parsed in loaded:
        click.echo(
            f"{parsed.campaign_id}: {len(parsed.triggers)} triggers, "
            f"{len(parsed.cascade_rules)} cascade rules, {len(parsed.hints)} hints, "
            f"{len(parsed.random_events)} random events"
        )


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(path: Path):
    """Parse a campaign file and report skipped entries."""
    from chronicles.engine.loader import parse_campaign

    try:
        with open(path, encoding="utf-8") as f:
            parsed = parse_campaign(yaml.safe_load(f))
    except (ValueError, yaml.YAMLError) as e:
        click.echo(click.style(f"Invalid: {e}", fg="red"))
        sys.exit(1)

    click.echo(f"Campaign {parsed.campaign_id} ({parsed.name})")
    click.echo(f"  triggers:      {len(parsed.triggers)}")
    click.echo(f"  cascade rules: {len(parsed.cascade_rules)}")
    click.echo(f"  hints:         {len(parsed.hints)}")
    click.echo(f"  hint chains:   {len(parsed.hint_chains)}")
    click.echo(f"  random events: {len(parsed.random_events)}")
    if parsed.skipped:
        click.echo(click.style(f"  skipped:       {parsed.skipped}", fg="yellow"))
        sys.exit(1)


if __name__ == "__main__":
    main()
