"""CLI main entry point"""

import logging
import os

import click

from resourcedeps import __version__
from resourcedeps.cli.common import console
from resourcedeps.config import load_settings


@click.group()
@click.version_option(version=__version__, prog_name="resourcedeps")
@click.option(
    "--user",
    "user_id",
    default=lambda: os.environ.get("RESOURCEDEPS_USER"),
    help="Acting user id (env: RESOURCEDEPS_USER)",
)
@click.pass_context
def cli(ctx, user_id):
    """resourcedeps - dependency graphs and install plans for marketplace resources"""
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"user_id": user_id, "settings": settings}


@cli.command(name="init")
def init_cmd():
    """Create the database and apply migrations"""
    from resourcedeps.store import MigrationError, get_migration_status, init_db

    try:
        path = init_db()
    except MigrationError as e:
        console.print(f"[red]Migration failed:[/red] {e}")
        raise SystemExit(1)

    status = get_migration_status(path)
    console.print(f"[green]Database ready[/green] at {path} (schema v{status['current_version']})")


@cli.command(name="serve")
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
@click.pass_context
def serve_cmd(ctx, host, port):
    """Run the HTTP API"""
    import uvicorn

    settings = ctx.obj["settings"]
    uvicorn.run(
        "resourcedeps.webui.app:create_app",
        factory=True,
        host=host or settings.webui_host,
        port=port or settings.webui_port,
        log_level=settings.log_level.lower(),
    )


# Import subcommands
from resourcedeps.cli.commands.catalog import resource_group, version_group  # noqa: E402
from resourcedeps.cli.commands.dependencies import deps_group  # noqa: E402

cli.add_command(resource_group, name="resource")
cli.add_command(version_group, name="version")
cli.add_command(deps_group, name="deps")


if __name__ == "__main__":
    cli()
