"""CLI commands for the resource catalog

Usage:
    resourcedeps resource add "Better Swords" --slug better-swords
    resourcedeps resource show better-swords
    resourcedeps version add better-swords 1.0.0 --status APPROVED
    resourcedeps version status <version_id> APPROVED
    resourcedeps version latest better-swords <version_id>
    resourcedeps version list better-swords
"""

import json

import click
from rich.table import Table

from resourcedeps.cli.common import console, fail, find_resource, open_service, request_context
from resourcedeps.core.dependencies import DependencyError, VersionStatus

STATUS_STYLES = {
    "DRAFT": "yellow",
    "PENDING": "cyan",
    "APPROVED": "green",
    "REJECTED": "red",
}

STATUS_CHOICES = click.Choice([s.value for s in VersionStatus], case_sensitive=False)


@click.group(name="resource")
def resource_group():
    """Resource management"""
    pass


@resource_group.command(name="add")
@click.argument("name")
@click.option("--slug", required=True, help="Unique URL-friendly identifier")
@click.option("--icon-url", default=None, help="Icon shown next to the resource")
def add_resource(name: str, slug: str, icon_url: str):
    """Register a resource owned by the current user"""
    ctx = request_context()
    if not ctx.user_id:
        fail(click.UsageError("--user is required to own a resource"))
    try:
        with open_service() as service:
            resource = service.catalog.create_resource(name, slug, ctx.user_id, icon_url=icon_url)
        console.print(f"[green]Created resource[/green] {resource.slug} ({resource.id})")
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@resource_group.command(name="show")
@click.argument("resource_ref")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table", help="Output format")
def show_resource(resource_ref: str, fmt: str):
    """Show a resource (by id or slug) and its versions"""
    try:
        with open_service() as service:
            resource = find_resource(service.catalog, resource_ref)
            versions = service.catalog.list_versions(resource.id)

        if fmt == "json":
            data = {
                "id": resource.id,
                "name": resource.name,
                "slug": resource.slug,
                "owner_user_id": resource.owner_user_id,
                "latest_version_id": resource.latest_version_id,
                "versions": [v.to_dict() for v in versions],
            }
            click.echo(json.dumps(data, indent=2))
            return

        console.print(f"[bold]{resource.name}[/bold] ({resource.slug})")
        console.print(f"ID: {resource.id}    Owner: {resource.owner_user_id}")
        _print_versions(versions, resource.latest_version_id)
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@click.group(name="version")
def version_group():
    """Resource version management"""
    pass


@version_group.command(name="add")
@click.argument("resource_ref")
@click.argument("version_number")
@click.option("--status", type=STATUS_CHOICES, default="DRAFT", help="Initial status")
@click.option("--latest", is_flag=True, help="Also mark as the resource's latest version")
def add_version(resource_ref: str, version_number: str, status: str, latest: bool):
    """Create a version of a resource"""
    try:
        with open_service() as service:
            resource = find_resource(service.catalog, resource_ref)
            version = service.catalog.create_version(resource.id, version_number, status=status)
            if latest:
                service.catalog.set_latest_version(resource.id, version.id)
        console.print(
            f"[green]Created version[/green] {version.version_number} "
            f"({version.status.value}) id={version.id}"
        )
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@version_group.command(name="status")
@click.argument("version_id")
@click.argument("status", type=STATUS_CHOICES)
def set_status(version_id: str, status: str):
    """Move a version to another status"""
    try:
        with open_service() as service:
            version = service.catalog.set_version_status(version_id, status)
        console.print(f"Version {version.version_number} is now [bold]{version.status.value}[/bold]")
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@version_group.command(name="latest")
@click.argument("resource_ref")
@click.argument("version_id")
def set_latest(resource_ref: str, version_id: str):
    """Point a resource's latest version at VERSION_ID"""
    try:
        with open_service() as service:
            resource = find_resource(service.catalog, resource_ref)
            service.catalog.set_latest_version(resource.id, version_id)
        console.print(f"Latest version of {resource.slug} set to {version_id}")
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@version_group.command(name="list")
@click.argument("resource_ref")
def list_versions(resource_ref: str):
    """List versions of a resource, newest first"""
    try:
        with open_service() as service:
            resource = find_resource(service.catalog, resource_ref)
            versions = service.catalog.list_versions(resource.id)
        _print_versions(versions, resource.latest_version_id)
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


def _print_versions(versions, latest_version_id):
    if not versions:
        console.print("[yellow]No versions[/yellow]")
        return

    table = Table(title=f"Versions ({len(versions)})")
    table.add_column("Version", style="bold")
    table.add_column("Status")
    table.add_column("Published", style="dim")
    table.add_column("ID", style="cyan", no_wrap=True)

    for version in versions:
        style = STATUS_STYLES.get(version.status.value, "white")
        marker = " (latest)" if version.id == latest_version_id else ""
        table.add_row(
            f"{version.version_number}{marker}",
            f"[{style}]{version.status.value}[/{style}]",
            version.published_at[:19] if version.published_at else "-",
            version.id,
        )
    console.print(table)
