"""CLI commands for querying and editing resource dependencies

Usage:
    resourcedeps deps show <version_id>                        # List edges
    resourcedeps deps add <version_id> --resource other-mod     # Internal REQUIRED edge
    resourcedeps deps add <version_id> --type OPTIONAL \\
        --external-name "Hytale Server" --external-url https://example.com
    resourcedeps deps remove <version_id> <dependency_id>
    resourcedeps deps graph <version_id> -o deps.dot           # GraphViz export
    resourcedeps deps resolve <version_id> --include-optional  # Install plan
    resourcedeps deps dependents <resource>                    # Who depends on it
"""

import json
import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from resourcedeps.cli.common import console, fail, find_resource, open_service, request_context
from resourcedeps.core.dependencies import (
    DependencyError,
    DependencyType,
    ResolutionState,
    make_draft,
)

TYPE_CHOICES = click.Choice([t.value for t in DependencyType], case_sensitive=False)

TYPE_STYLES = {
    "REQUIRED": "red",
    "OPTIONAL": "cyan",
    "INCOMPATIBLE": "magenta",
    "EMBEDDED": "blue",
}


@click.group(name="deps")
def deps_group():
    """Resource dependency management and visualization"""
    pass


@deps_group.command(name="show")
@click.argument("version_id")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table", help="Output format")
def show_dependencies(version_id: str, fmt: str):
    """Show the dependencies declared by a version"""
    try:
        with open_service() as service:
            edges = service.store.list_edges(version_id)

        if fmt == "json":
            click.echo(json.dumps([e.to_dict() for e in edges], indent=2))
            return

        if not edges:
            console.print(f"[yellow]No dependencies declared by {version_id}[/yellow]")
            return

        table = Table(title=f"Dependencies of {version_id}")
        table.add_column("Type")
        table.add_column("Target", style="bold")
        table.add_column("Kind")
        table.add_column("Min version")
        table.add_column("ID", style="dim", no_wrap=True)

        for edge in edges:
            style = TYPE_STYLES.get(edge.dependency_type.value, "white")
            table.add_row(
                f"[{style}]{edge.dependency_type.value}[/{style}]",
                edge.target.display_name,
                "internal" if edge.is_internal else "external",
                edge.target.min_version or "-",
                edge.id,
            )

        console.print(table)
        console.print(f"Total: {len(edges)} dependencies")
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@deps_group.command(name="add")
@click.argument("version_id")
@click.option("--type", "dep_type", type=TYPE_CHOICES, default="REQUIRED", help="Dependency type")
@click.option("--resource", "resource_ref", default=None, help="Target resource id or slug (internal)")
@click.option("--min-version", default=None, help="Minimum version number (internal) or text (external)")
@click.option("--external-name", default=None, help="Name of an off-platform dependency")
@click.option("--external-url", default=None, help="URL of an off-platform dependency")
def add_dependency(
    version_id: str,
    dep_type: str,
    resource_ref: str,
    min_version: str,
    external_name: str,
    external_url: str,
):
    """Declare a dependency of a version

    Examples:
        resourcedeps deps add <version_id> --resource core-lib --min-version 2.0.0
        resourcedeps deps add <version_id> --type INCOMPATIBLE --resource old-mod
    """
    ctx = request_context()
    try:
        with open_service() as service:
            version = service.catalog.get_version(version_id)
            resource_id = None
            min_version_id = None
            if resource_ref:
                target = find_resource(service.catalog, resource_ref)
                resource_id = target.id
                if min_version:
                    min_version_id = _version_id_for_number(service, target.id, min_version)
            draft = make_draft(
                dep_type,
                resource_id=resource_id,
                min_version_id=min_version_id,
                external_name=external_name,
                external_url=external_url,
                external_min_version=None if resource_ref else min_version,
            )
            edge = service.add_dependency(ctx, version.resource_id, version.id, draft)

        console.print(
            f"[green]Added[/green] {edge.dependency_type.value} dependency on "
            f"{edge.target.display_name} (id={edge.id})"
        )
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@deps_group.command(name="remove")
@click.argument("version_id")
@click.argument("dependency_id")
def remove_dependency(version_id: str, dependency_id: str):
    """Remove a dependency; removing an absent one is not an error"""
    ctx = request_context()
    try:
        with open_service() as service:
            version = service.catalog.get_version(version_id)
            removed = service.remove_dependency(ctx, version.resource_id, version.id, dependency_id)
        if removed:
            console.print(f"[green]Removed[/green] dependency {dependency_id}")
        else:
            console.print(f"[yellow]Dependency {dependency_id} was already absent[/yellow]")
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@deps_group.command(name="graph")
@click.argument("version_id")
@click.option("--include-optional", is_flag=True, help="Follow OPTIONAL edges")
@click.option("--output", "-o", type=click.Path(), help="Output file path (default: stdout)")
@click.option("--format", "fmt", type=click.Choice(["dot", "json", "tree"]), default="tree", help="Output format")
def export_graph(version_id: str, include_optional: bool, output: str, fmt: str):
    """Show or export the transitive dependency graph of a version

    Examples:
        resourcedeps deps graph <version_id>
        resourcedeps deps graph <version_id> --format dot -o deps.dot
    """
    try:
        with open_service() as service:
            version = service.catalog.get_version(version_id)
            graph = service.get_graph(
                request_context(), version.resource_id, version.id, include_optional=include_optional
            )

        if fmt == "tree" and not output:
            console.print(_graph_tree(graph))
            return

        content = graph.to_dot() if fmt == "dot" else json.dumps(graph.to_dict(), indent=2)
        if output:
            Path(output).write_text(content, encoding="utf-8")
            click.echo(f"Exported dependency graph to {output}")
            if fmt == "dot":
                click.echo("\nTo render as PNG:")
                click.echo(f"  dot -Tpng {output} -o {Path(output).stem}.png")
        else:
            click.echo(content)
    except (DependencyError, FileNotFoundError) as e:
        fail(e)


@deps_group.command(name="resolve")
@click.argument("version_id")
@click.option("--include-optional", is_flag=True, help="Install OPTIONAL dependencies too")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table", help="Output format")
def resolve_plan(version_id: str, include_optional: bool, fmt: str):
    """Compute the ordered install plan of a version

    Exits with status 1 when the plan cannot be produced.
    """
    try:
        with open_service() as service:
            version = service.catalog.get_version(version_id)
            outcome = service.run_resolution(
                request_context(), version.resource_id, version.id, include_optional=include_optional
            )
    except (DependencyError, FileNotFoundError) as e:
        fail(e)
        return

    if fmt == "json":
        click.echo(json.dumps(outcome.to_dict(), indent=2, default=str))
    elif outcome.state == ResolutionState.RESOLVED:
        plan = outcome.plan
        table = Table(title=f"Install plan ({len(plan.steps)} steps)")
        table.add_column("#", justify="right")
        table.add_column("Resource", style="bold")
        table.add_column("Version")
        table.add_column("Min required")
        for index, step in enumerate(plan.steps, start=1):
            table.add_row(
                str(index),
                step.resource.name,
                step.version.version_number,
                step.required_min_version or "-",
            )
        console.print(table)
        for requirement in plan.external:
            minimum = f" >= {requirement.min_version}" if requirement.min_version else ""
            console.print(f"External: {requirement.name}{minimum} ({requirement.url})")
        for node in plan.embedded:
            console.print(f"[dim]Embedded: {node.label}[/dim]")
        for edge in plan.skipped_optional:
            console.print(f"[dim]Skipped optional: {edge.target.display_name}[/dim]")
    else:
        console.print(f"[red]{outcome.state.value}[/red] {outcome.error_code}: {escape(outcome.error_message or '')}")

    if outcome.state != ResolutionState.RESOLVED:
        sys.exit(1)


@deps_group.command(name="dependents")
@click.argument("resource_ref")
@click.option("--page", default=1, type=int, help="Page number")
@click.option("--limit", default=20, type=int, help="Resources per page")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table", help="Output format")
def show_dependents(resource_ref: str, page: int, limit: int, fmt: str):
    """Show resources whose versions depend on RESOURCE_REF"""
    try:
        with open_service() as service:
            resource = find_resource(service.catalog, resource_ref)
            result = service.get_dependents(request_context(), resource.id, page=page, limit=limit)
    except (DependencyError, FileNotFoundError) as e:
        fail(e)
        return

    if fmt == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.dependents:
        console.print(f"[yellow]Nothing depends on {resource.slug}[/yellow]")
        return

    table = Table(title=f"Dependents of {resource.slug} (page {result.page}/{result.total_pages})")
    table.add_column("Resource", style="bold")
    table.add_column("Type")
    table.add_column("Min version")
    table.add_column("Versions")
    for entry in result.dependents:
        table.add_row(
            entry.resource.name,
            entry.dependency_type.value,
            entry.min_version_number or "-",
            ", ".join(v.version_number for v in entry.versions),
        )
    console.print(table)
    console.print(f"Total: {result.total} resources")


def _version_id_for_number(service, resource_id: str, version_number: str) -> str:
    for version in service.catalog.list_versions(resource_id):
        if version.version_number == version_number:
            return version.id
    # Allow passing a version id directly
    return version_number


def _graph_tree(graph) -> Tree:
    root = graph.root
    tree = Tree(f"[bold]{escape(root.label)}[/bold]")
    branches = {root.key: tree}
    seen = {root.key}

    queue = [root.key]
    while queue:
        key = queue.pop(0)
        for edge in graph.outgoing(key):
            target = graph.nodes[edge.target]
            style = TYPE_STYLES.get(edge.dependency_type.value, "white")
            minimum = f" >= {edge.min_version}" if edge.min_version else ""
            branch = branches[key].add(
                f"[{style}]{edge.dependency_type.value}[/{style}] {escape(target.label)}{minimum}"
            )
            if edge.target not in seen:
                seen.add(edge.target)
                branches[edge.target] = branch
                queue.append(edge.target)
    return tree
