"""Shared helpers for CLI commands"""

import sys
from contextlib import contextmanager
from typing import Iterator

import click
from rich.console import Console
from rich.markup import escape

from resourcedeps.core.context import RequestContext
from resourcedeps.core.dependencies import DependencyError, DependencyService, NotFoundError, Resource
from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.store import get_db

console = Console()


@contextmanager
def open_service() -> Iterator[DependencyService]:
    """DependencyService on a fresh connection, closed on exit"""
    db = get_db()
    try:
        yield DependencyService(db)
    finally:
        db.close()


def request_context() -> RequestContext:
    """Context for the invoking user (set by the --user group option)"""
    ctx = click.get_current_context()
    user_id = (ctx.find_root().obj or {}).get("user_id")
    return RequestContext(user_id=user_id)


def find_resource(catalog: ResourceCatalog, ref: str) -> Resource:
    """Look a resource up by id, then by slug"""
    resource = catalog.find_resource(ref)
    if resource is not None:
        return resource
    return catalog.get_resource_by_slug(ref)


def fail(error: Exception) -> None:
    """Print an error and exit with status 1"""
    if isinstance(error, NotFoundError):
        console.print(f"[red]Not found:[/red] {escape(str(error))}")
    elif isinstance(error, DependencyError):
        console.print(f"[red]{error.error_code}:[/red] {escape(str(error))}")
    else:
        console.print(f"[red]Error:[/red] {escape(str(error))}")
    sys.exit(1)
