"""Shared fixtures: a migrated temp database per test and a small data builder"""

from pathlib import Path
from typing import Optional

import pytest

from resourcedeps.core.dependencies import (
    ConstraintResolver,
    DependencyDraft,
    DependencyStore,
    DependencyType,
    ExternalTarget,
    GraphBuilder,
    InternalTarget,
    ResourceCatalog,
    VersionStatus,
)
from resourcedeps.store import connect, init_db

OWNER = "user-owner"


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    # Keep settings lookups away from the real home directory
    monkeypatch.setenv("HOME", str(tmp_path))
    path = tmp_path / "store" / "resourcedeps.sqlite"
    monkeypatch.setenv("RESOURCEDEPS_DB_PATH", str(path))
    init_db(path)
    return path


@pytest.fixture
def conn(db_path: Path):
    connection = connect(db_path)
    yield connection
    connection.close()


@pytest.fixture
def catalog(conn) -> ResourceCatalog:
    return ResourceCatalog(conn)


@pytest.fixture
def store(conn, catalog) -> DependencyStore:
    return DependencyStore(conn, catalog)


@pytest.fixture
def builder(conn, catalog, store) -> GraphBuilder:
    return GraphBuilder(conn, catalog, store)


@pytest.fixture
def resolver(conn, catalog, store, builder) -> ConstraintResolver:
    return ConstraintResolver(conn, catalog, store, graph_builder=builder)


class Market:
    """Terse builders for resources, versions and edges"""

    def __init__(self, catalog: ResourceCatalog, store: DependencyStore):
        self.catalog = catalog
        self.store = store

    def resource(self, slug: str, owner: str = OWNER):
        return self.catalog.create_resource(slug.replace("-", " ").title(), slug, owner)

    def version(
        self,
        resource,
        number: str = "1.0.0",
        status: VersionStatus = VersionStatus.APPROVED,
        latest: bool = True,
    ):
        version = self.catalog.create_version(resource.id, number, status=status)
        if latest:
            self.catalog.set_latest_version(resource.id, version.id)
        return version

    def released(self, slug: str, number: str = "1.0.0", owner: str = OWNER):
        """Resource with one APPROVED latest version"""
        resource = self.resource(slug, owner=owner)
        return resource, self.version(resource, number)

    def depend(
        self,
        version,
        target_resource,
        dependency_type: DependencyType = DependencyType.REQUIRED,
        min_version=None,
    ):
        return self.store.add_edge(
            version.id,
            DependencyDraft(
                dependency_type=dependency_type,
                target=InternalTarget(
                    resource_id=target_resource.id,
                    min_version_id=min_version.id if min_version is not None else None,
                ),
            ),
        )

    def depend_external(
        self,
        version,
        name: str,
        url: str = "https://example.com/download",
        min_version: Optional[str] = None,
        dependency_type: DependencyType = DependencyType.REQUIRED,
    ):
        return self.store.add_edge(
            version.id,
            DependencyDraft(
                dependency_type=dependency_type,
                target=ExternalTarget(name=name, url=url, min_version=min_version),
            ),
        )


@pytest.fixture
def market(catalog, store) -> Market:
    return Market(catalog, store)
