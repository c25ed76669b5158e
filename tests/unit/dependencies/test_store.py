"""Tests for DependencyStore edge persistence and validation"""

import pytest

from resourcedeps.core.dependencies import (
    DependencyDraft,
    DependencyType,
    ExternalTarget,
    InternalTarget,
    NotFoundError,
    ValidationError,
)


def _internal(resource, dependency_type="REQUIRED", min_version_id=None):
    return DependencyDraft(
        dependency_type=dependency_type,
        target=InternalTarget(resource_id=resource.id, min_version_id=min_version_id),
    )


class TestAddEdge:
    def test_internal_edge_is_hydrated(self, market, store):
        lib, lib_v1 = market.released("core-lib")
        _, app = market.released("my-mod")

        edge = store.add_edge(app.id, _internal(lib, min_version_id=lib_v1.id))

        assert edge.dependency_type == DependencyType.REQUIRED
        assert edge.is_internal
        assert edge.target.resource.slug == "core-lib"
        assert edge.target.min_version_number == "1.0.0"
        data = edge.to_dict()
        assert data["target"]["kind"] == "internal"
        assert data["target"]["resource"]["name"] == "Core Lib"

    def test_type_is_coerced_from_string(self, market, store):
        lib, _ = market.released("core-lib")
        _, app = market.released("my-mod")
        edge = store.add_edge(app.id, _internal(lib, dependency_type="optional"))
        assert edge.dependency_type == DependencyType.OPTIONAL

    def test_unknown_type_rejected(self, market, store):
        lib, _ = market.released("core-lib")
        _, app = market.released("my-mod")
        with pytest.raises(ValidationError):
            store.add_edge(app.id, _internal(lib, dependency_type="MANDATORY"))
        assert store.list_edges(app.id) == []

    def test_self_dependency_rejected(self, market, store):
        resource, version = market.released("my-mod")
        with pytest.raises(ValidationError):
            store.add_edge(version.id, _internal(resource))

    def test_missing_source_version(self, market, store):
        lib, _ = market.released("core-lib")
        with pytest.raises(NotFoundError):
            store.add_edge("missing-version", _internal(lib))

    def test_missing_target_resource(self, market, store):
        _, app = market.released("my-mod")
        with pytest.raises(NotFoundError):
            store.add_edge(
                app.id,
                DependencyDraft("REQUIRED", InternalTarget(resource_id="missing-resource")),
            )

    def test_min_version_must_belong_to_target(self, market, store):
        lib, _ = market.released("core-lib")
        _, other_v1 = market.released("other-lib")
        _, app = market.released("my-mod")
        with pytest.raises(ValidationError):
            store.add_edge(app.id, _internal(lib, min_version_id=other_v1.id))

    def test_duplicate_internal_edge_rejected(self, market, store):
        lib, _ = market.released("core-lib")
        _, app = market.released("my-mod")
        store.add_edge(app.id, _internal(lib))
        with pytest.raises(ValidationError):
            store.add_edge(app.id, _internal(lib, dependency_type="OPTIONAL"))
        assert len(store.list_edges(app.id)) == 1

    def test_external_edge(self, market, store):
        _, app = market.released("my-mod")
        edge = market.depend_external(app, "  Hytale   Server ", min_version="1.2")

        assert not edge.is_internal
        assert edge.target.name == "Hytale Server"
        assert edge.target.min_version == "1.2"
        assert edge.target.key == "external:hytale server"

    def test_duplicate_external_name_is_case_insensitive(self, market, store):
        _, app = market.released("my-mod")
        market.depend_external(app, "Hytale Server")
        with pytest.raises(ValidationError):
            market.depend_external(app, "hytale  SERVER")

    @pytest.mark.parametrize(
        "name,url,min_version",
        [
            ("", "https://example.com", None),
            ("x" * 201, "https://example.com", None),
            ("Server", "ftp://example.com", None),
            ("Server", "not a url", None),
            ("Server", "https://example.com", "9" * 51),
        ],
    )
    def test_external_validation(self, market, store, name, url, min_version):
        _, app = market.released("my-mod")
        with pytest.raises(ValidationError):
            store.add_edge(app.id, DependencyDraft("REQUIRED", ExternalTarget(name, url, min_version)))

    def test_unknown_target_kind_rejected(self, market, store):
        _, app = market.released("my-mod")
        with pytest.raises(ValidationError):
            store.add_edge(app.id, DependencyDraft("REQUIRED", "core-lib"))


class TestListAndRemove:
    def test_list_edges_orders_by_type(self, market, store):
        a, _ = market.released("lib-a")
        b, _ = market.released("lib-b")
        _, app = market.released("my-mod")
        market.depend(app, a, DependencyType.EMBEDDED)
        market.depend(app, b, DependencyType.REQUIRED)
        market.depend_external(app, "Server", dependency_type=DependencyType.OPTIONAL)

        types = [e.dependency_type for e in store.list_edges(app.id)]
        assert types == [DependencyType.REQUIRED, DependencyType.OPTIONAL, DependencyType.EMBEDDED]

    def test_list_edges_missing_version(self, store):
        with pytest.raises(NotFoundError):
            store.list_edges("missing-version")

    def test_remove_is_idempotent(self, market, store):
        lib, _ = market.released("core-lib")
        _, app = market.released("my-mod")
        edge = market.depend(app, lib)

        assert store.remove_edge(edge.id) is True
        assert store.remove_edge(edge.id) is False
        assert store.list_edges(app.id) == []

    def test_get_edge_missing(self, store):
        with pytest.raises(NotFoundError):
            store.get_edge("missing-edge")


class TestUpdateEdge:
    def test_change_type_and_min_version(self, market, store, catalog):
        lib = market.resource("core-lib")
        v1 = market.version(lib, "1.0.0", latest=False)
        v2 = market.version(lib, "2.0.0")
        _, app = market.released("my-mod")
        edge = market.depend(app, lib, min_version=v1)

        updated = store.update_edge(edge.id, dependency_type="OPTIONAL", min_version_id=v2.id)
        assert updated.dependency_type == DependencyType.OPTIONAL
        assert updated.target.min_version_number == "2.0.0"

        cleared = store.update_edge(edge.id, min_version_id=None)
        assert cleared.target.min_version_id is None
        assert cleared.dependency_type == DependencyType.OPTIONAL

    def test_external_min_version(self, market, store):
        _, app = market.released("my-mod")
        edge = market.depend_external(app, "Server", min_version="1.0")
        updated = store.update_edge(edge.id, external_min_version="2.0")
        assert updated.target.min_version == "2.0"

    def test_fields_must_match_target_kind(self, market, store):
        lib, _ = market.released("core-lib")
        _, app = market.released("my-mod")
        internal = market.depend(app, lib)
        external = market.depend_external(app, "Server")

        with pytest.raises(ValidationError):
            store.update_edge(internal.id, external_min_version="1.0")
        with pytest.raises(ValidationError):
            store.update_edge(external.id, min_version_id="anything")

    def test_update_missing_edge(self, store):
        with pytest.raises(NotFoundError):
            store.update_edge("missing-edge", dependency_type="OPTIONAL")


class TestDependents:
    def test_grouped_by_resource_and_paginated(self, market, store):
        lib, _ = market.released("core-lib")
        x = market.resource("mod-x")
        x1 = market.version(x, "1.0.0")
        x2 = market.version(x, "1.1.0")
        _, y1 = market.released("mod-y")
        market.depend(x1, lib)
        market.depend(x2, lib, DependencyType.OPTIONAL)
        market.depend(y1, lib)

        page = store.list_dependents(lib.id)
        assert page.total == 2
        assert page.total_pages == 1
        by_slug = {entry.resource.slug: entry for entry in page.dependents}
        assert sorted(v.version_number for v in by_slug["mod-x"].versions) == ["1.0.0", "1.1.0"]
        assert [v.version_number for v in by_slug["mod-y"].versions] == ["1.0.0"]

        first = store.list_dependents(lib.id, page=1, limit=1)
        second = store.list_dependents(lib.id, page=2, limit=1)
        assert first.total_pages == 2
        assert len(first.dependents) == len(second.dependents) == 1
        assert first.dependents[0].resource.id != second.dependents[0].resource.id

    def test_limit_is_clamped(self, market, store):
        lib, _ = market.released("core-lib")
        assert store.list_dependents(lib.id, limit=500).limit == 100
        assert store.list_dependents(lib.id, limit=0).limit == 20
        assert store.list_dependents(lib.id, page=0).page == 1

    def test_missing_resource(self, store):
        with pytest.raises(NotFoundError):
            store.list_dependents("missing-resource")
