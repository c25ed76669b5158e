"""Tests for ConstraintResolver install plans and resolution states"""

import pytest

from resourcedeps.core.dependencies import (
    AmbiguousConstraintError,
    ConstraintResolver,
    DependencyType,
    IncompatibleDependencyError,
    NotFoundError,
    ResolutionState,
    UnsatisfiableConstraintError,
    VersionStatus,
)


class TestInstallOrder:
    def test_dependencies_before_dependents(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c, _ = market.released("mod-c")
        market.depend(a1, b)
        optional = market.depend(a1, c, DependencyType.OPTIONAL)

        plan = resolver.resolve(a1.id)

        assert plan.version_ids == [b1.id, a1.id]
        assert [e.id for e in plan.skipped_optional] == [optional.id]
        assert plan.steps[0].required_by == [a1.id]
        assert plan.steps[1].required_by == []

    def test_optional_included_on_request(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c, c1 = market.released("mod-c")
        market.depend(a1, b)
        market.depend(a1, c, DependencyType.OPTIONAL)

        plan = resolver.resolve(a1.id, include_optional=True)

        assert plan.version_ids == [b1.id, c1.id, a1.id]
        assert plan.skipped_optional == []

    def test_diamond_order_is_deterministic(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c, c1 = market.released("mod-c")
        d, d1 = market.released("mod-d")
        market.depend(a1, b)
        market.depend(a1, c)
        market.depend(b1, d)
        market.depend(c1, d)

        first = resolver.resolve(a1.id)
        second = resolver.resolve(a1.id)

        assert first.version_ids == [d1.id, b1.id, c1.id, a1.id]
        assert second.version_ids == first.version_ids

    def test_root_without_dependencies(self, market, resolver):
        _, a1 = market.released("mod-a")
        plan = resolver.resolve(a1.id)
        assert plan.version_ids == [a1.id]
        assert plan.to_dict()["steps"][0]["version"]["id"] == a1.id
        assert set(plan.to_dict()) == {
            "root_version_id",
            "include_optional",
            "steps",
            "skipped_optional",
            "embedded",
            "external",
        }


class TestConstraints:
    def test_highest_minimum_wins(self, market, resolver):
        _, a1 = market.released("mod-a")
        b = market.resource("mod-b")
        b12 = market.version(b, "1.2.0", latest=False)
        b13 = market.version(b, "1.3.0", latest=False)
        b14 = market.version(b, "1.4.0")
        c, c1 = market.released("mod-c")
        market.depend(a1, b, min_version=b12)
        market.depend(a1, c)
        market.depend(c1, b, min_version=b13)

        plan = resolver.resolve(a1.id)

        step = next(s for s in plan.steps if s.version.id == b14.id)
        assert step.required_min_version == "1.3.0"
        assert step.required_by == [a1.id, c1.id]

    def test_selected_version_below_minimum(self, market, resolver):
        _, a1 = market.released("mod-a")
        b = market.resource("mod-b")
        market.version(b, "1.0.0")
        b2 = market.version(b, "2.0.0", status=VersionStatus.DRAFT, latest=False)
        market.depend(a1, b, min_version=b2)

        with pytest.raises(UnsatisfiableConstraintError) as exc_info:
            resolver.resolve(a1.id)

        assert exc_info.value.required_min_version == "2.0.0"
        assert exc_info.value.available_version == "1.0.0"

    def test_incomparable_internal_minimums(self, market, resolver):
        _, a1 = market.released("mod-a")
        b = market.resource("mod-b")
        alpha = market.version(b, "alpha", latest=False)
        beta = market.version(b, "beta", latest=False)
        c, c1 = market.released("mod-c")
        first = market.depend(a1, b, min_version=alpha)
        market.depend(a1, c)
        second = market.depend(c1, b, min_version=beta)

        with pytest.raises(AmbiguousConstraintError) as exc_info:
            resolver.resolve(a1.id)

        constraints = exc_info.value.constraints
        assert {item["edge_id"] for item in constraints} == {first.id, second.id}
        assert {item["min_version"] for item in constraints} == {"alpha", "beta"}

    def test_required_target_without_approved_version(self, market, resolver):
        _, a1 = market.released("mod-a")
        b = market.resource("mod-b")
        market.version(b, "0.1.0", status=VersionStatus.PENDING)
        edge = market.depend(a1, b)

        with pytest.raises(UnsatisfiableConstraintError) as exc_info:
            resolver.resolve(a1.id)
        assert exc_info.value.edge_ids == [edge.id]

    def test_unresolvable_optional_is_skipped(self, market, resolver):
        _, a1 = market.released("mod-a")
        b = market.resource("mod-b")
        market.version(b, "0.1.0", status=VersionStatus.DRAFT)
        edge = market.depend(a1, b, DependencyType.OPTIONAL)

        plan = resolver.resolve(a1.id, include_optional=True)

        assert plan.version_ids == [a1.id]
        assert [e.id for e in plan.skipped_optional] == [edge.id]


class TestIncompatible:
    def test_incompatible_pair_in_install_set(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c, _ = market.released("mod-c")
        market.depend(a1, b)
        market.depend(a1, c)
        market.depend(b1, c, DependencyType.INCOMPATIBLE)

        with pytest.raises(IncompatibleDependencyError) as exc_info:
            resolver.resolve(a1.id)

        conflict = exc_info.value.conflicts[0]
        assert conflict["source_name"] == "Mod B"
        assert conflict["target_name"] == "Mod C"

    def test_incompatible_target_outside_install_set(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        x, _ = market.released("mod-x")
        market.depend(a1, b)
        market.depend(b1, x, DependencyType.INCOMPATIBLE)

        plan = resolver.resolve(a1.id)
        assert len(plan.steps) == 2

    def test_incompatible_only_from_minimum_version(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c = market.resource("mod-c")
        market.version(c, "1.0.0")
        c2 = market.version(c, "2.0.0", status=VersionStatus.DRAFT, latest=False)
        market.depend(a1, b)
        market.depend(a1, c)
        market.depend(b1, c, DependencyType.INCOMPATIBLE, min_version=c2)

        plan = resolver.resolve(a1.id)
        assert len(plan.steps) == 3


class TestExternalAndEmbedded:
    def test_external_requirements_merged(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        market.depend(a1, b)
        market.depend_external(a1, "Server", min_version="1.0")
        market.depend_external(b1, "server", min_version="1.2.0")

        plan = resolver.resolve(a1.id)

        assert len(plan.external) == 1
        requirement = plan.external[0]
        assert requirement.min_version == "1.2.0"
        assert requirement.required_by == [a1.id, b1.id]

    def test_incomparable_external_minimums(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        market.depend(a1, b)
        market.depend_external(a1, "Server", min_version="1.0")
        market.depend_external(b1, "Server", min_version="stable")

        with pytest.raises(AmbiguousConstraintError) as exc_info:
            resolver.resolve(a1.id)
        assert exc_info.value.target == "Server"

    def test_embedded_target_is_annotated_not_installed(self, market, resolver):
        _, a1 = market.released("mod-a")
        e, e1 = market.released("mod-e")
        market.depend(a1, e, DependencyType.EMBEDDED)

        plan = resolver.resolve(a1.id)

        assert plan.version_ids == [a1.id]
        assert [node.key for node in plan.embedded] == [e1.id]

    def test_embedded_target_dependencies_install_for_the_host(self, market, resolver):
        _, a1 = market.released("mod-a")
        e, e1 = market.released("mod-e")
        f, f1 = market.released("mod-f")
        market.depend(a1, e, DependencyType.EMBEDDED)
        market.depend(e1, f)
        market.depend_external(e1, "Server", min_version="2.0.0")

        plan = resolver.resolve(a1.id)

        assert plan.version_ids == [f1.id, a1.id]
        assert plan.steps[0].required_by == [a1.id]
        assert [node.key for node in plan.embedded] == [e1.id]
        assert [r.name for r in plan.external] == ["Server"]
        assert plan.external[0].required_by == [e1.id]

    def test_nested_embedded_dependencies_reach_the_host(self, market, resolver):
        _, a1 = market.released("mod-a")
        e, e1 = market.released("mod-e")
        g, g1 = market.released("mod-g")
        f, f1 = market.released("mod-f")
        market.depend(a1, e, DependencyType.EMBEDDED)
        market.depend(e1, g, DependencyType.EMBEDDED)
        market.depend(g1, f)

        plan = resolver.resolve(a1.id)

        assert plan.version_ids == [f1.id, a1.id]
        assert [node.key for node in plan.embedded] == [e1.id, g1.id]

    def test_embedded_target_unsatisfiable_dependency(self, market, resolver):
        _, a1 = market.released("mod-a")
        e, e1 = market.released("mod-e")
        f = market.resource("mod-f")
        market.version(f, "0.1.0", status=VersionStatus.DRAFT)
        market.depend(a1, e, DependencyType.EMBEDDED)
        edge = market.depend(e1, f)

        with pytest.raises(UnsatisfiableConstraintError) as exc_info:
            resolver.resolve(a1.id)
        assert exc_info.value.edge_ids == [edge.id]


class TestRun:
    def test_resolved(self, market, resolver):
        _, a1 = market.released("mod-a")
        outcome = resolver.run(a1.id, request_id="req-1")

        assert outcome.state == ResolutionState.RESOLVED
        assert outcome.state.is_terminal
        assert outcome.request_id == "req-1"
        assert outcome.plan.version_ids == [a1.id]
        assert outcome.to_dict()["error"] is None

    def test_conflict(self, market, resolver):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c, _ = market.released("mod-c")
        market.depend(a1, b)
        market.depend(a1, c)
        market.depend(b1, c, DependencyType.INCOMPATIBLE)

        outcome = resolver.run(a1.id)

        assert outcome.state == ResolutionState.CONFLICT
        assert outcome.error_code == "INCOMPATIBLE_DEPENDENCY"
        assert outcome.plan is None
        assert outcome.to_dict()["error"]["details"]["conflicts"][0]["target_name"] == "Mod C"

    def test_stored_cycle_is_an_error(self, market, resolver, conn):
        a, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        market.depend(a1, b)
        # Corrupt data that bypassed the write-time check
        conn.execute(
            """
            INSERT INTO resource_version_dependencies
            (id, version_id, dependency_type, dependency_resource_id, created_at)
            VALUES (?, ?, 'REQUIRED', ?, ?)
            """,
            ("edge-loop", b1.id, a.id, "2026-01-01T00:00:00Z"),
        )

        outcome = resolver.run(a1.id)

        assert outcome.state == ResolutionState.ERROR
        assert outcome.error_code == "CYCLE_DETECTED"

    def test_too_deep_is_an_error(self, market, conn, catalog, store):
        _, a1 = market.released("mod-a")
        b, b1 = market.released("mod-b")
        c, _ = market.released("mod-c")
        market.depend(a1, b)
        market.depend(b1, c)

        outcome = ConstraintResolver(conn, catalog, store, max_depth=1).run(a1.id)

        assert outcome.state == ResolutionState.ERROR
        assert outcome.error_code == "GRAPH_TOO_DEEP"

    def test_missing_root_propagates(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.run("missing-version")
