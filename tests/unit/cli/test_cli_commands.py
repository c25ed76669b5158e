"""CLI tests using click's CliRunner against a migrated temp database"""

import json

import pytest
from click.testing import CliRunner

from resourcedeps.cli.main import cli
from resourcedeps.core.dependencies import DependencyType, VersionStatus

OWNER = "user-owner"


@pytest.fixture
def runner(db_path, monkeypatch):
    # db_path points RESOURCEDEPS_DB_PATH at the temp database
    monkeypatch.setenv("RESOURCEDEPS_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("RESOURCEDEPS_USER", raising=False)
    return CliRunner()


def _json(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_init_is_idempotent(runner):
    result = runner.invoke(cli, ["init"])
    assert result.exit_code == 0, result.output
    assert "Database ready" in result.output


class TestCatalogCommands:
    def test_resource_add_requires_user(self, runner):
        result = runner.invoke(cli, ["resource", "add", "Core Lib", "--slug", "core-lib"])
        assert result.exit_code == 1

    def test_resource_and_versions(self, runner):
        result = runner.invoke(cli, ["--user", OWNER, "resource", "add", "Core Lib", "--slug", "core-lib"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(cli, ["version", "add", "core-lib", "1.0.0", "--status", "approved", "--latest"])
        assert result.exit_code == 0, result.output

        data = _json(runner.invoke(cli, ["resource", "show", "core-lib", "--format", "json"]))
        assert data["owner_user_id"] == OWNER
        assert [v["version_number"] for v in data["versions"]] == ["1.0.0"]
        assert data["versions"][0]["status"] == "APPROVED"
        assert data["latest_version_id"] == data["versions"][0]["id"]

    def test_unknown_resource(self, runner):
        result = runner.invoke(cli, ["resource", "show", "nope"])
        assert result.exit_code == 1
        assert "Not found" in result.output


class TestDepsCommands:
    @pytest.fixture
    def draft(self, market):
        resource = market.resource("my-mod")
        return market.version(resource, "0.1.0", status=VersionStatus.DRAFT, latest=False)

    def test_add_internal_with_min_version_number(self, runner, market, draft):
        market.released("core-lib", "1.0.0")

        result = runner.invoke(
            cli,
            ["--user", OWNER, "deps", "add", draft.id, "--resource", "core-lib", "--min-version", "1.0.0"],
        )
        assert result.exit_code == 0, result.output

        edges = _json(runner.invoke(cli, ["deps", "show", draft.id, "--format", "json"]))
        assert len(edges) == 1
        assert edges[0]["target"]["resource"]["slug"] == "core-lib"
        assert edges[0]["target"]["min_version_number"] == "1.0.0"

    def test_add_external(self, runner, draft):
        result = runner.invoke(
            cli,
            [
                "--user", OWNER, "deps", "add", draft.id,
                "--type", "optional",
                "--external-name", "Hytale Server",
                "--external-url", "https://example.com/server",
                "--min-version", "1.2",
            ],
        )
        assert result.exit_code == 0, result.output

        edges = _json(runner.invoke(cli, ["deps", "show", draft.id, "--format", "json"]))
        assert edges[0]["dependency_type"] == "OPTIONAL"
        assert edges[0]["target"]["min_version"] == "1.2"

    def test_add_as_other_user_fails(self, runner, market, draft):
        market.released("core-lib")
        result = runner.invoke(cli, ["--user", "intruder", "deps", "add", draft.id, "--resource", "core-lib"])
        assert result.exit_code == 1
        assert "FORBIDDEN" in result.output

    def test_remove_is_idempotent(self, runner, market, draft):
        lib, _ = market.released("core-lib")
        edge = market.depend(draft, lib)

        first = runner.invoke(cli, ["--user", OWNER, "deps", "remove", draft.id, edge.id])
        second = runner.invoke(cli, ["--user", OWNER, "deps", "remove", draft.id, edge.id])

        assert first.exit_code == 0 and "Removed" in first.output
        assert second.exit_code == 0 and "already absent" in second.output

    def test_graph_formats(self, runner, market, tmp_path):
        _, app = market.released("my-app")
        lib, lib_v1 = market.released("core-lib")
        market.depend(app, lib)

        tree = runner.invoke(cli, ["deps", "graph", app.id])
        assert tree.exit_code == 0, tree.output
        assert "Core Lib 1.0.0" in tree.output

        data = _json(runner.invoke(cli, ["deps", "graph", app.id, "--format", "json"]))
        assert {n["key"] for n in data["nodes"]} == {app.id, lib_v1.id}

        output = tmp_path / "deps.dot"
        result = runner.invoke(cli, ["deps", "graph", app.id, "--format", "dot", "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert output.read_text(encoding="utf-8").startswith("digraph")

    def test_resolve(self, runner, market):
        _, app = market.released("my-app")
        lib, lib_v1 = market.released("core-lib")
        market.depend(app, lib)

        data = _json(runner.invoke(cli, ["deps", "resolve", app.id, "--format", "json"]))
        assert data["state"] == "RESOLVED"
        assert [s["version"]["id"] for s in data["plan"]["steps"]] == [lib_v1.id, app.id]

        table = runner.invoke(cli, ["deps", "resolve", app.id])
        assert table.exit_code == 0, table.output
        assert "Install plan (2 steps)" in table.output

    def test_resolve_conflict_exits_nonzero(self, runner, market):
        _, app = market.released("my-app")
        b, b1 = market.released("mod-b")
        c, _ = market.released("mod-c")
        market.depend(app, b)
        market.depend(app, c)
        market.depend(b1, c, DependencyType.INCOMPATIBLE)

        result = runner.invoke(cli, ["deps", "resolve", app.id])

        assert result.exit_code == 1
        assert "CONFLICT" in result.output

    def test_dependents(self, runner, market):
        lib, _ = market.released("core-lib")
        _, x1 = market.released("mod-x")
        market.depend(x1, lib)

        data = _json(runner.invoke(cli, ["deps", "dependents", "core-lib", "--format", "json"]))
        assert data["total"] == 1
        assert data["dependents"][0]["resource"]["slug"] == "mod-x"
