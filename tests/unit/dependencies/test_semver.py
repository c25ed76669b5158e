"""Tests for semantic version parsing and ordering"""

import pytest

from resourcedeps.core.dependencies.semver import SemVer, compare_versions, is_semver, parse_version


def test_parse_full_version():
    version = parse_version("1.2.3-beta.1+build.5")
    assert version == SemVer(1, 2, 3, ("beta", "1"))
    assert version.build == "build.5"
    assert str(version) == "1.2.3-beta.1+build.5"


def test_parse_short_forms_and_prefix():
    assert parse_version("v2") == SemVer(2, 0, 0)
    assert parse_version("1.4") == SemVer(1, 4, 0)
    assert parse_version(" 3.0.1 ") == SemVer(3, 0, 1)


@pytest.mark.parametrize("text", ["", "latest", "1.2.3.4", "01.2.3", "1.x", None])
def test_non_semver_strings_are_rejected(text):
    assert parse_version(text) is None
    assert not is_semver(text)


def test_numeric_not_lexical_ordering():
    assert compare_versions("1.10.0", "1.9.0") == 1
    assert compare_versions("1.2.0", "1.3.0") == -1
    assert compare_versions("2.0", "2.0.0") == 0


def test_prerelease_sorts_below_release():
    assert compare_versions("1.0.0-alpha", "1.0.0") == -1
    assert compare_versions("1.0.0-alpha.2", "1.0.0-alpha.10") == -1
    assert compare_versions("1.0.0-alpha", "1.0.0-1") == 1


def test_build_metadata_is_ignored():
    assert compare_versions("1.0.0+a", "1.0.0+b") == 0


def test_incomparable_returns_none():
    assert compare_versions("1.0.0", "stable") is None
    assert compare_versions(None, "1.0.0") is None
