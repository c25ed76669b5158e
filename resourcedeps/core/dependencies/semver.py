"""Semantic version parsing and ordering.

Version numbers on the marketplace are free text. Only strings that look
like semantic versions take part in ordering; anything else is reported as
incomparable (None) so callers can surface the ambiguity instead of guessing.

Ordering: major, then minor, then patch (numeric, never lexical); a
pre-release sorts below its release; build metadata is ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Optional, Tuple, Union

# Semver with optional leading "v", optional minor/patch ("1", "1.2")
SEMVER_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*))?"
    r"(?:\.(?P<patch>0|[1-9]\d*))?"
    r"(?:-(?P<pre>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?$"
)


def _prerelease_key(pre: Tuple[str, ...]) -> Tuple:
    # A release (no pre-release) outranks any pre-release of the same core
    if not pre:
        return (1,)
    parts = []
    for ident in pre:
        if ident.isdigit():
            parts.append((0, int(ident), ""))
        else:
            parts.append((1, 0, ident))
    return (0, tuple(parts))


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """Parsed semantic version."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: Tuple[str, ...] = field(default_factory=tuple)
    build: Optional[str] = None

    @property
    def sort_key(self) -> Tuple:
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.sort_key == other.sort_key

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text


def parse_version(text: Optional[str]) -> Optional[SemVer]:
    """Parse a version string.

    Args:
        text: Version string such as "1.2.0", "v2", "1.0.0-beta.1"

    Returns:
        SemVer, or None if the string is not a semantic version
    """
    if text is None:
        return None
    match = SEMVER_PATTERN.match(text.strip())
    if not match:
        return None
    pre = match.group("pre")
    return SemVer(
        major=int(match.group("major")),
        minor=int(match.group("minor") or 0),
        patch=int(match.group("patch") or 0),
        prerelease=tuple(pre.split(".")) if pre else (),
        build=match.group("build"),
    )


def is_semver(text: Optional[str]) -> bool:
    return parse_version(text) is not None


def compare_versions(a: Union[str, SemVer, None], b: Union[str, SemVer, None]) -> Optional[int]:
    """Compare two versions.

    Returns:
        -1, 0 or 1 like a classic cmp(), or None when either side is not
        a semantic version
    """
    va = a if isinstance(a, SemVer) else parse_version(a)
    vb = b if isinstance(b, SemVer) else parse_version(b)
    if va is None or vb is None:
        return None
    if va < vb:
        return -1
    if va > vb:
        return 1
    return 0


__all__ = ["SemVer", "SEMVER_PATTERN", "parse_version", "is_semver", "compare_versions"]
