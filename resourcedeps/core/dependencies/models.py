"""Dependency data models

Maps to the resources, resource_versions and resource_version_dependencies
tables (schema v01/v02), plus the transient graph and install-plan types
produced per request.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class DependencyType(str, Enum):
    """Kind of dependency edge"""

    REQUIRED = "REQUIRED"  # Must be installed first
    OPTIONAL = "OPTIONAL"  # Installed only when requested
    INCOMPATIBLE = "INCOMPATIBLE"  # Must not be installed alongside
    EMBEDDED = "EMBEDDED"  # Bundled inside the dependent, no separate install


# Sort order used when listing edges (REQUIRED first)
DEPENDENCY_TYPE_ORDER = {
    DependencyType.REQUIRED: 0,
    DependencyType.OPTIONAL: 1,
    DependencyType.INCOMPATIBLE: 2,
    DependencyType.EMBEDDED: 3,
}


class VersionStatus(str, Enum):
    """Moderation status of a resource version"""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Dependencies can only be edited while the version is not under review or live
EDITABLE_STATUSES = frozenset({VersionStatus.DRAFT, VersionStatus.REJECTED})

# Only these versions are ever selected for installation
INSTALLABLE_STATUSES = frozenset({VersionStatus.APPROVED})


class ResolutionState(str, Enum):
    """Lifecycle of one resolution request"""

    PENDING = "PENDING"
    BUILDING_GRAPH = "BUILDING_GRAPH"
    CHECKING_CONSTRAINTS = "CHECKING_CONSTRAINTS"
    RESOLVED = "RESOLVED"
    CONFLICT = "CONFLICT"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (ResolutionState.RESOLVED, ResolutionState.CONFLICT, ResolutionState.ERROR)


# ============================================
# Catalog Models
# ============================================


@dataclass
class Resource:
    """Platform-hosted downloadable item (mod, plugin, world, ...)"""

    id: str
    name: str
    slug: str
    owner_user_id: str
    icon_url: Optional[str] = None
    latest_version_id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Resource":
        """Create from database row"""
        return cls(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            owner_user_id=row["owner_user_id"],
            icon_url=row.get("icon_url"),
            latest_version_id=row.get("latest_version_id"),
            created_at=row.get("created_at"),
        )

    def summary(self) -> "ResourceSummary":
        return ResourceSummary(id=self.id, name=self.name, slug=self.slug, icon_url=self.icon_url)


@dataclass(frozen=True)
class ResourceSummary:
    """Display metadata used to hydrate internal targets"""

    id: str
    name: str
    slug: str
    icon_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "slug": self.slug, "icon_url": self.icon_url}


@dataclass
class ResourceVersion:
    """One build of a resource. The version number never changes."""

    id: str
    resource_id: str
    version_number: str
    status: VersionStatus = VersionStatus.DRAFT
    published_at: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_installable(self) -> bool:
        return self.status in INSTALLABLE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "version_number": self.version_number,
            "status": self.status.value,
            "published_at": self.published_at,
            "created_at": self.created_at,
        }

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "ResourceVersion":
        """Create from database row"""
        return cls(
            id=row["id"],
            resource_id=row["resource_id"],
            version_number=row["version_number"],
            status=VersionStatus(row.get("status", "DRAFT")),
            published_at=row.get("published_at"),
            created_at=row.get("created_at"),
        )


# ============================================
# Dependency Edge Models
# ============================================


@dataclass(frozen=True)
class InternalTarget:
    """Dependency on another platform resource"""

    resource_id: str
    min_version_id: Optional[str] = None
    # Hydrated on read
    min_version_number: Optional[str] = None
    resource: Optional[ResourceSummary] = None

    @property
    def is_internal(self) -> bool:
        return True

    @property
    def key(self) -> str:
        return f"resource:{self.resource_id}"

    @property
    def min_version(self) -> Optional[str]:
        return self.min_version_number

    @property
    def display_name(self) -> str:
        return self.resource.name if self.resource else self.resource_id


@dataclass(frozen=True)
class ExternalTarget:
    """Off-platform reference; opaque, never expanded"""

    name: str
    url: str
    min_version: Optional[str] = None

    @property
    def is_internal(self) -> bool:
        return False

    @property
    def key(self) -> str:
        return f"external:{normalize_external_name(self.name)}"

    @property
    def display_name(self) -> str:
        return self.name


DependencyTarget = Union[InternalTarget, ExternalTarget]


def normalize_external_name(name: str) -> str:
    return " ".join(name.split()).lower()


@dataclass
class DependencyDraft:
    """Edge input before validation and persistence"""

    dependency_type: Union[DependencyType, str]
    target: DependencyTarget


@dataclass
class DependencyEdge:
    """Directed edge from a resource version to a dependency target

    Owned by its source version and cascade-deleted with it.
    """

    id: str
    version_id: str
    dependency_type: DependencyType
    target: DependencyTarget
    created_at: Optional[str] = None

    @property
    def is_internal(self) -> bool:
        return isinstance(self.target, InternalTarget)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API dictionary (tagged target)"""
        data: Dict[str, Any] = {
            "id": self.id,
            "version_id": self.version_id,
            "dependency_type": self.dependency_type.value,
            "is_internal": self.is_internal,
            "created_at": self.created_at,
        }
        if isinstance(self.target, InternalTarget):
            data["target"] = {
                "kind": "internal",
                "resource_id": self.target.resource_id,
                "min_version_id": self.target.min_version_id,
                "min_version_number": self.target.min_version_number,
                "resource": self.target.resource.to_dict() if self.target.resource else None,
            }
        else:
            data["target"] = {
                "kind": "external",
                "name": self.target.name,
                "url": self.target.url,
                "min_version": self.target.min_version,
            }
        return data

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "DependencyEdge":
        """Create from joined database row"""
        target: DependencyTarget
        if row.get("dependency_resource_id"):
            resource = None
            if row.get("resource_name") is not None:
                resource = ResourceSummary(
                    id=row["dependency_resource_id"],
                    name=row["resource_name"],
                    slug=row["resource_slug"],
                    icon_url=row.get("resource_icon_url"),
                )
            target = InternalTarget(
                resource_id=row["dependency_resource_id"],
                min_version_id=row.get("min_version_id"),
                min_version_number=row.get("min_version_number"),
                resource=resource,
            )
        else:
            target = ExternalTarget(
                name=row["external_name"],
                url=row["external_url"],
                min_version=row.get("external_min_version"),
            )
        return cls(
            id=row["id"],
            version_id=row["version_id"],
            dependency_type=DependencyType(row["dependency_type"]),
            target=target,
            created_at=row.get("created_at"),
        )


@dataclass
class DependentVersion:
    id: str
    version_number: str


@dataclass
class DependentEntry:
    """A resource whose versions depend on the queried resource"""

    resource: ResourceSummary
    dependency_type: DependencyType
    min_version_number: Optional[str] = None
    versions: List[DependentVersion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": self.resource.to_dict(),
            "dependency_type": self.dependency_type.value,
            "min_version_number": self.min_version_number,
            "versions": [{"id": v.id, "version_number": v.version_number} for v in self.versions],
        }


@dataclass
class DependentsPage:
    dependents: List[DependentEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependents": [d.to_dict() for d in self.dependents],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


# ============================================
# Graph Models (transient, rebuilt per request)
# ============================================


class NodeKind(str, Enum):
    ROOT = "root"
    VERSION = "version"
    UNRESOLVED = "unresolved"  # Internal target without an installable version
    EXTERNAL = "external"


@dataclass
class GraphNode:
    key: str
    kind: NodeKind
    depth: int
    resource: Optional[ResourceSummary] = None
    version: Optional[ResourceVersion] = None
    external: Optional[ExternalTarget] = None
    expanded: bool = False

    @property
    def label(self) -> str:
        if self.external is not None:
            return self.external.name
        name = self.resource.name if self.resource else self.key
        if self.version is not None:
            return f"{name} {self.version.version_number}"
        return name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "depth": self.depth,
            "label": self.label,
            "resource": self.resource.to_dict() if self.resource else None,
            "version": self.version.to_dict() if self.version else None,
            "external": (
                {"name": self.external.name, "url": self.external.url, "min_version": self.external.min_version}
                if self.external
                else None
            ),
            "expanded": self.expanded,
        }


@dataclass
class GraphEdge:
    edge_id: str
    source: str
    target: str
    dependency_type: DependencyType
    min_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edge_id": self.edge_id,
            "source": self.source,
            "target": self.target,
            "dependency_type": self.dependency_type.value,
            "min_version": self.min_version,
        }


@dataclass
class DependencyGraph:
    """Transitive dependency closure of one root version"""

    root_key: str
    include_optional: bool = False
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: List[GraphEdge] = field(default_factory=list)

    @property
    def root(self) -> GraphNode:
        return self.nodes[self.root_key]

    def outgoing(self, key: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.source == key]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root_key,
            "include_optional": self.include_optional,
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_dot(self) -> str:
        """Export to GraphViz DOT format"""
        styles = {
            DependencyType.REQUIRED: "solid",
            DependencyType.OPTIONAL: "dashed",
            DependencyType.INCOMPATIBLE: "dotted",
            DependencyType.EMBEDDED: "bold",
        }
        lines = ["digraph ResourceDependencies {"]
        lines.append("  rankdir=TB;")
        lines.append("  node [shape=box];")
        for node in self.nodes.values():
            shape = "ellipse" if node.kind in (NodeKind.EXTERNAL, NodeKind.UNRESOLVED) else "box"
            label = node.label.replace('"', '\\"')
            lines.append(f'  "{node.key}" [label="{label}", shape={shape}];')
        for edge in self.edges:
            lines.append(
                f'  "{edge.source}" -> "{edge.target}" '
                f'[label="{edge.dependency_type.value}", style={styles[edge.dependency_type]}];'
            )
        lines.append("}")
        return "\n".join(lines)


# ============================================
# Install Plan Models
# ============================================


@dataclass
class InstallStep:
    version: ResourceVersion
    resource: ResourceSummary
    required_min_version: Optional[str] = None
    required_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version.to_dict(),
            "resource": self.resource.to_dict(),
            "required_min_version": self.required_min_version,
            "required_by": list(self.required_by),
        }


@dataclass
class ExternalRequirement:
    name: str
    url: str
    min_version: Optional[str] = None
    required_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "min_version": self.min_version,
            "required_by": list(self.required_by),
        }


@dataclass
class InstallPlan:
    """Ordered installation sequence; dependencies precede dependents"""

    root_version_id: str
    include_optional: bool = False
    steps: List[InstallStep] = field(default_factory=list)
    skipped_optional: List[DependencyEdge] = field(default_factory=list)
    embedded: List[GraphNode] = field(default_factory=list)
    external: List[ExternalRequirement] = field(default_factory=list)

    @property
    def version_ids(self) -> List[str]:
        return [step.version.id for step in self.steps]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_version_id": self.root_version_id,
            "include_optional": self.include_optional,
            "steps": [s.to_dict() for s in self.steps],
            "skipped_optional": [e.to_dict() for e in self.skipped_optional],
            "embedded": [n.to_dict() for n in self.embedded],
            "external": [r.to_dict() for r in self.external],
        }


@dataclass
class ResolutionOutcome:
    """Result of one resolution request, including its terminal state"""

    request_id: str
    root_version_id: str
    state: ResolutionState = ResolutionState.PENDING
    plan: Optional[InstallPlan] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "root_version_id": self.root_version_id,
            "state": self.state.value,
            "plan": self.plan.to_dict() if self.plan else None,
            "error": (
                {
                    "code": self.error_code,
                    "message": self.error_message,
                    "details": json.loads(json.dumps(self.error_details, default=str)),
                }
                if self.error_code
                else None
            ),
        }
