"""Resource dependency graph: storage, graph building, cycle checks, resolution"""

from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.core.dependencies.cycle_detector import CycleDetector
from resourcedeps.core.dependencies.errors import (
    AmbiguousConstraintError,
    ConflictError,
    CycleDetectedError,
    DependencyError,
    GraphTooDeepError,
    IncompatibleDependencyError,
    NotFoundError,
    PermissionDeniedError,
    UnsatisfiableConstraintError,
    ValidationError,
)
from resourcedeps.core.dependencies.graph_builder import GraphBuilder
from resourcedeps.core.dependencies.models import (
    DependencyDraft,
    DependencyEdge,
    DependencyGraph,
    DependencyType,
    ExternalTarget,
    InstallPlan,
    InternalTarget,
    ResolutionOutcome,
    ResolutionState,
    Resource,
    ResourceVersion,
    VersionStatus,
)
from resourcedeps.core.dependencies.resolver import ConstraintResolver
from resourcedeps.core.dependencies.service import DependencyService, make_draft
from resourcedeps.core.dependencies.store import DependencyStore

__all__ = [
    "ResourceCatalog",
    "DependencyStore",
    "CycleDetector",
    "GraphBuilder",
    "ConstraintResolver",
    "DependencyService",
    "make_draft",
    "DependencyDraft",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyType",
    "ExternalTarget",
    "InternalTarget",
    "InstallPlan",
    "ResolutionOutcome",
    "ResolutionState",
    "Resource",
    "ResourceVersion",
    "VersionStatus",
    "DependencyError",
    "NotFoundError",
    "ValidationError",
    "PermissionDeniedError",
    "ConflictError",
    "CycleDetectedError",
    "IncompatibleDependencyError",
    "AmbiguousConstraintError",
    "UnsatisfiableConstraintError",
    "GraphTooDeepError",
]
