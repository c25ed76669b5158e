"""
Dependency Errors

Exception taxonomy for dependency storage, graph building and resolution.

None of these are retried: every failure is a deterministic function of the
stored data, so repeating the call without changing the data reproduces it.
"""

from typing import Any, Dict, List, Optional


class DependencyError(Exception):
    """
    Base exception for dependency operations

    Carries a machine-readable error code and keyword context that is
    appended to the message and exposed through details().
    """

    error_code = "DEPENDENCY_ERROR"

    def __init__(self, message: str, **kwargs):
        """
        Initialize DependencyError

        Args:
            message: Error message
            **kwargs: Additional error context
        """
        self.message = message
        self.context = kwargs
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context"""
        parts = [self.message]
        if self.context:
            context_str = ", ".join(
                f"{k}={v}" for k, v in self.context.items() if v is not None
            )
            if context_str:
                parts.append(f"[{context_str}]")
        return " ".join(parts)

    def details(self) -> Dict[str, Any]:
        """Structured context for API and CLI error reporting"""
        return {k: v for k, v in self.context.items() if v is not None}


class NotFoundError(DependencyError):
    """Referenced resource, version or edge does not exist"""

    error_code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", **{f"{entity.lower()}_id": entity_id})


class ValidationError(DependencyError):
    """Malformed edge input or a rule violation on a write"""

    error_code = "VALIDATION_ERROR"


class PermissionDeniedError(DependencyError):
    """Caller is not allowed to manage the resource"""

    error_code = "FORBIDDEN"


class ConflictError(DependencyError):
    """
    User-correctable conflict

    Reported with the conflicting edge identities so a human or UI can
    resolve it. Never auto-resolved.
    """

    error_code = "CONFLICT"


class CycleDetectedError(ConflictError):
    """A REQUIRED dependency chain would loop back to its source"""

    error_code = "CYCLE_DETECTED"

    def __init__(
        self,
        path: List[str],
        source_version_id: Optional[str] = None,
        edge_ids: Optional[List[str]] = None,
    ):
        self.path = path
        self.source_version_id = source_version_id
        self.edge_ids = edge_ids or []
        super().__init__(
            f"Circular REQUIRED dependency: {' -> '.join(path)}",
            source_version_id=source_version_id,
            path=path,
            edge_ids=self.edge_ids or None,
        )


class IncompatibleDependencyError(ConflictError):
    """Two selected resources are marked INCOMPATIBLE with each other"""

    error_code = "INCOMPATIBLE_DEPENDENCY"

    def __init__(self, conflicts: List[Dict[str, Any]]):
        self.conflicts = conflicts
        pairs = ", ".join(f"{c['source_name']} <-> {c['target_name']}" for c in conflicts)
        super().__init__(f"Incompatible dependencies selected: {pairs}", conflicts=conflicts)


class AmbiguousConstraintError(ConflictError):
    """Minimum-version constraints on one target cannot be ordered"""

    error_code = "AMBIGUOUS_CONSTRAINT"

    def __init__(self, target: str, constraints: List[Dict[str, Any]]):
        self.target = target
        self.constraints = constraints
        values = " vs ".join(repr(c["min_version"]) for c in constraints)
        super().__init__(
            f"Cannot compare minimum versions for {target}: {values}",
            target=target,
            constraints=constraints,
        )


class UnsatisfiableConstraintError(ConflictError):
    """No installable version satisfies a required target"""

    error_code = "UNSATISFIABLE_CONSTRAINT"

    def __init__(
        self,
        target: str,
        reason: str,
        required_min_version: Optional[str] = None,
        available_version: Optional[str] = None,
        edge_ids: Optional[List[str]] = None,
    ):
        self.target = target
        self.required_min_version = required_min_version
        self.available_version = available_version
        self.edge_ids = edge_ids or []
        super().__init__(
            f"Cannot satisfy dependency on {target}: {reason}",
            target=target,
            required_min_version=required_min_version,
            available_version=available_version,
            edge_ids=self.edge_ids or None,
        )


class GraphTooDeepError(DependencyError):
    """
    Depth guard tripped while expanding a graph

    Signals corrupted data or a bug rather than a user mistake.
    """

    error_code = "GRAPH_TOO_DEEP"

    def __init__(self, root_version_id: str, max_depth: int, node_key: Optional[str] = None):
        self.root_version_id = root_version_id
        self.max_depth = max_depth
        super().__init__(
            f"Dependency graph exceeds max depth {max_depth}",
            root_version_id=root_version_id,
            node=node_key,
        )


__all__ = [
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
