"""Cycle Detector - keeps REQUIRED dependency chains acyclic

Runs before a REQUIRED internal edge is committed. Starting from the resource
the new edge would point at, it walks REQUIRED internal edges looking for a
path back to the source version's resource.

The walk is resource-level: at every reached resource, the REQUIRED edges of
all of its versions are followed, whatever their status. Which version ends
up selected at install time (latest pointer, newest APPROVED, a draft that is
approved later) therefore cannot reopen a cycle the check accepted.

OPTIONAL, INCOMPATIBLE and EMBEDDED edges never take part: only REQUIRED
chains impose an install order.

Usage:
    detector = CycleDetector(conn)
    detector.ensure_acyclic(source_version_id, target_resource_id)
"""

import logging
import sqlite3
from typing import List, Optional, Tuple

from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.core.dependencies.errors import CycleDetectedError
from resourcedeps.core.dependencies.models import DependencyType

logger = logging.getLogger(__name__)


class CycleDetector:
    """Depth-first search over REQUIRED internal edges"""

    def __init__(self, db: sqlite3.Connection, catalog: Optional[ResourceCatalog] = None):
        """
        Args:
            db: Connection; must be the writer's connection when called
                from inside a write transaction
            catalog: Catalog used for version lookups
        """
        self.db = db
        self.catalog = catalog or ResourceCatalog(db)

    def would_create_cycle(self, source_version_id: str, candidate_target_version_id: str) -> bool:
        """Whether an edge source -> candidate would close a REQUIRED cycle"""
        return self._search_version(source_version_id, candidate_target_version_id) is not None

    def find_cycle(self, source_version_id: str, candidate_target_version_id: str) -> Optional[List[str]]:
        """Version ids along the cycle an edge source -> candidate would close, or None"""
        found = self._search_version(source_version_id, candidate_target_version_id)
        return found[0] if found else None

    def ensure_acyclic(
        self,
        source_version_id: str,
        target_resource_id: str,
    ) -> None:
        """Raise CycleDetectedError if a REQUIRED edge to the resource would close a cycle"""
        source = self.catalog.get_version(source_version_id)
        found = self._search(source.id, source.resource_id, target_resource_id)
        if found is None:
            return

        path, edge_ids = found
        labels = self._labels(path)
        logger.warning(f"Rejected REQUIRED dependency, cycle: {' -> '.join(labels)}")
        raise CycleDetectedError(labels, source_version_id=source_version_id, edge_ids=edge_ids)

    def _search_version(
        self, source_version_id: str, candidate_target_version_id: str
    ) -> Optional[Tuple[List[str], List[str]]]:
        source = self.catalog.get_version(source_version_id)
        candidate = self.catalog.find_version(candidate_target_version_id)
        if candidate is None:
            return None
        if candidate.resource_id == source.resource_id:
            return [source.id, candidate.id], []
        return self._search(source.id, source.resource_id, candidate.resource_id)

    def _search(
        self, source_version_id: str, source_resource_id: str, target_resource_id: str
    ) -> Optional[Tuple[List[str], List[str]]]:
        # Returns (version_path, edge_ids). The path starts and ends at the
        # source version; in between are the versions whose edges were followed.
        if target_resource_id == source_resource_id:
            return [source_version_id, source_version_id], []

        # Iterative DFS over resources; each stack entry carries its own path
        stack = [(target_resource_id, [source_version_id], [])]
        visited = {target_resource_id}

        while stack:
            resource_id, path, edge_ids = stack.pop()
            for edge_id, version_id, next_resource_id in self._required_edges(resource_id):
                if next_resource_id == source_resource_id:
                    return path + [version_id, source_version_id], edge_ids + [edge_id]
                if next_resource_id in visited:
                    continue
                visited.add(next_resource_id)
                stack.append((next_resource_id, path + [version_id], edge_ids + [edge_id]))

        return None

    def _required_edges(self, resource_id: str) -> List[Tuple[str, str, str]]:
        """(edge id, version id, target resource id) for REQUIRED edges of every version"""
        rows = self.db.execute(
            """
            SELECT d.id, d.version_id, d.dependency_resource_id
            FROM resource_version_dependencies d
            JOIN resource_versions v ON v.id = d.version_id
            WHERE v.resource_id = ?
              AND d.dependency_type = ?
              AND d.dependency_resource_id IS NOT NULL
            ORDER BY d.created_at, d.rowid
            """,
            (resource_id, DependencyType.REQUIRED.value),
        ).fetchall()
        return [(row["id"], row["version_id"], row["dependency_resource_id"]) for row in rows]

    def _labels(self, version_ids: List[str]) -> List[str]:
        """Human-readable 'slug@version' labels for a version path"""
        labels = []
        for version_id in version_ids:
            row = self.db.execute(
                """
                SELECT r.slug, v.version_number
                FROM resource_versions v JOIN resources r ON r.id = v.resource_id
                WHERE v.id = ?
                """,
                (version_id,),
            ).fetchone()
            labels.append(f"{row['slug']}@{row['version_number']}" if row else version_id)
        return labels


__all__ = ["CycleDetector"]
