"""Dependency Store - persistence of version -> target edges

Edges are keyed by (source version, target): at most one internal edge per
target resource and one external edge per normalized external name.

Every write runs inside write_transaction() (BEGIN IMMEDIATE). For REQUIRED
internal edges the cycle check and the insert/update share that transaction,
so a rejected edge is never observable and two concurrent additions cannot
both pass the check.
"""

import logging
import sqlite3
from typing import Any, List, Optional, Union
from urllib.parse import urlparse

from ulid import ULID

from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.core.dependencies.cycle_detector import CycleDetector
from resourcedeps.core.dependencies.errors import NotFoundError, ValidationError
from resourcedeps.core.dependencies.models import (
    DEPENDENCY_TYPE_ORDER,
    DependencyDraft,
    DependencyEdge,
    DependencyType,
    DependentEntry,
    DependentsPage,
    DependentVersion,
    ExternalTarget,
    InternalTarget,
    ResourceSummary,
    normalize_external_name,
)
from resourcedeps.core.time import utc_now_iso
from resourcedeps.store import write_transaction

logger = logging.getLogger(__name__)

MAX_EXTERNAL_NAME_LENGTH = 200
MAX_EXTERNAL_MIN_VERSION_LENGTH = 50
DEFAULT_DEPENDENTS_LIMIT = 20
MAX_DEPENDENTS_LIMIT = 100

# Marks "field not supplied" in update_edge, distinct from an explicit None
_UNSET: Any = object()

_EDGE_SELECT = """
    SELECT d.*,
           r.name AS resource_name,
           r.slug AS resource_slug,
           r.icon_url AS resource_icon_url,
           mv.version_number AS min_version_number
    FROM resource_version_dependencies d
    LEFT JOIN resources r ON r.id = d.dependency_resource_id
    LEFT JOIN resource_versions mv ON mv.id = d.min_version_id
"""

_TYPE_ORDER_SQL = "CASE d.dependency_type {} END".format(
    " ".join(f"WHEN '{t.value}' THEN {rank}" for t, rank in DEPENDENCY_TYPE_ORDER.items())
)


class DependencyStore:
    """Repository for resource_version_dependencies"""

    def __init__(
        self,
        db: sqlite3.Connection,
        catalog: Optional[ResourceCatalog] = None,
        cycle_detector: Optional[CycleDetector] = None,
    ):
        self.db = db
        self.catalog = catalog or ResourceCatalog(db)
        self.cycle_detector = cycle_detector or CycleDetector(db, self.catalog)

    # ============================================
    # Reads
    # ============================================

    def list_edges(self, version_id: str) -> List[DependencyEdge]:
        """All outgoing edges of a version, REQUIRED first then by creation time

        Raises:
            NotFoundError: Version does not exist
        """
        self.catalog.get_version(version_id)
        rows = self.db.execute(
            f"""
            {_EDGE_SELECT}
            WHERE d.version_id = ?
            ORDER BY {_TYPE_ORDER_SQL}, d.created_at, d.rowid
            """,
            (version_id,),
        ).fetchall()
        return [DependencyEdge.from_db_row(dict(row)) for row in rows]

    def find_edge(self, edge_id: str) -> Optional[DependencyEdge]:
        row = self.db.execute(f"{_EDGE_SELECT} WHERE d.id = ?", (edge_id,)).fetchone()
        return DependencyEdge.from_db_row(dict(row)) if row else None

    def get_edge(self, edge_id: str) -> DependencyEdge:
        """Raises NotFoundError if absent"""
        edge = self.find_edge(edge_id)
        if edge is None:
            raise NotFoundError("Dependency", edge_id)
        return edge

    def list_dependents(
        self,
        resource_id: str,
        page: int = 1,
        limit: int = DEFAULT_DEPENDENTS_LIMIT,
        max_limit: int = MAX_DEPENDENTS_LIMIT,
    ) -> DependentsPage:
        """Resources whose versions depend on this resource, paginated by resource

        Each entry lists the dependent versions and the dependency type and
        minimum version of the most recent edge.
        """
        self.catalog.get_resource(resource_id)
        page = max(1, int(page or 1))
        limit = min(max(1, int(limit or DEFAULT_DEPENDENTS_LIMIT)), max_limit)
        offset = (page - 1) * limit

        total = self.db.execute(
            """
            SELECT COUNT(DISTINCT v.resource_id)
            FROM resource_version_dependencies d
            JOIN resource_versions v ON v.id = d.version_id
            WHERE d.dependency_resource_id = ?
            """,
            (resource_id,),
        ).fetchone()[0]

        resource_rows = self.db.execute(
            """
            SELECT r.id, r.name, r.slug, r.icon_url, MAX(d.created_at) AS last_linked_at
            FROM resource_version_dependencies d
            JOIN resource_versions v ON v.id = d.version_id
            JOIN resources r ON r.id = v.resource_id
            WHERE d.dependency_resource_id = ?
            GROUP BY r.id
            ORDER BY last_linked_at DESC, r.id
            LIMIT ? OFFSET ?
            """,
            (resource_id, limit, offset),
        ).fetchall()

        dependents: List[DependentEntry] = []
        for resource_row in resource_rows:
            edge_rows = self.db.execute(
                """
                SELECT d.dependency_type, v.id AS version_id, v.version_number,
                       mv.version_number AS min_version_number
                FROM resource_version_dependencies d
                JOIN resource_versions v ON v.id = d.version_id
                LEFT JOIN resource_versions mv ON mv.id = d.min_version_id
                WHERE d.dependency_resource_id = ? AND v.resource_id = ?
                ORDER BY d.created_at DESC, d.rowid DESC
                """,
                (resource_id, resource_row["id"]),
            ).fetchall()
            newest = edge_rows[0]
            dependents.append(
                DependentEntry(
                    resource=ResourceSummary(
                        id=resource_row["id"],
                        name=resource_row["name"],
                        slug=resource_row["slug"],
                        icon_url=resource_row["icon_url"],
                    ),
                    dependency_type=DependencyType(newest["dependency_type"]),
                    min_version_number=newest["min_version_number"],
                    versions=[
                        DependentVersion(id=row["version_id"], version_number=row["version_number"])
                        for row in edge_rows
                    ],
                )
            )

        return DependentsPage(dependents=dependents, total=total, page=page, limit=limit)

    # ============================================
    # Writes
    # ============================================

    def add_edge(self, source_version_id: str, draft: DependencyDraft) -> DependencyEdge:
        """Validate and persist a new edge

        Raises:
            NotFoundError: Source version or target resource does not exist
            ValidationError: Bad type/target, self-dependency, foreign min version, duplicate
            CycleDetectedError: REQUIRED edge would close a cycle (nothing is written)
        """
        dependency_type = coerce_dependency_type(draft.dependency_type)
        target = draft.target
        edge_id = str(ULID())

        if isinstance(target, InternalTarget):
            if not target.resource_id:
                raise ValidationError("Internal dependency requires a resource id")
        elif isinstance(target, ExternalTarget):
            target = self._clean_external(target)
        else:
            raise ValidationError("Dependency target must be an internal resource or an external reference")

        try:
            with write_transaction(self.db):
                source = self.catalog.get_version(source_version_id)

                if isinstance(target, InternalTarget):
                    self._validate_internal(source.resource_id, target)
                    duplicate = self.db.execute(
                        """
                        SELECT id FROM resource_version_dependencies
                        WHERE version_id = ? AND dependency_resource_id = ?
                        """,
                        (source.id, target.resource_id),
                    ).fetchone()
                    if duplicate:
                        raise ValidationError(
                            "This dependency already exists",
                            version_id=source.id,
                            dependency_resource_id=target.resource_id,
                        )
                    if dependency_type == DependencyType.REQUIRED:
                        self.cycle_detector.ensure_acyclic(source.id, target.resource_id)

                    self.db.execute(
                        """
                        INSERT INTO resource_version_dependencies
                        (id, version_id, dependency_type, dependency_resource_id, min_version_id, created_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            edge_id,
                            source.id,
                            dependency_type.value,
                            target.resource_id,
                            target.min_version_id,
                            utc_now_iso(),
                        ),
                    )
                else:
                    name_key = normalize_external_name(target.name)
                    duplicate = self.db.execute(
                        """
                        SELECT id FROM resource_version_dependencies
                        WHERE version_id = ? AND external_name_key = ?
                        """,
                        (source.id, name_key),
                    ).fetchone()
                    if duplicate:
                        raise ValidationError(
                            "This external dependency already exists",
                            version_id=source.id,
                            external_name=target.name,
                        )

                    self.db.execute(
                        """
                        INSERT INTO resource_version_dependencies
                        (id, version_id, dependency_type, external_name, external_name_key,
                         external_url, external_min_version, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            edge_id,
                            source.id,
                            dependency_type.value,
                            target.name,
                            name_key,
                            target.url,
                            target.min_version,
                            utc_now_iso(),
                        ),
                    )
        except sqlite3.IntegrityError as e:
            # Unique index race or FK violation not caught by the checks above
            raise ValidationError(f"Dependency rejected by database constraints: {e}") from e

        logger.info(
            f"Added dependency {edge_id}: {source_version_id} -> {target.key} "
            f"(type={dependency_type.value})"
        )
        return self.get_edge(edge_id)

    def update_edge(
        self,
        edge_id: str,
        dependency_type: Union[DependencyType, str, None] = None,
        min_version_id: Optional[str] = _UNSET,
        external_min_version: Optional[str] = _UNSET,
    ) -> DependencyEdge:
        """Change an edge's type or minimum version

        Pass min_version_id/external_min_version as None to clear them. The
        cycle check re-runs when the result is a REQUIRED internal edge.

        Raises:
            NotFoundError: Edge does not exist
            ValidationError: Field does not apply to the target kind, bad min version
            CycleDetectedError: Updated edge would close a cycle (nothing is written)
        """
        new_type = coerce_dependency_type(dependency_type) if dependency_type is not None else None

        with write_transaction(self.db):
            edge = self.get_edge(edge_id)
            final_type = new_type or edge.dependency_type

            if isinstance(edge.target, InternalTarget):
                if external_min_version is not _UNSET:
                    raise ValidationError("external_min_version only applies to external dependencies")
                final_min = edge.target.min_version_id if min_version_id is _UNSET else min_version_id
                source = self.catalog.get_version(edge.version_id)
                self._validate_internal(
                    source.resource_id,
                    InternalTarget(resource_id=edge.target.resource_id, min_version_id=final_min),
                )
                if final_type == DependencyType.REQUIRED:
                    self.cycle_detector.ensure_acyclic(source.id, edge.target.resource_id)
                self.db.execute(
                    """
                    UPDATE resource_version_dependencies
                    SET dependency_type = ?, min_version_id = ?
                    WHERE id = ?
                    """,
                    (final_type.value, final_min, edge_id),
                )
            else:
                if min_version_id is not _UNSET:
                    raise ValidationError("min_version_id only applies to internal dependencies")
                final_min = edge.target.min_version
                if external_min_version is not _UNSET:
                    final_min = self._clean_min_version(external_min_version)
                self.db.execute(
                    """
                    UPDATE resource_version_dependencies
                    SET dependency_type = ?, external_min_version = ?
                    WHERE id = ?
                    """,
                    (final_type.value, final_min, edge_id),
                )

        logger.info(f"Updated dependency {edge_id} (type={final_type.value})")
        return self.get_edge(edge_id)

    def remove_edge(self, edge_id: str) -> bool:
        """Delete an edge; absent edges are not an error

        Returns:
            True if a row was deleted
        """
        with write_transaction(self.db):
            cursor = self.db.execute(
                "DELETE FROM resource_version_dependencies WHERE id = ?",
                (edge_id,),
            )
        removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Removed dependency {edge_id}")
        else:
            logger.debug(f"Dependency {edge_id} already absent")
        return removed

    # ============================================
    # Validation helpers
    # ============================================

    def _validate_internal(self, source_resource_id: str, target: InternalTarget) -> None:
        self.catalog.get_resource(target.resource_id)
        if target.resource_id == source_resource_id:
            raise ValidationError(
                "A resource cannot depend on itself",
                resource_id=source_resource_id,
            )
        if target.min_version_id:
            min_version = self.catalog.find_version(target.min_version_id)
            if min_version is None or min_version.resource_id != target.resource_id:
                raise ValidationError(
                    "Minimum version does not belong to the dependency resource",
                    min_version_id=target.min_version_id,
                    dependency_resource_id=target.resource_id,
                )

    def _clean_external(self, target: ExternalTarget) -> ExternalTarget:
        name = " ".join((target.name or "").split())
        if not name:
            raise ValidationError("External dependency requires a name")
        if len(name) > MAX_EXTERNAL_NAME_LENGTH:
            raise ValidationError(f"External name exceeds {MAX_EXTERNAL_NAME_LENGTH} characters")

        url = (target.url or "").strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("External dependency URL must be a valid http(s) URL", url=url or None)

        return ExternalTarget(name=name, url=url, min_version=self._clean_min_version(target.min_version))

    @staticmethod
    def _clean_min_version(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if len(value) > MAX_EXTERNAL_MIN_VERSION_LENGTH:
            raise ValidationError(
                f"Minimum version exceeds {MAX_EXTERNAL_MIN_VERSION_LENGTH} characters"
            )
        return value


def coerce_dependency_type(value: Union[DependencyType, str]) -> DependencyType:
    """Accept enum members or their (case-insensitive) names"""
    if isinstance(value, DependencyType):
        return value
    try:
        return DependencyType(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(t.value for t in DependencyType)
        raise ValidationError(f"Invalid dependency type: {value}. Allowed: {allowed}")


__all__ = ["DependencyStore", "coerce_dependency_type"]
