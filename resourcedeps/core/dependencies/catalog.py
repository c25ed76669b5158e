"""Resource Catalog - resources, versions and version selection.

Supplies existence checks and display metadata (name, slug, icon) used to
hydrate internal dependency targets, and decides which concrete version an
internal target resolves to.

Version rules:
- version_number is immutable and unique per resource
- published_at is stamped the first time a version is APPROVED
- a version cannot be deleted while it is the resource's latest version or
  while a dependency edge references it as a minimum version
"""

import logging
import sqlite3
from typing import Dict, Iterable, List, Optional, Union

from ulid import ULID

from resourcedeps.core.dependencies.errors import NotFoundError, ValidationError
from resourcedeps.core.dependencies.models import (
    INSTALLABLE_STATUSES,
    Resource,
    ResourceSummary,
    ResourceVersion,
    VersionStatus,
)
from resourcedeps.core.dependencies.semver import compare_versions
from resourcedeps.core.time import utc_now_iso
from resourcedeps.store import write_transaction

logger = logging.getLogger(__name__)

MAX_VERSION_NUMBER_LENGTH = 50


class ResourceCatalog:
    """Repository for the resources and resource_versions tables"""

    def __init__(self, db: sqlite3.Connection):
        """
        Args:
            db: Connection opened with resourcedeps.store.connect()
        """
        self.db = db

    # ============================================
    # Resources
    # ============================================

    def create_resource(
        self,
        name: str,
        slug: str,
        owner_user_id: str,
        icon_url: Optional[str] = None,
    ) -> Resource:
        """Register a resource

        Raises:
            ValidationError: Missing fields or slug already taken
        """
        if not name or not name.strip():
            raise ValidationError("Resource name is required")
        if not slug or not slug.strip():
            raise ValidationError("Resource slug is required")
        if not owner_user_id:
            raise ValidationError("Resource owner is required")

        resource_id = str(ULID())
        try:
            with write_transaction(self.db):
                self.db.execute(
                    """
                    INSERT INTO resources (id, name, slug, icon_url, owner_user_id, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (resource_id, name.strip(), slug.strip(), icon_url, owner_user_id, utc_now_iso()),
                )
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Resource slug already exists: {slug}") from e

        logger.info(f"Created resource: {slug} ({resource_id})")
        return self.get_resource(resource_id)

    def find_resource(self, resource_id: str) -> Optional[Resource]:
        row = self.db.execute("SELECT * FROM resources WHERE id = ?", (resource_id,)).fetchone()
        return Resource.from_db_row(dict(row)) if row else None

    def get_resource(self, resource_id: str) -> Resource:
        """Raises NotFoundError if absent"""
        resource = self.find_resource(resource_id)
        if resource is None:
            raise NotFoundError("Resource", resource_id)
        return resource

    def get_resource_by_slug(self, slug: str) -> Resource:
        row = self.db.execute("SELECT * FROM resources WHERE slug = ?", (slug,)).fetchone()
        if not row:
            raise NotFoundError("Resource", slug)
        return Resource.from_db_row(dict(row))

    def get_resource_summaries(self, resource_ids: Iterable[str]) -> Dict[str, ResourceSummary]:
        """Bulk metadata lookup; unknown ids are simply missing from the result"""
        ids = list(dict.fromkeys(resource_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = self.db.execute(
            f"SELECT id, name, slug, icon_url FROM resources WHERE id IN ({placeholders})",
            ids,
        ).fetchall()
        return {
            row["id"]: ResourceSummary(id=row["id"], name=row["name"], slug=row["slug"], icon_url=row["icon_url"])
            for row in rows
        }

    def set_latest_version(self, resource_id: str, version_id: str) -> Resource:
        """Point the resource's latest version at one of its versions"""
        version = self.get_version(version_id)
        if version.resource_id != resource_id:
            raise ValidationError(
                "Version does not belong to this resource",
                resource_id=resource_id,
                version_id=version_id,
            )
        with write_transaction(self.db):
            self.db.execute(
                "UPDATE resources SET latest_version_id = ? WHERE id = ?",
                (version_id, resource_id),
            )
        logger.info(f"Set latest version of {resource_id} to {version.version_number}")
        return self.get_resource(resource_id)

    # ============================================
    # Versions
    # ============================================

    def create_version(
        self,
        resource_id: str,
        version_number: str,
        status: Union[VersionStatus, str] = VersionStatus.DRAFT,
    ) -> ResourceVersion:
        """Create a version of a resource

        Raises:
            NotFoundError: Resource does not exist
            ValidationError: Empty/too long version number or duplicate
        """
        self.get_resource(resource_id)
        version_number = (version_number or "").strip()
        if not version_number:
            raise ValidationError("Version number is required")
        if len(version_number) > MAX_VERSION_NUMBER_LENGTH:
            raise ValidationError(f"Version number exceeds {MAX_VERSION_NUMBER_LENGTH} characters")
        status = self._coerce_status(status)

        version_id = str(ULID())
        now = utc_now_iso()
        published_at = now if status in INSTALLABLE_STATUSES else None
        try:
            with write_transaction(self.db):
                self.db.execute(
                    """
                    INSERT INTO resource_versions
                    (id, resource_id, version_number, status, published_at, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (version_id, resource_id, version_number, status.value, published_at, now),
                )
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Version {version_number} already exists for this resource") from e

        logger.info(f"Created version {version_number} for resource {resource_id}")
        return self.get_version(version_id)

    def find_version(self, version_id: str) -> Optional[ResourceVersion]:
        row = self.db.execute("SELECT * FROM resource_versions WHERE id = ?", (version_id,)).fetchone()
        return ResourceVersion.from_db_row(dict(row)) if row else None

    def get_version(self, version_id: str) -> ResourceVersion:
        """Raises NotFoundError if absent"""
        version = self.find_version(version_id)
        if version is None:
            raise NotFoundError("Version", version_id)
        return version

    def list_versions(self, resource_id: str) -> List[ResourceVersion]:
        """Versions of a resource, newest first"""
        rows = self.db.execute(
            """
            SELECT * FROM resource_versions
            WHERE resource_id = ?
            ORDER BY created_at DESC, rowid DESC
            """,
            (resource_id,),
        ).fetchall()
        return [ResourceVersion.from_db_row(dict(row)) for row in rows]

    def set_version_status(self, version_id: str, status: Union[VersionStatus, str]) -> ResourceVersion:
        """Move a version to another moderation status"""
        version = self.get_version(version_id)
        status = self._coerce_status(status)
        published_at = version.published_at
        if status in INSTALLABLE_STATUSES and published_at is None:
            published_at = utc_now_iso()

        with write_transaction(self.db):
            self.db.execute(
                "UPDATE resource_versions SET status = ?, published_at = ? WHERE id = ?",
                (status.value, published_at, version_id),
            )

        logger.info(f"Version {version_id}: {version.status.value} -> {status.value}")
        return self.get_version(version_id)

    def delete_version(self, version_id: str) -> None:
        """Delete a version and, by cascade, its outgoing dependency edges

        Raises:
            ValidationError: Version is the latest one or is referenced as a minimum version
        """
        with write_transaction(self.db):
            row = self.db.execute(
                """
                SELECT v.id, v.resource_id, r.latest_version_id
                FROM resource_versions v JOIN resources r ON r.id = v.resource_id
                WHERE v.id = ?
                """,
                (version_id,),
            ).fetchone()
            if not row:
                raise NotFoundError("Version", version_id)
            if row["latest_version_id"] == version_id:
                raise ValidationError(
                    "Cannot delete the latest version. Set another version as latest first.",
                    version_id=version_id,
                )
            referenced = self.db.execute(
                "SELECT COUNT(*) FROM resource_version_dependencies WHERE min_version_id = ?",
                (version_id,),
            ).fetchone()[0]
            if referenced:
                raise ValidationError(
                    "Cannot delete a version referenced as a minimum version by other dependencies",
                    version_id=version_id,
                    references=referenced,
                )
            self.db.execute("DELETE FROM resource_versions WHERE id = ?", (version_id,))

        logger.info(f"Deleted version {version_id}")

    # ============================================
    # Version selection
    # ============================================

    def select_version(self, resource_id: str, include_unreleased: bool = False) -> Optional[ResourceVersion]:
        """Pick the version an internal dependency on this resource resolves to

        1. The resource's latest version pointer, if installable
        2. Otherwise the most recently published installable version
        3. With include_unreleased, the newest version of any status

        Returns:
            The selected version, or None when nothing qualifies
        """
        resource = self.find_resource(resource_id)
        if resource is None:
            return None

        if resource.latest_version_id:
            latest = self.find_version(resource.latest_version_id)
            if latest is not None and (latest.is_installable or include_unreleased):
                return latest

        statuses = [s.value for s in INSTALLABLE_STATUSES]
        placeholders = ",".join("?" for _ in statuses)
        row = self.db.execute(
            f"""
            SELECT * FROM resource_versions
            WHERE resource_id = ? AND status IN ({placeholders})
            ORDER BY published_at DESC, created_at DESC, rowid DESC
            LIMIT 1
            """,
            [resource_id, *statuses],
        ).fetchone()
        if row:
            return ResourceVersion.from_db_row(dict(row))

        if include_unreleased:
            versions = self.list_versions(resource_id)
            return versions[0] if versions else None
        return None

    @staticmethod
    def compare_versions(a: str, b: str) -> Optional[int]:
        """Semantic comparison of two version numbers, None if incomparable"""
        return compare_versions(a, b)

    @staticmethod
    def satisfies_minimum(version: ResourceVersion, minimum: ResourceVersion) -> Optional[bool]:
        """Whether version is at least minimum (both of the same resource)

        Semantic-version order when both numbers parse; otherwise publish
        order, which is the platform's own release sequence.
        """
        if version.id == minimum.id:
            return True
        cmp = compare_versions(version.version_number, minimum.version_number)
        if cmp is not None:
            return cmp >= 0
        version_time = version.published_at or version.created_at
        minimum_time = minimum.published_at or minimum.created_at
        if version_time is None or minimum_time is None:
            return None
        return version_time >= minimum_time

    @staticmethod
    def _coerce_status(status: Union[VersionStatus, str]) -> VersionStatus:
        if isinstance(status, VersionStatus):
            return status
        try:
            return VersionStatus(str(status).upper())
        except ValueError:
            allowed = ", ".join(s.value for s in VersionStatus)
            raise ValidationError(f"Invalid version status: {status}. Allowed: {allowed}")


__all__ = ["ResourceCatalog"]
