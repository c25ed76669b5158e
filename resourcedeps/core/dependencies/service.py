"""Dependency Service - request-facing facade

Every call takes an explicit RequestContext. Mutations are allowed only for
the resource owner and only while the version is DRAFT or REJECTED; reads
are open to anonymous callers.

Usage:
    service = DependencyService(get_db())
    ctx = RequestContext(user_id="user_01")
    edge = service.add_dependency(ctx, resource_id, version_id, draft)
    plan = service.resolve(ctx, resource_id, version_id)
"""

import logging
import sqlite3
from typing import List, Optional, Union

from resourcedeps.config import Settings, load_settings
from resourcedeps.core.context import RequestContext
from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.core.dependencies.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from resourcedeps.core.dependencies.graph_builder import GraphBuilder
from resourcedeps.core.dependencies.models import (
    EDITABLE_STATUSES,
    DependencyDraft,
    DependencyEdge,
    DependencyGraph,
    DependencyType,
    DependentsPage,
    ExternalTarget,
    InstallPlan,
    InternalTarget,
    ResolutionOutcome,
    ResourceVersion,
)
from resourcedeps.core.dependencies.resolver import ConstraintResolver
from resourcedeps.core.dependencies.store import DependencyStore

logger = logging.getLogger(__name__)


class DependencyService:
    """Ownership and status rules on top of store, builder and resolver"""

    def __init__(self, db: sqlite3.Connection, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or load_settings()
        self.catalog = ResourceCatalog(db)
        self.store = DependencyStore(db, self.catalog)
        self.graph_builder = GraphBuilder(
            db, self.catalog, self.store, max_depth=self.settings.max_graph_depth
        )
        self.resolver = ConstraintResolver(
            db, self.catalog, self.store, graph_builder=self.graph_builder
        )

    # ============================================
    # Mutations
    # ============================================

    def add_dependency(
        self,
        ctx: RequestContext,
        resource_id: str,
        version_id: str,
        draft: DependencyDraft,
    ) -> DependencyEdge:
        self._editable_version(ctx, resource_id, version_id)
        edge = self.store.add_edge(version_id, draft)
        logger.info(f"[{ctx.request_id}] {ctx.user_id} added dependency {edge.id} to {version_id}")
        return edge

    def update_dependency(
        self,
        ctx: RequestContext,
        resource_id: str,
        version_id: str,
        dependency_id: str,
        **changes,
    ) -> DependencyEdge:
        """Apply dependency_type / min_version_id / external_min_version changes"""
        self._editable_version(ctx, resource_id, version_id)
        self._edge_of_version(version_id, dependency_id)
        edge = self.store.update_edge(dependency_id, **changes)
        logger.info(f"[{ctx.request_id}] {ctx.user_id} updated dependency {dependency_id}")
        return edge

    def remove_dependency(
        self,
        ctx: RequestContext,
        resource_id: str,
        version_id: str,
        dependency_id: str,
    ) -> bool:
        """Remove an edge of the version; removing an absent edge is a no-op

        Returns:
            True if an edge was deleted
        """
        self._editable_version(ctx, resource_id, version_id)
        edge = self.store.find_edge(dependency_id)
        if edge is None:
            return False
        if edge.version_id != version_id:
            raise NotFoundError("Dependency", dependency_id)
        return self.store.remove_edge(dependency_id)

    # ============================================
    # Reads
    # ============================================

    def get_dependencies(
        self, ctx: RequestContext, resource_id: str, version_id: str
    ) -> List[DependencyEdge]:
        self._version_of_resource(resource_id, version_id)
        return self.store.list_edges(version_id)

    def get_dependents(
        self,
        ctx: RequestContext,
        resource_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> DependentsPage:
        return self.store.list_dependents(
            resource_id, page=page, limit=limit, max_limit=self.settings.dependents_max_limit
        )

    def get_graph(
        self,
        ctx: RequestContext,
        resource_id: str,
        version_id: str,
        include_optional: bool = False,
    ) -> DependencyGraph:
        self._version_of_resource(resource_id, version_id)
        return self.graph_builder.build(version_id, include_optional=include_optional)

    def resolve(
        self,
        ctx: RequestContext,
        resource_id: str,
        version_id: str,
        include_optional: bool = False,
    ) -> InstallPlan:
        """Install plan; raises ConflictError subclasses on conflicts"""
        self._version_of_resource(resource_id, version_id)
        return self.resolver.resolve(version_id, include_optional=include_optional)

    def run_resolution(
        self,
        ctx: RequestContext,
        resource_id: str,
        version_id: str,
        include_optional: bool = False,
    ) -> ResolutionOutcome:
        """Like resolve() but reports the terminal state instead of raising"""
        self._version_of_resource(resource_id, version_id)
        return self.resolver.run(version_id, include_optional=include_optional, request_id=ctx.request_id)

    # ============================================
    # Rules
    # ============================================

    def _version_of_resource(self, resource_id: str, version_id: str) -> ResourceVersion:
        version = self.catalog.find_version(version_id)
        if version is None or version.resource_id != resource_id:
            raise NotFoundError("Version", version_id)
        return version

    def _editable_version(self, ctx: RequestContext, resource_id: str, version_id: str) -> ResourceVersion:
        resource = self.catalog.get_resource(resource_id)
        version = self._version_of_resource(resource_id, version_id)

        if not ctx.is_authenticated or resource.owner_user_id != ctx.user_id:
            logger.warning(
                f"[{ctx.request_id}] {ctx.user_id or 'anonymous'} may not manage resource {resource_id}"
            )
            raise PermissionDeniedError(
                "You do not have permission to manage this resource",
                resource_id=resource_id,
            )

        if version.status not in EDITABLE_STATUSES:
            raise ValidationError(
                "Dependencies can only be modified on DRAFT or REJECTED versions",
                version_id=version_id,
                status=version.status.value,
            )
        return version

    def _edge_of_version(self, version_id: str, dependency_id: str) -> DependencyEdge:
        edge = self.store.get_edge(dependency_id)
        if edge.version_id != version_id:
            raise NotFoundError("Dependency", dependency_id)
        return edge


def make_draft(
    dependency_type: Union[DependencyType, str],
    resource_id: Optional[str] = None,
    min_version_id: Optional[str] = None,
    external_name: Optional[str] = None,
    external_url: Optional[str] = None,
    external_min_version: Optional[str] = None,
) -> DependencyDraft:
    """Build a draft from flat request fields

    Exactly one of resource_id or external_name + external_url must be given.

    Raises:
        ValidationError: Neither or both target kinds supplied
    """
    has_internal = bool(resource_id)
    has_external = bool(external_name) and bool(external_url)
    if not has_internal and not has_external:
        raise ValidationError(
            "Either a dependency resource (internal) or an external name and URL must be provided"
        )
    if has_internal and (external_name or external_url):
        raise ValidationError("Cannot specify both internal and external dependency. Choose one.")

    if has_internal:
        return DependencyDraft(
            dependency_type=dependency_type,
            target=InternalTarget(resource_id=resource_id, min_version_id=min_version_id or None),
        )
    if min_version_id:
        raise ValidationError("min_version_id only applies to internal dependencies")
    return DependencyDraft(
        dependency_type=dependency_type,
        target=ExternalTarget(name=external_name, url=external_url, min_version=external_min_version),
    )


__all__ = ["DependencyService", "make_draft"]
