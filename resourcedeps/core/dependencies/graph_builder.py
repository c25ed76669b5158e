"""Graph Builder - transitive dependency graph of a root version

Breadth-first expansion:
- REQUIRED and EMBEDDED edges are always followed, OPTIONAL edges only with
  include_optional
- INCOMPATIBLE edges are recorded but their targets are not expanded
- internal targets resolve to a concrete version through the catalog; a
  target without an installable version becomes an "unresolved" leaf
- external targets are leaves keyed by normalized name

Node keys: the selected version id, "resource:<id>" for unresolved internal
targets, "external:<name>" for external targets. Each key is expanded once,
so shared dependencies (diamonds) collapse to a single node.
"""

import logging
import sqlite3
from collections import deque
from typing import Dict, Optional

from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.core.dependencies.errors import GraphTooDeepError
from resourcedeps.core.dependencies.models import (
    DependencyEdge,
    DependencyGraph,
    DependencyType,
    ExternalTarget,
    GraphEdge,
    GraphNode,
    InternalTarget,
    NodeKind,
    ResourceVersion,
)
from resourcedeps.core.dependencies.store import DependencyStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50

FOLLOWED_TYPES = frozenset({DependencyType.REQUIRED, DependencyType.EMBEDDED})


class GraphBuilder:
    """Builds DependencyGraph instances; read-only, safe to run concurrently"""

    def __init__(
        self,
        db: sqlite3.Connection,
        catalog: Optional[ResourceCatalog] = None,
        store: Optional[DependencyStore] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.db = db
        self.catalog = catalog or ResourceCatalog(db)
        self.store = store or DependencyStore(db, self.catalog)
        self.max_depth = max_depth

    def build(self, root_version_id: str, include_optional: bool = False) -> DependencyGraph:
        """Expand a root version into its dependency graph

        Raises:
            NotFoundError: Root version does not exist
            GraphTooDeepError: Expansion exceeded max_depth
        """
        root_version = self.catalog.get_version(root_version_id)
        root_resource = self.catalog.get_resource(root_version.resource_id)

        graph = DependencyGraph(root_key=root_version.id, include_optional=include_optional)
        graph.nodes[root_version.id] = GraphNode(
            key=root_version.id,
            kind=NodeKind.ROOT,
            depth=0,
            resource=root_resource.summary(),
            version=root_version,
        )

        followed = set(FOLLOWED_TYPES)
        if include_optional:
            followed.add(DependencyType.OPTIONAL)

        # Resource -> selected version (None when nothing is installable).
        # The root's own resource always resolves to the root.
        selections: Dict[str, Optional[ResourceVersion]] = {root_resource.id: root_version}

        queue = deque([root_version.id])
        queued = {root_version.id}

        while queue:
            node = graph.nodes[queue.popleft()]
            for edge in self.store.list_edges(node.version.id):
                if edge.dependency_type == DependencyType.OPTIONAL and not include_optional:
                    continue

                target_node = self._target_node(graph, edge, node.depth + 1, selections)
                graph.edges.append(
                    GraphEdge(
                        edge_id=edge.id,
                        source=node.key,
                        target=target_node.key,
                        dependency_type=edge.dependency_type,
                        min_version=edge.target.min_version,
                    )
                )

                if edge.dependency_type not in followed:
                    continue
                if target_node.kind != NodeKind.VERSION or target_node.key in queued:
                    continue
                if node.depth + 1 > self.max_depth:
                    logger.error(
                        f"Dependency graph of {root_version_id} exceeds max depth {self.max_depth} "
                        f"at {target_node.key}; stored dependency data may be corrupt"
                    )
                    raise GraphTooDeepError(root_version_id, self.max_depth, node_key=target_node.key)

                # First discovery through a followed edge fixes the BFS depth
                target_node.depth = node.depth + 1
                queued.add(target_node.key)
                queue.append(target_node.key)

            node.expanded = True

        logger.debug(
            f"Built dependency graph for {root_version_id}: "
            f"{len(graph.nodes)} nodes, {len(graph.edges)} edges"
        )
        return graph

    def _target_node(
        self,
        graph: DependencyGraph,
        edge: DependencyEdge,
        depth: int,
        selections: Dict[str, Optional[ResourceVersion]],
    ) -> GraphNode:
        """Return the node an edge points at, creating it on first sight"""
        target = edge.target
        if isinstance(target, ExternalTarget):
            key = target.key
            if key not in graph.nodes:
                graph.nodes[key] = GraphNode(key=key, kind=NodeKind.EXTERNAL, depth=depth, external=target)
            return graph.nodes[key]

        assert isinstance(target, InternalTarget)
        if target.resource_id not in selections:
            selections[target.resource_id] = self.catalog.select_version(target.resource_id)
        selected = selections[target.resource_id]

        key = selected.id if selected is not None else target.key
        if key in graph.nodes:
            return graph.nodes[key]

        resource = target.resource
        if resource is None:
            resource = self.catalog.get_resource_summaries([target.resource_id]).get(target.resource_id)

        graph.nodes[key] = GraphNode(
            key=key,
            kind=NodeKind.VERSION if selected is not None else NodeKind.UNRESOLVED,
            depth=depth,
            resource=resource,
            version=selected,
        )
        return graph.nodes[key]


__all__ = ["GraphBuilder", "DEFAULT_MAX_DEPTH"]
