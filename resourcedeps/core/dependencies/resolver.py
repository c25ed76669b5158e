"""Constraint Resolver - root version to ordered install plan

Steps:
1. Build the dependency graph (GraphBuilder)
2. Select the install set: the root plus every version reachable through
   REQUIRED edges (and OPTIONAL edges when requested). EMBEDDED targets ship
   inside their host and are not installed themselves; their own
   dependencies are installed on behalf of the host.
3. Check constraints: per target, the highest minimum version wins and the
   selected version must satisfy it; INCOMPATIBLE pairs inside the set are
   conflicts.
4. Order with Kahn's algorithm so dependencies come before dependents. Ties
   are broken by graph discovery order, which keeps plans deterministic.

Conflicts are reported, never auto-resolved.
"""

import heapq
import logging
import sqlite3
from collections import defaultdict, deque
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple

from ulid import ULID

from resourcedeps.core.dependencies.catalog import ResourceCatalog
from resourcedeps.core.dependencies.errors import (
    AmbiguousConstraintError,
    ConflictError,
    CycleDetectedError,
    GraphTooDeepError,
    IncompatibleDependencyError,
    UnsatisfiableConstraintError,
)
from resourcedeps.core.dependencies.graph_builder import DEFAULT_MAX_DEPTH, GraphBuilder
from resourcedeps.core.dependencies.models import (
    DependencyGraph,
    DependencyType,
    ExternalRequirement,
    GraphEdge,
    GraphNode,
    InstallPlan,
    InstallStep,
    InternalTarget,
    NodeKind,
    ResolutionOutcome,
    ResolutionState,
    ResourceVersion,
)
from resourcedeps.core.dependencies.semver import compare_versions
from resourcedeps.core.dependencies.store import DependencyStore

logger = logging.getLogger(__name__)


class ConstraintResolver:
    """Turns a root version into an InstallPlan or reports the conflict"""

    def __init__(
        self,
        db: sqlite3.Connection,
        catalog: Optional[ResourceCatalog] = None,
        store: Optional[DependencyStore] = None,
        graph_builder: Optional[GraphBuilder] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.db = db
        self.catalog = catalog or ResourceCatalog(db)
        self.store = store or DependencyStore(db, self.catalog)
        self.graph_builder = graph_builder or GraphBuilder(
            db, self.catalog, self.store, max_depth=max_depth
        )

    def resolve(self, root_version_id: str, include_optional: bool = False) -> InstallPlan:
        """Compute the install plan of a root version

        Raises:
            NotFoundError: Root version does not exist
            GraphTooDeepError: Graph depth guard tripped
            ConflictError: Cycle, incompatibility or constraint conflict
        """
        graph = self.graph_builder.build(root_version_id, include_optional=include_optional)
        return self.plan_from_graph(graph)

    def run(
        self,
        root_version_id: str,
        include_optional: bool = False,
        request_id: Optional[str] = None,
    ) -> ResolutionOutcome:
        """Resolve and report the terminal state instead of raising on conflicts

        NotFoundError still propagates: there is nothing to resolve.
        """
        outcome = ResolutionOutcome(
            request_id=request_id or str(ULID()),
            root_version_id=root_version_id,
        )

        try:
            self._transition(outcome, ResolutionState.BUILDING_GRAPH)
            graph = self.graph_builder.build(root_version_id, include_optional=include_optional)
            self._transition(outcome, ResolutionState.CHECKING_CONSTRAINTS)
            outcome.plan = self.plan_from_graph(graph)
            self._transition(outcome, ResolutionState.RESOLVED)
        except (CycleDetectedError, GraphTooDeepError) as e:
            self._fail(outcome, ResolutionState.ERROR, e)
        except ConflictError as e:
            self._fail(outcome, ResolutionState.CONFLICT, e)

        return outcome

    def plan_from_graph(self, graph: DependencyGraph) -> InstallPlan:
        """Select, check and order the install set of a built graph"""
        plan = InstallPlan(root_version_id=graph.root_key, include_optional=graph.include_optional)
        discovery = {key: index for index, key in enumerate(graph.nodes)}

        selected, install_edges, embedded = self._select(graph)

        self._check_incompatible(graph, selected)
        min_versions = self._merge_internal_constraints(graph, selected, install_edges)

        required_by: Dict[str, List[str]] = defaultdict(list)
        for edge in install_edges:
            if edge.source not in required_by[edge.target]:
                required_by[edge.target].append(edge.source)

        for key in self._order(graph, selected, install_edges, discovery):
            node = graph.nodes[key]
            plan.steps.append(
                InstallStep(
                    version=node.version,
                    resource=node.resource,
                    required_min_version=min_versions.get(key),
                    required_by=required_by.get(key, []),
                )
            )

        plan.external = self._merge_external(graph, selected + embedded)
        plan.embedded = [graph.nodes[key] for key in embedded]
        plan.skipped_optional = self._skipped_optional(graph, selected + embedded)

        logger.info(
            f"Resolved {graph.root_key}: {len(plan.steps)} steps, "
            f"{len(plan.external)} external, {len(plan.embedded)} embedded"
        )
        return plan

    # ============================================
    # Install set
    # ============================================

    def _select(self, graph: DependencyGraph) -> Tuple[List[str], List[GraphEdge], List[str]]:
        """Install set in discovery order, the edges between its members and the embedded nodes

        An EMBEDDED target is bundled inside its host and never installed on
        its own, but its REQUIRED (and requested OPTIONAL) dependencies still
        have to be present. They are installed as dependencies of the host.
        """
        install_types = {DependencyType.REQUIRED}
        if graph.include_optional:
            install_types.add(DependencyType.OPTIONAL)

        selected = [graph.root_key]
        seen = {graph.root_key}
        embedded: List[str] = []
        install_edges: List[GraphEdge] = []
        recorded: Set[Tuple[str, str]] = set()

        # (node whose edges are walked, installed node that carries them)
        queue = deque([(graph.root_key, graph.root_key)])
        walked = {(graph.root_key, graph.root_key)}
        while queue:
            key, host = queue.popleft()
            for edge in graph.outgoing(key):
                target = graph.nodes[edge.target]
                if edge.dependency_type == DependencyType.EMBEDDED:
                    if target.kind != NodeKind.VERSION:
                        continue
                    if target.key not in embedded:
                        embedded.append(target.key)
                    if (target.key, host) not in walked:
                        walked.add((target.key, host))
                        queue.append((target.key, host))
                    continue
                if edge.dependency_type not in install_types:
                    continue
                if target.kind == NodeKind.EXTERNAL:
                    continue
                if target.kind == NodeKind.UNRESOLVED:
                    if edge.dependency_type == DependencyType.REQUIRED:
                        raise UnsatisfiableConstraintError(
                            target.label,
                            "no installable (APPROVED) version",
                            required_min_version=edge.min_version,
                            edge_ids=[edge.edge_id],
                        )
                    continue
                if key != host:
                    edge = replace(edge, source=host)
                if (edge.edge_id, edge.source) not in recorded:
                    recorded.add((edge.edge_id, edge.source))
                    install_edges.append(edge)
                if target.key not in seen:
                    seen.add(target.key)
                    selected.append(target.key)
                    walked.add((target.key, target.key))
                    queue.append((target.key, target.key))

        return selected, install_edges, [key for key in embedded if key not in seen]

    def _order(
        self,
        graph: DependencyGraph,
        selected: List[str],
        install_edges: List[GraphEdge],
        discovery: Dict[str, int],
    ) -> List[str]:
        """Kahn's algorithm; a dependency precedes every dependent"""
        pending: Dict[str, Set[str]] = {key: set() for key in selected}
        dependents: Dict[str, Set[str]] = defaultdict(set)
        for edge in install_edges:
            if edge.source == edge.target:
                continue
            pending[edge.source].add(edge.target)
            dependents[edge.target].add(edge.source)

        ready = [(discovery[key], key) for key in selected if not pending[key]]
        heapq.heapify(ready)
        order: List[str] = []

        while ready:
            _, key = heapq.heappop(ready)
            order.append(key)
            for dependent in dependents.get(key, ()):
                pending[dependent].discard(key)
                if not pending[dependent]:
                    heapq.heappush(ready, (discovery[dependent], dependent))

        if len(order) != len(selected):
            stuck = [key for key in selected if key not in set(order)]
            labels = [graph.nodes[key].label for key in stuck]
            edge_ids = [e.edge_id for e in install_edges if e.source in stuck and e.target in stuck]
            logger.error(f"Install ordering failed for {graph.root_key}, cycle among: {labels}")
            raise CycleDetectedError(labels, source_version_id=graph.root_key, edge_ids=edge_ids)

        return order

    # ============================================
    # Constraint checks
    # ============================================

    def _check_incompatible(self, graph: DependencyGraph, selected: List[str]) -> None:
        by_resource = {
            graph.nodes[key].resource.id: graph.nodes[key]
            for key in selected
            if graph.nodes[key].resource is not None
        }

        conflicts = []
        for key in selected:
            source = graph.nodes[key]
            for edge in graph.outgoing(key):
                if edge.dependency_type != DependencyType.INCOMPATIBLE:
                    continue
                target_ref = graph.nodes[edge.target]
                if target_ref.resource is None or target_ref.kind == NodeKind.EXTERNAL:
                    continue
                installed = by_resource.get(target_ref.resource.id)
                if installed is None:
                    continue
                if edge.min_version and not self._at_least(installed, edge):
                    # Only versions at or above the declared minimum clash
                    continue
                conflicts.append(
                    {
                        "edge_id": edge.edge_id,
                        "source_name": source.resource.name,
                        "source_version_id": source.version.id,
                        "target_name": installed.resource.name,
                        "target_version_id": installed.version.id,
                        "min_version": edge.min_version,
                    }
                )

        if conflicts:
            raise IncompatibleDependencyError(conflicts)

    def _at_least(self, installed: GraphNode, edge: GraphEdge) -> bool:
        minimum = self._min_version_row(edge)
        if minimum is None:
            cmp = compare_versions(installed.version.version_number, edge.min_version)
            return cmp is None or cmp >= 0
        result = self.catalog.satisfies_minimum(installed.version, minimum)
        return result is None or result

    def _min_version_row(self, edge: GraphEdge) -> Optional[ResourceVersion]:
        """Version row behind an internal edge's minimum, if any"""
        edge_row = self.store.find_edge(edge.edge_id)
        if edge_row is None or not isinstance(edge_row.target, InternalTarget):
            return None
        if not edge_row.target.min_version_id:
            return None
        return self.catalog.find_version(edge_row.target.min_version_id)

    def _merge_internal_constraints(
        self,
        graph: DependencyGraph,
        selected: List[str],
        install_edges: List[GraphEdge],
    ) -> Dict[str, str]:
        """Winning minimum version per selected node, checked against the selection"""
        constraints: Dict[str, List[GraphEdge]] = defaultdict(list)
        for edge in install_edges:
            if edge.min_version:
                constraints[edge.target].append(edge)

        winners: Dict[str, str] = {}
        for key, edges in constraints.items():
            node = graph.nodes[key]
            winner = self._highest(node.label, edges)
            winners[key] = winner.min_version

            minimum = self._min_version_row(winner)
            satisfied = (
                self.catalog.satisfies_minimum(node.version, minimum)
                if minimum is not None
                else (compare_versions(node.version.version_number, winner.min_version) or 0) >= 0
            )
            if not satisfied:
                raise UnsatisfiableConstraintError(
                    node.resource.name,
                    f"selected version {node.version.version_number} is below required {winner.min_version}",
                    required_min_version=winner.min_version,
                    available_version=node.version.version_number,
                    edge_ids=[e.edge_id for e in edges],
                )

        return winners

    def _merge_external(self, graph: DependencyGraph, selected: List[str]) -> List[ExternalRequirement]:
        install_types = {DependencyType.REQUIRED}
        if graph.include_optional:
            install_types.add(DependencyType.OPTIONAL)

        grouped: Dict[str, List[GraphEdge]] = {}
        for key in selected:
            for edge in graph.outgoing(key):
                if edge.dependency_type in install_types and graph.nodes[edge.target].kind == NodeKind.EXTERNAL:
                    grouped.setdefault(edge.target, []).append(edge)

        requirements = []
        for key, edges in grouped.items():
            external = graph.nodes[key].external
            constrained = [e for e in edges if e.min_version]
            winner = self._highest(external.name, constrained) if constrained else None
            requirements.append(
                ExternalRequirement(
                    name=external.name,
                    url=external.url,
                    min_version=winner.min_version if winner else None,
                    required_by=list(dict.fromkeys(e.source for e in edges)),
                )
            )
        return requirements

    @staticmethod
    def _highest(target_name: str, edges: List[GraphEdge]) -> GraphEdge:
        """Edge carrying the highest minimum version

        Raises:
            AmbiguousConstraintError: Two distinct minimums cannot be ordered
        """
        best = edges[0]
        for edge in edges[1:]:
            if edge.min_version == best.min_version:
                continue
            cmp = compare_versions(edge.min_version, best.min_version)
            if cmp is None:
                raise AmbiguousConstraintError(
                    target_name,
                    [
                        {"edge_id": best.edge_id, "min_version": best.min_version},
                        {"edge_id": edge.edge_id, "min_version": edge.min_version},
                    ],
                )
            if cmp > 0:
                best = edge
        return best

    # ============================================
    # Annotations
    # ============================================

    def _skipped_optional(self, graph: DependencyGraph, selected: List[str]):
        skipped = []
        for key in selected:
            for edge in self.store.list_edges(graph.nodes[key].version.id):
                if edge.dependency_type != DependencyType.OPTIONAL:
                    continue
                if not graph.include_optional:
                    skipped.append(edge)
                    continue
                # Requested, but nothing installable to pick
                target_key = next(
                    (e.target for e in graph.outgoing(key) if e.edge_id == edge.id),
                    None,
                )
                if target_key and graph.nodes[target_key].kind == NodeKind.UNRESOLVED:
                    skipped.append(edge)
        return skipped

    # ============================================
    # State machine
    # ============================================

    @staticmethod
    def _transition(outcome: ResolutionOutcome, state: ResolutionState) -> None:
        logger.debug(f"Resolution {outcome.request_id}: {outcome.state.value} -> {state.value}")
        outcome.state = state

    def _fail(self, outcome: ResolutionOutcome, state: ResolutionState, error: Exception) -> None:
        self._transition(outcome, state)
        outcome.error_code = getattr(error, "error_code", type(error).__name__)
        outcome.error_message = getattr(error, "message", str(error))
        outcome.error_details = error.details() if hasattr(error, "details") else {}
        log = logger.error if state == ResolutionState.ERROR else logger.info
        log(f"Resolution {outcome.request_id} ended in {state.value}: {error}")


__all__ = ["ConstraintResolver"]
