"""
Content Family Graph Traversal

Analyses over one content family (or two, for path finding):
  - All minimal paths between two items
  - Confidence-weighted shortest path (Dijkstra)
  - Cycle audit over directed edges
  - Degree and betweenness centrality
  - Level order and family summaries

Each analysis reads nodes and edges through a single repository snapshot and
runs on a networkx graph built from it. Tree parent links implied by node
paths are always part of the edge set, whether or not an explicit ``parent``
edge was stored.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

import networkx as nx

from content_graph.errors import NotFoundError, ValidationError
from content_graph.repository import GraphRepository
from content_graph.types import (
    CentralityScore,
    ContentFamily,
    ContentNode,
    CycleReport,
    FamilySummary,
    GraphSnapshot,
    RelationshipEdge,
    WeightedPath,
    effective_edges,
)

logger = logging.getLogger(__name__)


def undirected_graph(
    node_ids: Iterable[str], edges: Sequence[RelationshipEdge], min_confidence: float = 0.01
) -> nx.Graph:
    """Undirected view with ``weight = 1 / max(confidence, min_confidence)``.

    Edges are inserted in the order given, so neighbor iteration follows
    creation order. When both directions of a pair are stored the lighter
    weight is kept.
    """
    graph = nx.Graph()
    graph.add_nodes_from(node_ids)
    for edge in edges:
        if edge.source_id not in graph or edge.target_id not in graph:
            continue
        weight = 1.0 / max(edge.confidence, min_confidence)
        existing = graph.get_edge_data(edge.source_id, edge.target_id)
        if existing is not None and existing["weight"] <= weight:
            continue
        graph.add_edge(edge.source_id, edge.target_id, weight=weight)
    return graph


def directed_graph(node_ids: Iterable[str], edges: Sequence[RelationshipEdge]) -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_nodes_from(node_ids)
    graph.add_edges_from(
        edge.key for edge in edges if edge.source_id in graph and edge.target_id in graph
    )
    return graph


def minimal_paths(graph: nx.Graph, source: str, target: str, max_depth: int) -> List[List[str]]:
    """All shortest simple paths of at most ``max_depth`` hops, sorted."""
    if source == target:
        return [[source]]
    try:
        hops = nx.shortest_path_length(graph, source, target)
    except nx.NetworkXNoPath:
        return []
    if hops > max_depth:
        return []
    return sorted(nx.all_shortest_paths(graph, source, target))


class GraphTraversal:
    """Read-only analyses over content family snapshots."""

    def __init__(
        self,
        repository: GraphRepository,
        *,
        centrality_max_nodes: int = 500,
        default_max_depth: int = 10,
        min_confidence: float = 0.01,
    ) -> None:
        self._repository = repository
        self.centrality_max_nodes = centrality_max_nodes
        self.default_max_depth = default_max_depth
        self.min_confidence = min_confidence

    # ═══════════════════════════════════════════════════════════════════════
    # Path Finding
    # ═══════════════════════════════════════════════════════════════════════

    async def find_paths(self, source_id: str, target_id: str, max_depth: Optional[int] = None) -> List[List[str]]:
        """
        Every minimal-length path between two items over tree and cross edges,
        ignoring edge direction. Empty when no path of at most ``max_depth``
        hops exists.
        """
        depth_limit = self.default_max_depth if max_depth is None else int(max_depth)
        if depth_limit < 1:
            raise ValidationError("max_depth must be at least 1.")

        endpoints = await self._require_nodes(source_id, target_id)
        if source_id == target_id:
            return [[source_id]]

        roots = sorted({node.root_id for node in endpoints.values()})
        snapshot = await self._repository.load_snapshot(roots)
        self._ensure_in_snapshot(snapshot, source_id, target_id)

        graph = undirected_graph(snapshot.nodes, effective_edges(snapshot), self.min_confidence)
        return minimal_paths(graph, source_id, target_id, depth_limit)

    async def shortest_weighted_path(self, source_id: str, target_id: str) -> WeightedPath:
        """
        Dijkstra over the family with weight ``1 / max(confidence, min_confidence)``.
        Edges are traversable in both directions. Equal-cost routes keep the
        first one reached, and neighbors are explored in edge creation order,
        so the older edge wins a tie.
        """
        endpoints = await self._require_nodes(source_id, target_id)
        root_id = endpoints[source_id].root_id
        if endpoints[target_id].root_id != root_id:
            raise NotFoundError(f"{source_id} and {target_id} are not in the same content family.")

        snapshot = await self._repository.load_snapshot([root_id])
        self._ensure_in_snapshot(snapshot, source_id, target_id)
        if source_id == target_id:
            return WeightedPath(nodes=[source_id], total_weight=0.0)

        graph = undirected_graph(snapshot.nodes, effective_edges(snapshot), self.min_confidence)
        try:
            distance, route = nx.single_source_dijkstra(graph, source_id, target_id, weight="weight")
        except nx.NetworkXNoPath as exc:
            raise NotFoundError(f"No weighted path between {source_id} and {target_id}.") from exc
        return WeightedPath(nodes=list(route), total_weight=round(distance, 6))

    # ═══════════════════════════════════════════════════════════════════════
    # Structural Audits
    # ═══════════════════════════════════════════════════════════════════════

    async def detect_cycles(self, root_id: str) -> CycleReport:
        """
        Directed cycle audit. A cycle means corrupted relationship data; it is
        reported, never repaired. ``cycle_nodes`` lists every node on some
        cycle in depth-first order from the root.
        """
        snapshot = await self._family_snapshot(root_id)
        graph = directed_graph(snapshot.nodes, effective_edges(snapshot))
        if nx.is_directed_acyclic_graph(graph):
            return CycleReport(has_cycles=False, cycle_nodes=[])

        on_cycle = set()
        for component in nx.strongly_connected_components(graph):
            if len(component) > 1:
                on_cycle.update(component)
        ordered = [node_id for node_id in nx.dfs_preorder_nodes(graph, root_id) if node_id in on_cycle]
        ordered.extend(sorted(on_cycle.difference(ordered)))

        report = CycleReport(has_cycles=True, cycle_nodes=ordered)
        logger.warning(
            "Cycle detected in content family %s involving %s; relationship data needs review",
            root_id,
            ", ".join(report.cycle_nodes),
        )
        return report

    async def centrality(self, root_id: str) -> List[CentralityScore]:
        """Degree and betweenness per node, each scaled so the family maximum is 1."""
        snapshot = await self._family_snapshot(root_id)
        if len(snapshot.nodes) > self.centrality_max_nodes:
            raise ValidationError(
                f"Family {root_id} has {len(snapshot.nodes)} nodes; centrality is limited to "
                f"{self.centrality_max_nodes}."
            )

        edges = effective_edges(snapshot)
        # Degree counts every incident edge, including both directions of a pair.
        incidence = nx.MultiGraph()
        incidence.add_nodes_from(snapshot.nodes)
        incidence.add_edges_from(edge.key for edge in edges)
        degree_counts: Dict[str, int] = dict(incidence.degree())
        max_degree = max(degree_counts.values(), default=0)

        betweenness = nx.betweenness_centrality(undirected_graph(snapshot.nodes, edges), normalized=False)
        max_betweenness = max(betweenness.values(), default=0.0)

        scores = [
            CentralityScore(
                node_id=node_id,
                degree=round(degree_counts[node_id] / max_degree, 6) if max_degree else 0.0,
                betweenness=round(betweenness[node_id] / max_betweenness, 6) if max_betweenness > 0 else 0.0,
            )
            for node_id in snapshot.nodes
        ]
        scores.sort(key=lambda score: (-score.betweenness, -score.degree, score.node_id))
        return scores

    # ═══════════════════════════════════════════════════════════════════════
    # Family Views
    # ═══════════════════════════════════════════════════════════════════════

    async def level_order(self, root_id: str) -> Dict[int, List[ContentNode]]:
        snapshot = await self._family_snapshot(root_id)
        levels: Dict[int, List[ContentNode]] = {}
        for node in sorted(snapshot.nodes.values(), key=lambda item: (item.depth, item.path)):
            levels.setdefault(node.depth, []).append(node)
        return levels

    async def content_family(self, root_id: str) -> ContentFamily:
        snapshot = await self._family_snapshot(root_id)
        nodes = sorted(snapshot.nodes.values(), key=lambda item: (item.depth, item.path))
        distribution = Counter(node.platform.value for node in nodes)
        return ContentFamily(
            root_id=root_id,
            nodes=nodes,
            edges=effective_edges(snapshot),
            platform_distribution=dict(sorted(distribution.items(), key=lambda item: (-item[1], item[0]))),
        )

    async def subgraphs_for_creator(self, creator_id: str) -> List[FamilySummary]:
        """The creator's families, largest first."""
        owned = await self._repository.nodes_for_creator(creator_id)
        summaries: List[FamilySummary] = []
        for root in (node for node in owned if node.depth == 0):
            members = await self._repository.family_nodes(root.id)
            summaries.append(
                FamilySummary(
                    root_id=root.id,
                    node_count=len(members),
                    max_depth=max((member.depth for member in members), default=0),
                )
            )
        summaries.sort(key=lambda summary: (-summary.node_count, summary.root_id))
        return summaries

    # ═══════════════════════════════════════════════════════════════════════
    # Helpers
    # ═══════════════════════════════════════════════════════════════════════

    async def _require_nodes(self, *node_ids: str) -> Dict[str, ContentNode]:
        found = await self._repository.get_nodes(list(dict.fromkeys(node_ids)))
        missing = [node_id for node_id in dict.fromkeys(node_ids) if node_id not in found]
        if missing:
            raise NotFoundError(f"Content node(s) not found: {', '.join(missing)}")
        return found

    async def _family_snapshot(self, root_id: str) -> GraphSnapshot:
        root = (await self._require_nodes(root_id))[root_id]
        if root.depth != 0:
            raise ValidationError(f"{root_id} is not a family root (its root is {root.root_id}).")
        snapshot = await self._repository.load_snapshot([root_id])
        self._ensure_in_snapshot(snapshot, root_id)
        return snapshot

    @staticmethod
    def _ensure_in_snapshot(snapshot: GraphSnapshot, *node_ids: str) -> None:
        # A node can move or vanish between the point lookup and the snapshot read.
        missing = [node_id for node_id in node_ids if not snapshot.contains(node_id)]
        if missing:
            raise NotFoundError(f"Content node(s) changed during analysis: {', '.join(missing)}")
