"""Storage contracts for the content graph plus in-memory implementations.

The in-memory classes never await between reading and writing shared state,
so each call is atomic with respect to other coroutines on the loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from content_graph.errors import ConflictError
from content_graph.paths import is_descendant_path
from content_graph.types import ContentNode, ContentRecord, GraphSnapshot, RelationshipEdge


def node_sort_key(node: ContentNode) -> Tuple[int, Tuple[str, ...]]:
    return (node.depth, node.path)


def newest_first_key(record: ContentRecord) -> Tuple[int, float, str]:
    # Newest first, undated records last.
    if record.published_at is None:
        return (1, 0.0, record.id)
    published = record.published_at
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return (0, -published.timestamp(), record.id)


class GraphRepository(ABC):
    """Persistence for the path index (nodes) and relationship edges."""

    @abstractmethod
    async def get_node(self, node_id: str) -> Optional[ContentNode]:
        raise NotImplementedError

    @abstractmethod
    async def get_nodes(self, node_ids: Sequence[str]) -> Dict[str, ContentNode]:
        raise NotImplementedError

    @abstractmethod
    async def insert_node(self, node: ContentNode) -> ContentNode:
        """Insert a new node, raising ConflictError if the id is taken."""
        raise NotImplementedError

    @abstractmethod
    async def replace_nodes(self, nodes: Sequence[ContentNode]) -> None:
        """Rewrite the stored paths of existing nodes in a single write."""
        raise NotImplementedError

    @abstractmethod
    async def remove_node(self, node_id: str, rewritten: Sequence[ContentNode]) -> int:
        """Delete a node with its incident edges and rewrite ``rewritten`` in one write.

        Returns the number of edges removed.
        """
        raise NotImplementedError

    @abstractmethod
    async def descendants(self, node: ContentNode) -> List[ContentNode]:
        """Nodes strictly below ``node``, ordered by depth then path."""
        raise NotImplementedError

    @abstractmethod
    async def family_nodes(self, root_id: str) -> List[ContentNode]:
        raise NotImplementedError

    @abstractmethod
    async def nodes_for_creator(self, creator_id: str) -> List[ContentNode]:
        raise NotImplementedError

    @abstractmethod
    async def upsert_edge(self, edge: RelationshipEdge) -> RelationshipEdge:
        """Create or update the edge keyed by (source, target).

        New edges receive the next creation sequence; updates keep the original one.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_edge(self, source_id: str, target_id: str) -> Optional[RelationshipEdge]:
        raise NotImplementedError

    @abstractmethod
    async def delete_edge(self, source_id: str, target_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def edges_for(self, node_id: str) -> List[RelationshipEdge]:
        raise NotImplementedError

    @abstractmethod
    async def edges_within(self, node_ids: Sequence[str]) -> List[RelationshipEdge]:
        raise NotImplementedError

    @abstractmethod
    async def load_snapshot(self, root_ids: Sequence[str]) -> GraphSnapshot:
        """Read every node under ``root_ids`` and the edges among them in one atomic read."""
        raise NotImplementedError


class ContentCatalog(ABC):
    """Registered content, whether or not it is in the path index."""

    @abstractmethod
    async def upsert(self, record: ContentRecord) -> ContentRecord:
        raise NotImplementedError

    @abstractmethod
    async def get(self, content_id: str) -> Optional[ContentRecord]:
        raise NotImplementedError

    @abstractmethod
    async def records_for_creator(self, creator_id: str) -> List[ContentRecord]:
        """Creator's content, newest first."""
        raise NotImplementedError


class InMemoryGraphRepository(GraphRepository):
    def __init__(self) -> None:
        self._nodes: Dict[str, ContentNode] = {}
        self._edges: Dict[Tuple[str, str], RelationshipEdge] = {}
        self._next_sequence = 1

    async def get_node(self, node_id: str) -> Optional[ContentNode]:
        return self._nodes.get(node_id)

    async def get_nodes(self, node_ids: Sequence[str]) -> Dict[str, ContentNode]:
        return {node_id: self._nodes[node_id] for node_id in node_ids if node_id in self._nodes}

    async def insert_node(self, node: ContentNode) -> ContentNode:
        if node.id in self._nodes:
            raise ConflictError(f"Content node {node.id} already exists.")
        self._nodes[node.id] = node
        return node

    async def replace_nodes(self, nodes: Sequence[ContentNode]) -> None:
        for node in nodes:
            self._nodes[node.id] = node

    async def remove_node(self, node_id: str, rewritten: Sequence[ContentNode]) -> int:
        self._nodes.pop(node_id, None)
        doomed = [key for key in self._edges if node_id in key]
        for key in doomed:
            del self._edges[key]
        for node in rewritten:
            self._nodes[node.id] = node
        return len(doomed)

    async def descendants(self, node: ContentNode) -> List[ContentNode]:
        found = [
            candidate
            for candidate in self._nodes.values()
            if candidate.root_id == node.root_id and is_descendant_path(candidate.path, node.path)
        ]
        return sorted(found, key=node_sort_key)

    async def family_nodes(self, root_id: str) -> List[ContentNode]:
        return sorted((node for node in self._nodes.values() if node.root_id == root_id), key=node_sort_key)

    async def nodes_for_creator(self, creator_id: str) -> List[ContentNode]:
        return sorted(
            (node for node in self._nodes.values() if node.creator_id == creator_id),
            key=lambda node: (node.root_id, node.depth, node.path),
        )

    async def upsert_edge(self, edge: RelationshipEdge) -> RelationshipEdge:
        existing = self._edges.get(edge.key)
        if existing is not None:
            stored = replace(edge, sequence=existing.sequence)
        else:
            stored = replace(edge, sequence=self._next_sequence)
            self._next_sequence += 1
        self._edges[edge.key] = stored
        return stored

    async def get_edge(self, source_id: str, target_id: str) -> Optional[RelationshipEdge]:
        return self._edges.get((source_id, target_id))

    async def delete_edge(self, source_id: str, target_id: str) -> bool:
        return self._edges.pop((source_id, target_id), None) is not None

    async def edges_for(self, node_id: str) -> List[RelationshipEdge]:
        return sorted(
            (edge for edge in self._edges.values() if node_id in edge.key),
            key=lambda edge: edge.sequence,
        )

    async def edges_within(self, node_ids: Sequence[str]) -> List[RelationshipEdge]:
        return self._edges_among(set(node_ids))

    async def load_snapshot(self, root_ids: Sequence[str]) -> GraphSnapshot:
        wanted = set(root_ids)
        nodes = {node.id: node for node in self._nodes.values() if node.root_id in wanted}
        return GraphSnapshot(nodes=nodes, edges=self._edges_among(set(nodes)))

    def _edges_among(self, ids: Iterable[str]) -> List[RelationshipEdge]:
        members = set(ids)
        return sorted(
            (
                edge
                for edge in self._edges.values()
                if edge.source_id in members and edge.target_id in members
            ),
            key=lambda edge: edge.sequence,
        )


class InMemoryContentCatalog(ContentCatalog):
    def __init__(self) -> None:
        self._records: Dict[str, ContentRecord] = {}

    async def upsert(self, record: ContentRecord) -> ContentRecord:
        self._records[record.id] = record
        return record

    async def get(self, content_id: str) -> Optional[ContentRecord]:
        return self._records.get(content_id)

    async def records_for_creator(self, creator_id: str) -> List[ContentRecord]:
        records = [record for record in self._records.values() if record.creator_id == creator_id]
        return sorted(records, key=newest_first_key)
