"""Typed, weighted relationship edges between content nodes."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from content_graph.errors import NotFoundError, ValidationError
from content_graph.repository import GraphRepository
from content_graph.types import (
    CreationMethod,
    MetadataValue,
    RelationshipEdge,
    RelationshipType,
    parse_enum,
)

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def _validate_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Confidence must be a number in [0, 1], got {value!r}.") from None
    if math.isnan(confidence) or confidence < 0.0 or confidence > 1.0:
        raise ValidationError(f"Confidence must be within [0, 1], got {value!r}.")
    return confidence


def _validate_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, MetadataValue]:
    cleaned: Dict[str, MetadataValue] = {}
    for key, value in (metadata or {}).items():
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            raise ValidationError(f"Edge metadata value for {key!r} must be a scalar.")
        cleaned[str(key)] = value
    return cleaned


class RelationshipGraph:
    """Edge store that never touches node paths."""

    def __init__(self, repository: GraphRepository) -> None:
        self._repository = repository

    async def add_edge(
        self,
        source_id: str,
        target_id: str,
        relationship_type: RelationshipType,
        confidence: float,
        creation_method: CreationMethod,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> RelationshipEdge:
        """Create or update the (source, target) edge.

        Re-adding an existing pair overwrites its attributes but keeps the
        original creation order, which Dijkstra uses as its tie-breaker.
        """
        edge_type = parse_enum(RelationshipType, relationship_type, "relationship type")
        method = parse_enum(CreationMethod, creation_method, "creation method")
        score = _validate_confidence(confidence)
        if source_id == target_id:
            raise ValidationError(f"Edge source and target must differ ({source_id}).")
        cleaned_metadata = _validate_metadata(metadata)

        found = await self._repository.get_nodes([source_id, target_id])
        missing = [node_id for node_id in (source_id, target_id) if node_id not in found]
        if missing:
            raise NotFoundError(f"Content node(s) not found: {', '.join(missing)}")

        stored = await self._repository.upsert_edge(
            RelationshipEdge(
                source_id=source_id,
                target_id=target_id,
                relationship_type=edge_type,
                confidence=score,
                creation_method=method,
                metadata=cleaned_metadata,
            )
        )
        logger.info(
            "Stored %s edge %s -> %s (confidence=%.2f, method=%s)",
            edge_type.value,
            source_id,
            target_id,
            score,
            method.value,
        )
        return stored

    async def get_edge(self, source_id: str, target_id: str) -> RelationshipEdge:
        edge = await self._repository.get_edge(source_id, target_id)
        if edge is None:
            raise NotFoundError(f"Edge {source_id} -> {target_id} not found.")
        return edge

    async def remove_edge(self, source_id: str, target_id: str) -> None:
        if not await self._repository.delete_edge(source_id, target_id):
            raise NotFoundError(f"Edge {source_id} -> {target_id} not found.")
        logger.info("Removed edge %s -> %s", source_id, target_id)

    async def edges_for(self, node_id: str) -> List[RelationshipEdge]:
        if await self._repository.get_node(node_id) is None:
            raise NotFoundError(f"Content node {node_id} not found.")
        return await self._repository.edges_for(node_id)

    async def edges_within(self, node_ids: Sequence[str]) -> List[RelationshipEdge]:
        if not node_ids:
            return []
        return await self._repository.edges_within(node_ids)
