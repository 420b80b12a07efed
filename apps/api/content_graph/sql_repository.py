"""SQLAlchemy-backed graph repository and content catalog."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from content_graph.errors import ConflictError
from content_graph.paths import serialize_path, parse_path
from content_graph.repository import (
    ContentCatalog,
    GraphRepository,
    newest_first_key,
    node_sort_key,
)
from content_graph.types import (
    ContentNode,
    ContentRecord,
    ContentType,
    CreationMethod,
    GraphSnapshot,
    PlatformType,
    RelationshipEdge,
    RelationshipType,
)
from models.content_item import ContentItem
from models.content_node import ContentPathNode
from models.content_relationship import ContentRelationship

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_node(row: ContentPathNode) -> ContentNode:
    return ContentNode(
        id=row.id,
        platform=PlatformType(row.platform),
        content_type=ContentType(row.content_type),
        path=parse_path(row.path),
        published_at=_as_utc(row.published_at),
        creator_id=row.creator_id,
    )


def _write_path(row: ContentPathNode, node: ContentNode) -> None:
    row.path = serialize_path(node.path)
    row.depth = node.depth
    row.root_id = node.root_id


def _to_edge(row: ContentRelationship) -> RelationshipEdge:
    return RelationshipEdge(
        source_id=row.source_id,
        target_id=row.target_id,
        relationship_type=RelationshipType(row.relationship_type),
        confidence=float(row.confidence),
        creation_method=CreationMethod(row.creation_method),
        metadata=dict(row.metadata_json or {}),
        sequence=int(row.id),
    )


def _to_record(row: ContentItem) -> ContentRecord:
    return ContentRecord(
        id=row.id,
        creator_id=row.creator_id,
        platform=PlatformType(row.platform),
        content_type=ContentType(row.content_type),
        published_at=_as_utc(row.published_at),
        title=row.title,
    )


class SqlGraphRepository(GraphRepository):
    """Graph storage over ``content_nodes`` and ``content_relationships``.

    ``snapshot_isolation`` (e.g. ``"REPEATABLE READ"`` on Postgres) makes the
    two reads behind ``load_snapshot`` observe the same database state.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        snapshot_isolation: Optional[str] = None,
    ) -> None:
        self._session_maker = session_maker
        self._snapshot_isolation = snapshot_isolation

    async def get_node(self, node_id: str) -> Optional[ContentNode]:
        async with self._session_maker() as db:
            row = await db.get(ContentPathNode, node_id)
            return _to_node(row) if row is not None else None

    async def get_nodes(self, node_ids: Sequence[str]) -> Dict[str, ContentNode]:
        if not node_ids:
            return {}
        async with self._session_maker() as db:
            result = await db.execute(select(ContentPathNode).where(ContentPathNode.id.in_(list(node_ids))))
            return {row.id: _to_node(row) for row in result.scalars().all()}

    async def insert_node(self, node: ContentNode) -> ContentNode:
        async with self._session_maker() as db:
            if await db.get(ContentPathNode, node.id) is not None:
                raise ConflictError(f"Content node {node.id} already exists.")
            row = ContentPathNode(
                id=node.id,
                platform=node.platform.value,
                content_type=node.content_type.value,
                creator_id=node.creator_id,
                published_at=node.published_at,
            )
            _write_path(row, node)
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictError(f"Content node {node.id} already exists.") from None
        return node

    async def replace_nodes(self, nodes: Sequence[ContentNode]) -> None:
        if not nodes:
            return
        by_id = {node.id: node for node in nodes}
        async with self._session_maker() as db:
            result = await db.execute(select(ContentPathNode).where(ContentPathNode.id.in_(list(by_id))))
            for row in result.scalars().all():
                _write_path(row, by_id[row.id])
            await db.commit()

    async def remove_node(self, node_id: str, rewritten: Sequence[ContentNode]) -> int:
        by_id = {node.id: node for node in rewritten}
        async with self._session_maker() as db:
            removed = await db.execute(
                delete(ContentRelationship).where(
                    or_(ContentRelationship.source_id == node_id, ContentRelationship.target_id == node_id)
                )
            )
            await db.execute(delete(ContentPathNode).where(ContentPathNode.id == node_id))
            if by_id:
                result = await db.execute(select(ContentPathNode).where(ContentPathNode.id.in_(list(by_id))))
                for row in result.scalars().all():
                    _write_path(row, by_id[row.id])
            await db.commit()
            return int(removed.rowcount or 0)

    async def descendants(self, node: ContentNode) -> List[ContentNode]:
        prefix = serialize_path(node.path) + "."
        async with self._session_maker() as db:
            result = await db.execute(
                select(ContentPathNode).where(
                    ContentPathNode.root_id == node.root_id,
                    ContentPathNode.path.startswith(prefix, autoescape=True),
                )
            )
            return sorted((_to_node(row) for row in result.scalars().all()), key=node_sort_key)

    async def family_nodes(self, root_id: str) -> List[ContentNode]:
        async with self._session_maker() as db:
            result = await db.execute(select(ContentPathNode).where(ContentPathNode.root_id == root_id))
            return sorted((_to_node(row) for row in result.scalars().all()), key=node_sort_key)

    async def nodes_for_creator(self, creator_id: str) -> List[ContentNode]:
        async with self._session_maker() as db:
            result = await db.execute(select(ContentPathNode).where(ContentPathNode.creator_id == creator_id))
            nodes = [_to_node(row) for row in result.scalars().all()]
        return sorted(nodes, key=lambda node: (node.root_id, node.depth, node.path))

    async def upsert_edge(self, edge: RelationshipEdge) -> RelationshipEdge:
        async with self._session_maker() as db:
            row = await self._edge_row(db, edge.source_id, edge.target_id)
            if row is None:
                row = ContentRelationship(source_id=edge.source_id, target_id=edge.target_id)
                db.add(row)
            self._write_edge(row, edge)
            try:
                await db.commit()
            except IntegrityError:
                # Lost an insert race on (source, target); update the winner instead.
                await db.rollback()
                row = await self._edge_row(db, edge.source_id, edge.target_id)
                if row is None:
                    raise
                self._write_edge(row, edge)
                await db.commit()
            await db.refresh(row)
            return _to_edge(row)

    async def get_edge(self, source_id: str, target_id: str) -> Optional[RelationshipEdge]:
        async with self._session_maker() as db:
            row = await self._edge_row(db, source_id, target_id)
            return _to_edge(row) if row is not None else None

    async def delete_edge(self, source_id: str, target_id: str) -> bool:
        async with self._session_maker() as db:
            result = await db.execute(
                delete(ContentRelationship).where(
                    ContentRelationship.source_id == source_id,
                    ContentRelationship.target_id == target_id,
                )
            )
            await db.commit()
            return bool(result.rowcount)

    async def edges_for(self, node_id: str) -> List[RelationshipEdge]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(ContentRelationship)
                .where(or_(ContentRelationship.source_id == node_id, ContentRelationship.target_id == node_id))
                .order_by(ContentRelationship.id)
            )
            return [_to_edge(row) for row in result.scalars().all()]

    async def edges_within(self, node_ids: Sequence[str]) -> List[RelationshipEdge]:
        ids = list(node_ids)
        if not ids:
            return []
        async with self._session_maker() as db:
            result = await db.execute(
                select(ContentRelationship)
                .where(ContentRelationship.source_id.in_(ids), ContentRelationship.target_id.in_(ids))
                .order_by(ContentRelationship.id)
            )
            return [_to_edge(row) for row in result.scalars().all()]

    async def load_snapshot(self, root_ids: Sequence[str]) -> GraphSnapshot:
        roots = list(root_ids)
        source_node = aliased(ContentPathNode)
        target_node = aliased(ContentPathNode)
        async with self._session_maker() as db:
            if self._snapshot_isolation:
                await db.connection(execution_options={"isolation_level": self._snapshot_isolation})
            node_result = await db.execute(select(ContentPathNode).where(ContentPathNode.root_id.in_(roots)))
            nodes = {row.id: _to_node(row) for row in node_result.scalars().all()}
            edge_result = await db.execute(
                select(ContentRelationship)
                .join(source_node, source_node.id == ContentRelationship.source_id)
                .join(target_node, target_node.id == ContentRelationship.target_id)
                .where(source_node.root_id.in_(roots), target_node.root_id.in_(roots))
                .order_by(ContentRelationship.id)
            )
            edges = [_to_edge(row) for row in edge_result.scalars().all()]
        return GraphSnapshot(nodes=nodes, edges=edges)

    @staticmethod
    async def _edge_row(db: AsyncSession, source_id: str, target_id: str) -> Optional[ContentRelationship]:
        result = await db.execute(
            select(ContentRelationship).where(
                ContentRelationship.source_id == source_id,
                ContentRelationship.target_id == target_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _write_edge(row: ContentRelationship, edge: RelationshipEdge) -> None:
        row.relationship_type = edge.relationship_type.value
        row.confidence = float(edge.confidence)
        row.creation_method = edge.creation_method.value
        row.metadata_json = dict(edge.metadata)


class SqlContentCatalog(ContentCatalog):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def upsert(self, record: ContentRecord) -> ContentRecord:
        async with self._session_maker() as db:
            row = await db.get(ContentItem, record.id)
            if row is None:
                row = ContentItem(id=record.id)
                db.add(row)
            row.creator_id = record.creator_id
            row.platform = record.platform.value
            row.content_type = record.content_type.value
            row.title = record.title
            row.published_at = record.published_at
            await db.commit()
        return record

    async def get(self, content_id: str) -> Optional[ContentRecord]:
        async with self._session_maker() as db:
            row = await db.get(ContentItem, content_id)
            return _to_record(row) if row is not None else None

    async def records_for_creator(self, creator_id: str) -> List[ContentRecord]:
        async with self._session_maker() as db:
            result = await db.execute(select(ContentItem).where(ContentItem.creator_id == creator_id))
            records = [_to_record(row) for row in result.scalars().all()]
        return sorted(records, key=newest_first_key)
