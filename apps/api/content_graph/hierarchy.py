"""
Materialized-path hierarchy over content nodes.

Every node stores its full ancestor chain, so ancestor and descendant lookups
are prefix operations instead of recursive walks. Writes that rename a subtree
(attach, detach, remove) are serialized per family with an asyncio lock keyed
by root id.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from content_graph.errors import ContentGraphError, CycleDetectedError, NotFoundError, ValidationError
from content_graph.paths import longest_common_prefix, rebase_path, validate_node_id
from content_graph.repository import ContentCatalog, GraphRepository
from content_graph.types import (
    ContentNode,
    ContentRecord,
    ContentType,
    NodeRemoval,
    PlatformType,
    parse_enum,
)

logger = logging.getLogger(__name__)


class HierarchyStore:
    def __init__(self, repository: GraphRepository, catalog: ContentCatalog) -> None:
        self._repository = repository
        self._catalog = catalog
        self._root_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # ── Writes ────────────────────────────────────────────────

    async def insert_root(
        self,
        node_id: str,
        platform: PlatformType,
        content_type: ContentType,
        *,
        published_at: Optional[datetime] = None,
        creator_id: Optional[str] = None,
    ) -> ContentNode:
        node_id = validate_node_id(node_id)
        node = ContentNode(
            id=node_id,
            platform=parse_enum(PlatformType, platform, "platform"),
            content_type=parse_enum(ContentType, content_type, "content type"),
            path=(node_id,),
            published_at=published_at,
            creator_id=creator_id,
        )
        stored = await self._repository.insert_node(node)
        logger.info("Registered content root %s (%s/%s)", node_id, node.platform.value, node.content_type.value)
        return stored

    async def insert_under(
        self,
        parent_id: str,
        node_id: str,
        platform: PlatformType,
        content_type: ContentType,
        *,
        published_at: Optional[datetime] = None,
        creator_id: Optional[str] = None,
    ) -> ContentNode:
        """Register ``node_id`` directly below ``parent_id``.

        The node is removed again if the attach fails, so a failed call leaves
        no standalone root behind.
        """
        await self.get(parent_id)
        node = await self.insert_root(
            node_id, platform, content_type, published_at=published_at, creator_id=creator_id
        )
        try:
            return await self.attach_child(parent_id, node.id)
        except ContentGraphError:
            logger.warning("Attach of new node %s under %s failed; removing it", node.id, parent_id)
            await self.remove_node(node.id)
            raise

    async def attach_child(self, parent_id: str, child_id: str) -> ContentNode:
        """Move ``child_id`` (with its whole subtree) under ``parent_id``.

        Raises CycleDetectedError without writing anything when the child is
        already an ancestor of the parent (or is the parent).
        """
        async with self._serialized(parent_id, child_id) as nodes:
            parent = nodes[parent_id]
            child = nodes[child_id]
            if child_id in parent.path:
                raise CycleDetectedError(parent_id, child_id)
            if child.parent_id == parent_id:
                return child

            new_path = parent.path + (child_id,)
            rewritten = await self._rebase_subtree(child, new_path)
            await self._repository.replace_nodes(rewritten)
            logger.info(
                "Attached %s under %s (%d node(s) rewritten)", child_id, parent_id, len(rewritten)
            )
            return rewritten[0]

    async def detach(self, node_id: str) -> ContentNode:
        """Turn ``node_id`` and its subtree into a standalone family."""
        async with self._serialized(node_id) as nodes:
            node = nodes[node_id]
            if node.depth == 0:
                return node
            rewritten = await self._rebase_subtree(node, (node_id,))
            await self._repository.replace_nodes(rewritten)
            logger.info("Detached %s from %s", node_id, node.parent_id)
            return rewritten[0]

    async def remove_node(self, node_id: str, *, reattach_descendants: bool = False) -> NodeRemoval:
        """Delete a node and its edges.

        Direct children become standalone roots, or move up to the removed
        node's parent when ``reattach_descendants`` is set and a parent exists.
        """
        async with self._serialized(node_id) as nodes:
            node = nodes[node_id]
            subtree = await self._repository.descendants(node)
            grandparent_path = node.path[:-1] if (reattach_descendants and node.depth > 0) else ()

            rewritten: List[ContentNode] = []
            children: List[str] = []
            cut = len(node.path)
            for descendant in subtree:
                branch_id = descendant.path[cut]
                if descendant.id == branch_id:
                    children.append(branch_id)
                rewritten.append(descendant.with_path(grandparent_path + descendant.path[cut:]))

            removed_edges = await self._repository.remove_node(node_id, rewritten)

        if grandparent_path:
            logger.info("Removed %s; reattached %d child(ren) to %s", node_id, len(children), grandparent_path[-1])
            return NodeRemoval(
                node_id=node_id,
                removed_edges=removed_edges,
                promoted_roots=[],
                reattached_to=grandparent_path[-1],
                reattached_children=children,
            )
        logger.info("Removed %s; %d child(ren) promoted to roots", node_id, len(children))
        return NodeRemoval(node_id=node_id, removed_edges=removed_edges, promoted_roots=children)

    # ── Reads ─────────────────────────────────────────────────

    async def get(self, node_id: str) -> ContentNode:
        node = await self._repository.get_node(node_id)
        if node is None:
            raise NotFoundError(f"Content node {node_id} not found.")
        return node

    async def descendants_of(self, node_id: str) -> List[ContentNode]:
        node = await self.get(node_id)
        return await self._repository.descendants(node)

    async def subtree_of(self, node_id: str) -> List[ContentNode]:
        """The node followed by every descendant."""
        node = await self.get(node_id)
        return [node] + await self._repository.descendants(node)

    async def ancestors_of(self, node_id: str) -> List[ContentNode]:
        node = await self.get(node_id)
        ancestor_ids = list(node.path[:-1])
        if not ancestor_ids:
            return []
        found = await self._repository.get_nodes(ancestor_ids)
        ancestors: List[ContentNode] = []
        for ancestor_id in ancestor_ids:
            ancestor = found.get(ancestor_id)
            if ancestor is None:
                logger.warning("Path of %s references missing ancestor %s", node_id, ancestor_id)
                continue
            ancestors.append(ancestor)
        return ancestors

    async def common_ancestor(self, node_ids: Sequence[str]) -> Optional[ContentNode]:
        unique_ids = list(dict.fromkeys(node_ids))
        if not unique_ids:
            return None
        found = await self._repository.get_nodes(unique_ids)
        missing = [node_id for node_id in unique_ids if node_id not in found]
        if missing:
            raise NotFoundError(f"Content node(s) not found: {', '.join(missing)}")

        prefix = longest_common_prefix(found[node_id].path for node_id in unique_ids)
        if not prefix:
            return None
        ancestor = found.get(prefix[-1]) or await self._repository.get_node(prefix[-1])
        if ancestor is None:
            logger.warning("Common ancestor %s is missing from the path index", prefix[-1])
        return ancestor

    async def orphans_of(self, creator_id: str) -> List[ContentRecord]:
        """Creator content known to the catalog but absent from the path index."""
        records = await self._catalog.records_for_creator(creator_id)
        if not records:
            return []
        indexed = await self._repository.get_nodes([record.id for record in records])
        orphans = [record for record in records if record.id not in indexed]
        if orphans:
            logger.info("Creator %s has %d content item(s) outside the hierarchy", creator_id, len(orphans))
        return orphans

    async def family_nodes(self, root_id: str) -> List[ContentNode]:
        root = await self.get(root_id)
        if root.depth != 0:
            raise ValidationError(f"{root_id} is not a family root (its root is {root.root_id}).")
        return await self._repository.family_nodes(root_id)

    async def roots_for_creator(self, creator_id: str) -> List[ContentNode]:
        owned = await self._repository.nodes_for_creator(creator_id)
        return [node for node in owned if node.depth == 0]

    async def creator_families(self, creator_id: str) -> List[Tuple[ContentNode, List[ContentNode]]]:
        """Each root owned by the creator paired with its full node list (root first)."""
        families: List[Tuple[ContentNode, List[ContentNode]]] = []
        for root in await self.roots_for_creator(creator_id):
            members = await self._repository.family_nodes(root.id)
            families.append((root, members or [root]))
        return families

    # ── Serialization ─────────────────────────────────────────

    def _checkout_lock(self, root_id: str) -> asyncio.Lock:
        lock = self._root_locks.get(root_id)
        if lock is None:
            lock = asyncio.Lock()
            self._root_locks[root_id] = lock
        self._lock_users[root_id] = self._lock_users.get(root_id, 0) + 1
        return lock

    def _return_lock(self, root_id: str) -> None:
        remaining = self._lock_users.get(root_id, 0) - 1
        if remaining > 0:
            self._lock_users[root_id] = remaining
            return
        # No holder or waiter left.
        self._lock_users.pop(root_id, None)
        self._root_locks.pop(root_id, None)

    async def _load_required(self, node_ids: Sequence[str]) -> Dict[str, ContentNode]:
        found = await self._repository.get_nodes(list(dict.fromkeys(node_ids)))
        for node_id in node_ids:
            if node_id not in found:
                raise NotFoundError(f"Content node {node_id} not found.")
        return found

    @asynccontextmanager
    async def _serialized(self, *node_ids: str) -> AsyncIterator[Dict[str, ContentNode]]:
        """Hold the locks of every family touched by ``node_ids``.

        Locks are taken in root-id order. Roots are re-read after locking and
        the acquisition retried if a concurrent rename moved a node meanwhile.
        """
        while True:
            nodes = await self._load_required(node_ids)
            roots = sorted({node.root_id for node in nodes.values()})
            locks = [self._checkout_lock(root_id) for root_id in roots]
            acquired: List[asyncio.Lock] = []
            try:
                for lock in locks:
                    await lock.acquire()
                    acquired.append(lock)
                current = await self._load_required(node_ids)
                if sorted({node.root_id for node in current.values()}) != roots:
                    continue
                yield current
                return
            finally:
                for lock in reversed(acquired):
                    lock.release()
                for root_id in roots:
                    self._return_lock(root_id)

    async def _rebase_subtree(self, node: ContentNode, new_path: Tuple[str, ...]) -> List[ContentNode]:
        subtree = await self._repository.descendants(node)
        rewritten = [node.with_path(new_path)]
        rewritten.extend(
            descendant.with_path(rebase_path(descendant.path, node.path, new_path)) for descendant in subtree
        )
        return rewritten
