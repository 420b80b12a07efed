"""Content relationship graph router."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from content_graph.errors import ContentGraphError
from content_graph.types import (
    ContentNode,
    ContentRecord,
    ContentType,
    CreationMethod,
    PlatformType,
    RelationshipEdge,
    parse_enum,
)
from dependencies import ServiceContainer, get_services
from routers.errors import http_error
from routers.rate_limit import analysis_rate_limit

router = APIRouter()


class ContentRegistrationRequest(BaseModel):
    id: str
    creator_id: str
    platform: str
    content_type: str
    published_at: Optional[datetime] = None
    title: Optional[str] = None


class NodeCreateRequest(BaseModel):
    id: str
    platform: str
    content_type: str
    published_at: Optional[datetime] = None
    creator_id: Optional[str] = None
    parent_id: Optional[str] = None


class AttachRequest(BaseModel):
    parent_id: str


class CommonAncestorRequest(BaseModel):
    node_ids: List[str]


class EdgeRequest(BaseModel):
    source_id: str
    target_id: str
    relationship_type: str
    confidence: float = Field(default=1.0)
    creation_method: str = CreationMethod.USER_DEFINED.value
    metadata: Dict[str, Any] = {}


def _node_payload(node: ContentNode) -> Dict[str, Any]:
    return {
        "id": node.id,
        "platform": node.platform.value,
        "content_type": node.content_type.value,
        "path": list(node.path),
        "depth": node.depth,
        "root_id": node.root_id,
        "parent_id": node.parent_id,
        "published_at": node.published_at.isoformat() if node.published_at else None,
        "creator_id": node.creator_id,
    }


def _edge_payload(edge: RelationshipEdge) -> Dict[str, Any]:
    return {
        "source_id": edge.source_id,
        "target_id": edge.target_id,
        "relationship_type": edge.relationship_type.value,
        "confidence": edge.confidence,
        "creation_method": edge.creation_method.value,
        "metadata": dict(edge.metadata),
    }


def _record_payload(record: ContentRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "creator_id": record.creator_id,
        "platform": record.platform.value,
        "content_type": record.content_type.value,
        "published_at": record.published_at.isoformat() if record.published_at else None,
        "title": record.title,
    }


# ── Nodes ─────────────────────────────────────────────────────


@router.post("/content")
async def register_content(
    request: ContentRegistrationRequest,
    services: ServiceContainer = Depends(get_services),
):
    try:
        record = ContentRecord(
            id=request.id,
            creator_id=request.creator_id,
            platform=parse_enum(PlatformType, request.platform, "platform"),
            content_type=parse_enum(ContentType, request.content_type, "content type"),
            published_at=request.published_at,
            title=request.title,
        )
        stored = await services.catalog.upsert(record)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return _record_payload(stored)


@router.post("/nodes", status_code=201)
async def create_node(
    request: NodeCreateRequest,
    services: ServiceContainer = Depends(get_services),
):
    try:
        if request.parent_id:
            node = await services.hierarchy.insert_under(
                request.parent_id,
                request.id,
                request.platform,
                request.content_type,
                published_at=request.published_at,
                creator_id=request.creator_id,
            )
        else:
            node = await services.hierarchy.insert_root(
                request.id,
                request.platform,
                request.content_type,
                published_at=request.published_at,
                creator_id=request.creator_id,
            )
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return _node_payload(node)


@router.get("/nodes/{node_id}")
async def get_node(node_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        node = await services.hierarchy.get(node_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return _node_payload(node)


@router.post("/nodes/{child_id}/parent")
async def attach_child(
    child_id: str,
    request: AttachRequest,
    services: ServiceContainer = Depends(get_services),
):
    try:
        node = await services.hierarchy.attach_child(request.parent_id, child_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return _node_payload(node)


@router.post("/nodes/{node_id}/detach")
async def detach_node(node_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        node = await services.hierarchy.detach(node_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return _node_payload(node)


@router.delete("/nodes/{node_id}")
async def remove_node(
    node_id: str,
    reattach_descendants: bool = Query(default=False),
    services: ServiceContainer = Depends(get_services),
):
    try:
        removal = await services.hierarchy.remove_node(node_id, reattach_descendants=reattach_descendants)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {
        "node_id": removal.node_id,
        "removed_edges": removal.removed_edges,
        "promoted_roots": removal.promoted_roots,
        "reattached_to": removal.reattached_to,
        "reattached_children": removal.reattached_children,
    }


@router.get("/nodes/{node_id}/descendants")
async def node_descendants(node_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        nodes = await services.hierarchy.descendants_of(node_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"node_id": node_id, "descendants": [_node_payload(node) for node in nodes]}


@router.get("/nodes/{node_id}/ancestors")
async def node_ancestors(node_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        nodes = await services.hierarchy.ancestors_of(node_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"node_id": node_id, "ancestors": [_node_payload(node) for node in nodes]}


@router.post("/common-ancestor")
async def common_ancestor(
    request: CommonAncestorRequest,
    services: ServiceContainer = Depends(get_services),
):
    try:
        node = await services.hierarchy.common_ancestor(request.node_ids)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"common_ancestor": _node_payload(node) if node is not None else None}


@router.get("/creators/{creator_id}/orphans")
async def creator_orphans(creator_id: str, services: ServiceContainer = Depends(get_services)):
    records = await services.hierarchy.orphans_of(creator_id)
    return {"creator_id": creator_id, "orphans": [_record_payload(record) for record in records]}


@router.get("/creators/{creator_id}/families")
async def creator_families(creator_id: str, services: ServiceContainer = Depends(get_services)):
    summaries = await services.traversal.subgraphs_for_creator(creator_id)
    return {
        "creator_id": creator_id,
        "families": [
            {"root_id": summary.root_id, "node_count": summary.node_count, "max_depth": summary.max_depth}
            for summary in summaries
        ],
    }


# ── Edges ─────────────────────────────────────────────────────


@router.post("/edges", status_code=201)
async def add_edge(request: EdgeRequest, services: ServiceContainer = Depends(get_services)):
    try:
        edge = await services.relationships.add_edge(
            request.source_id,
            request.target_id,
            request.relationship_type,
            request.confidence,
            request.creation_method,
            request.metadata,
        )
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return _edge_payload(edge)


@router.delete("/edges")
async def remove_edge(
    source_id: str = Query(...),
    target_id: str = Query(...),
    services: ServiceContainer = Depends(get_services),
):
    try:
        await services.relationships.remove_edge(source_id, target_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"removed": True, "source_id": source_id, "target_id": target_id}


@router.get("/nodes/{node_id}/edges")
async def node_edges(node_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        edges = await services.relationships.edges_for(node_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"node_id": node_id, "edges": [_edge_payload(edge) for edge in edges]}


# ── Traversal ─────────────────────────────────────────────────


@router.get("/paths")
async def find_paths(
    source_id: str = Query(...),
    target_id: str = Query(...),
    max_depth: Optional[int] = Query(default=None),
    services: ServiceContainer = Depends(get_services),
):
    try:
        paths = await services.traversal.find_paths(source_id, target_id, max_depth)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"source_id": source_id, "target_id": target_id, "paths": paths}


@router.get("/shortest-path")
async def shortest_path(
    source_id: str = Query(...),
    target_id: str = Query(...),
    services: ServiceContainer = Depends(get_services),
):
    try:
        path = await services.traversal.shortest_weighted_path(source_id, target_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"nodes": path.nodes, "total_weight": path.total_weight}


@router.get("/families/{root_id}")
async def content_family(root_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        family = await services.traversal.content_family(root_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {
        "root_id": family.root_id,
        "nodes": [_node_payload(node) for node in family.nodes],
        "edges": [_edge_payload(edge) for edge in family.edges],
        "platform_distribution": family.platform_distribution,
    }


@router.get("/families/{root_id}/cycles")
async def family_cycles(root_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        report = await services.traversal.detect_cycles(root_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {"root_id": root_id, "has_cycles": report.has_cycles, "cycle_nodes": report.cycle_nodes}


@router.get("/families/{root_id}/centrality")
async def family_centrality(
    root_id: str,
    _rate_limit: None = Depends(analysis_rate_limit("graph_centrality")),
    services: ServiceContainer = Depends(get_services),
):
    try:
        scores = await services.traversal.centrality(root_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {
        "root_id": root_id,
        "scores": [
            {"node_id": score.node_id, "degree": score.degree, "betweenness": score.betweenness}
            for score in scores
        ],
    }


@router.get("/families/{root_id}/levels")
async def family_levels(root_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        levels = await services.traversal.level_order(root_id)
    except ContentGraphError as exc:
        raise http_error(exc) from exc
    return {
        "root_id": root_id,
        "levels": {str(depth): [_node_payload(node) for node in nodes] for depth, nodes in levels.items()},
    }
