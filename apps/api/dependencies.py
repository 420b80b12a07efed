"""Service construction and FastAPI wiring.

Services are built once per process and hung off ``app.state.services``;
tests swap in in-memory repositories through ``build_in_memory_services``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from analytics.aggregation import AggregationEngine
from analytics.cache import AggregateCache, InMemoryAggregateCache, RedisAggregateCache, SqlAggregateCache
from analytics.insights import InsightGenerator
from analytics.metrics_store import InMemoryMetricsRepository, MetricsRepository, SqlMetricsRepository
from config import settings
from content_graph.hierarchy import HierarchyStore
from content_graph.relationships import RelationshipGraph
from content_graph.repository import (
    ContentCatalog,
    GraphRepository,
    InMemoryContentCatalog,
    InMemoryGraphRepository,
)
from content_graph.sql_repository import SqlContentCatalog, SqlGraphRepository
from content_graph.traversal import GraphTraversal

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    graph_repository: GraphRepository
    catalog: ContentCatalog
    metrics_repository: MetricsRepository
    hierarchy: HierarchyStore
    relationships: RelationshipGraph
    traversal: GraphTraversal
    aggregation: AggregationEngine
    insight_generator: Optional[InsightGenerator] = None


def _assemble(
    graph_repository: GraphRepository,
    catalog: ContentCatalog,
    metrics_repository: MetricsRepository,
    cache: Optional[AggregateCache],
    insight_generator: Optional[InsightGenerator],
) -> ServiceContainer:
    hierarchy = HierarchyStore(graph_repository, catalog)
    relationships = RelationshipGraph(graph_repository)
    traversal = GraphTraversal(
        graph_repository,
        centrality_max_nodes=settings.CENTRALITY_MAX_NODES,
        default_max_depth=settings.FIND_PATHS_MAX_DEPTH,
        min_confidence=settings.DIJKSTRA_MIN_CONFIDENCE,
    )
    aggregation = AggregationEngine(
        hierarchy,
        relationships,
        metrics_repository,
        catalog=catalog,
        cache=cache,
        max_workers=settings.AGGREGATION_MAX_WORKERS,
    )
    return ServiceContainer(
        graph_repository=graph_repository,
        catalog=catalog,
        metrics_repository=metrics_repository,
        hierarchy=hierarchy,
        relationships=relationships,
        traversal=traversal,
        aggregation=aggregation,
        insight_generator=insight_generator,
    )


def _build_cache(backend: str, session_maker: async_sessionmaker[AsyncSession]) -> AggregateCache:
    normalized = (backend or "").strip().lower()
    if normalized == "memory":
        return InMemoryAggregateCache()
    if normalized == "redis":
        return RedisAggregateCache(settings.REDIS_URL, ttl_seconds=settings.AGGREGATE_CACHE_TTL_SECONDS)
    return SqlAggregateCache(session_maker)


def build_services(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    cache_backend: Optional[str] = None,
    insight_generator: Optional[InsightGenerator] = None,
) -> ServiceContainer:
    """Database-backed services sharing one session factory."""
    dialect = session_maker.kw["bind"].dialect.name if session_maker.kw.get("bind") is not None else ""
    snapshot_isolation = "REPEATABLE READ" if dialect == "postgresql" else None
    backend = cache_backend or settings.AGGREGATE_CACHE_BACKEND
    logger.info("Building services (dialect=%s, aggregate cache=%s)", dialect or "unknown", backend)
    return _assemble(
        SqlGraphRepository(session_maker, snapshot_isolation=snapshot_isolation),
        SqlContentCatalog(session_maker),
        SqlMetricsRepository(session_maker),
        _build_cache(backend, session_maker),
        insight_generator,
    )


def build_in_memory_services(*, insight_generator: Optional[InsightGenerator] = None) -> ServiceContainer:
    return _assemble(
        InMemoryGraphRepository(),
        InMemoryContentCatalog(),
        InMemoryMetricsRepository(),
        InMemoryAggregateCache(),
        insight_generator,
    )


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        from database import async_session_maker

        services = build_services(async_session_maker)
        request.app.state.services = services
    return services
