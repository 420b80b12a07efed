from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from analytics.cache import AggregateCacheKey, RedisAggregateCache, SqlAggregateCache
from analytics.models import EntityType, MetricPeriod
from content_graph.errors import ConflictError, CycleDetectedError
from content_graph.types import ContentRecord, ContentType, PlatformType
from database import Base
from dependencies import build_services
from models.aggregate_metric import AggregateMetricSnapshot
from models.content_node import ContentPathNode


NOW = datetime(2026, 10, 15, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "graph.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker

    await engine.dispose()


@pytest.fixture
def sql_services(session_maker):
    return build_services(session_maker, cache_backend="database")


@pytest.mark.asyncio
async def test_paths_are_stored_dot_joined_and_rewritten_on_attach(sql_services, session_maker):
    hierarchy = sql_services.hierarchy
    await hierarchy.insert_root("root", "youtube", "video", creator_id="creator-1")
    await hierarchy.insert_root("clip", "tiktok", "short_video", creator_id="creator-1")
    await hierarchy.insert_root("short", "youtube", "short_video")
    await hierarchy.attach_child("clip", "short")
    await hierarchy.attach_child("root", "clip")

    async with session_maker() as db:
        row = await db.get(ContentPathNode, "short")
        assert row.path == "root.clip.short"
        assert row.depth == 2
        assert row.root_id == "root"

    assert [node.id for node in await hierarchy.descendants_of("root")] == ["clip", "short"]
    with pytest.raises(CycleDetectedError):
        await hierarchy.attach_child("short", "root")
    with pytest.raises(ConflictError):
        await hierarchy.insert_root("clip", "tiktok", "short_video")


@pytest.mark.asyncio
async def test_descendant_prefix_does_not_match_sibling_ids(sql_services):
    hierarchy = sql_services.hierarchy
    await hierarchy.insert_root("a", "youtube", "video")
    await hierarchy.insert_root("ab", "youtube", "video")
    await hierarchy.insert_root("a_b", "youtube", "video")
    await hierarchy.attach_child("a", "a_b")

    assert [node.id for node in await hierarchy.descendants_of("a")] == ["a_b"]
    assert await hierarchy.descendants_of("ab") == []


@pytest.mark.asyncio
async def test_edges_keep_creation_order_and_are_dropped_with_their_node(sql_services):
    hierarchy = sql_services.hierarchy
    graph = sql_services.relationships
    for node_id in ("long", "clip", "post"):
        await hierarchy.insert_root(node_id, "youtube", "video")

    first = await graph.add_edge("long", "clip", "derivative", 0.9, "ai_suggested", {"model": "v1"})
    await graph.add_edge("long", "post", "reference", 0.4, "user_defined")
    updated = await graph.add_edge("long", "clip", "repurposed", 0.7, "user_defined")

    assert updated.sequence == first.sequence
    assert updated.metadata == {}
    assert [edge.target_id for edge in await graph.edges_for("long")] == ["clip", "post"]

    removal = await hierarchy.remove_node("clip")
    assert removal.removed_edges == 1
    assert [edge.target_id for edge in await graph.edges_for("long")] == ["post"]


@pytest.mark.asyncio
async def test_traversal_reads_a_consistent_snapshot(sql_services):
    hierarchy = sql_services.hierarchy
    await hierarchy.insert_root("R", "youtube", "video")
    await hierarchy.insert_root("A", "tiktok", "short_video")
    await hierarchy.insert_root("B", "instagram", "photo")
    await hierarchy.attach_child("R", "A")
    await hierarchy.attach_child("R", "B")
    await sql_services.relationships.add_edge("A", "B", "repurposed", 0.8, "ai_suggested")

    family = await sql_services.traversal.content_family("R")

    assert [edge.key for edge in family.edges] == [("R", "A"), ("R", "B"), ("A", "B")]
    assert await sql_services.traversal.find_paths("A", "B") == [["A", "B"]]


@pytest.mark.asyncio
async def test_catalog_orphans_and_metrics_round_trip(sql_services):
    await sql_services.catalog.upsert(
        ContentRecord(
            id="tweet-1",
            creator_id="creator-1",
            platform=PlatformType.TWITTER,
            content_type=ContentType.POST,
            published_at=datetime(2026, 10, 2, 9, 30),
            title="Thread",
        )
    )
    record = await sql_services.catalog.get("tweet-1")
    assert record.published_at == datetime(2026, 10, 2, 9, 30, tzinfo=timezone.utc)
    assert [item.id for item in await sql_services.hierarchy.orphans_of("creator-1")] == ["tweet-1"]

    metrics = sql_services.metrics_repository
    await metrics.record_daily("tweet-1", date(2026, 10, 2), {"impressions": 100})
    await metrics.record_daily("tweet-1", date(2026, 10, 2), {"impressions": 150})
    await metrics.record_daily("tweet-1", date(2026, 10, 3), {"impressions": 50})

    rows = await metrics.daily_metrics(
        "tweet-1", datetime(2026, 10, 1, tzinfo=timezone.utc), datetime(2026, 10, 2, 23, 59, tzinfo=timezone.utc)
    )
    assert rows == [{"impressions": 150, "date": "2026-10-02"}]


@pytest.mark.asyncio
async def test_family_aggregate_is_cached_in_the_database(sql_services, session_maker):
    hierarchy = sql_services.hierarchy
    await hierarchy.insert_root("R", "youtube", "video", creator_id="creator-1")
    await hierarchy.insert_root("C", "youtube", "short_video", creator_id="creator-1")
    await hierarchy.attach_child("R", "C")
    await sql_services.relationships.add_edge("R", "C", "derivative", 0.9, "ai_suggested")
    await sql_services.metrics_repository.record_daily("R", date(2026, 10, 5), {"views": 10000, "likes": 500})
    await sql_services.metrics_repository.record_daily("C", date(2026, 10, 6), {"views": 4000})

    result = await sql_services.aggregation.aggregate_family("R", "month", now=NOW)

    assert result.aggregate_metrics.total_views == 13300
    async with session_maker() as db:
        rows = (await db.execute(select(AggregateMetricSnapshot))).scalars().all()
        assert len(rows) == 1
        assert rows[0].entity_id == "R"
        assert rows[0].entity_type == "family"
        assert rows[0].range_start == "2026-10-01T00:00:00+00:00"


@pytest.mark.asyncio
async def test_sql_aggregate_cache_overwrites_existing_key(session_maker):
    cache = SqlAggregateCache(session_maker)
    key = AggregateCacheKey(
        entity_id="creator-1",
        entity_type=EntityType.CREATOR,
        period=MetricPeriod.MONTH,
        range_start=datetime(2026, 10, 1, tzinfo=timezone.utc),
        range_end=datetime(2026, 10, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
    )

    assert await cache.get(key) is None
    await cache.put(key, {"total_views": 1})
    await cache.put(key, {"total_views": 2})

    assert await cache.get(key) == {"total_views": 2}


class FakeRedis:
    def __init__(self, store):
        self.store = store
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.store[f"{key}:ttl"] = ttl

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_redis_aggregate_cache_stores_json_with_ttl():
    store = {}
    cache = RedisAggregateCache("redis://unused", ttl_seconds=120, client_factory=lambda: FakeRedis(store))
    key = AggregateCacheKey(
        entity_id="R",
        entity_type=EntityType.FAMILY,
        period=MetricPeriod.ALL_TIME,
        range_start=datetime(1970, 1, 1, tzinfo=timezone.utc),
        range_end=NOW,
    )

    assert await cache.get(key) is None
    await cache.put(key, {"total_views": 42})

    redis_key = f"cfe:aggregate:{key.as_string()}"
    assert store[redis_key] == '{"total_views":42}'
    assert store[f"{redis_key}:ttl"] == 120
    assert await cache.get(key) == {"total_views": 42}
