import logging
from datetime import date, datetime, timezone
from typing import List

import pytest

from analytics.aggregation import AggregationEngine
from analytics.insights import InsightGenerator, attach_insights
from analytics.metrics_store import InMemoryMetricsRepository
from analytics.models import DateRange, Insight, MetricPeriod
from content_graph.errors import ValidationError
from content_graph.types import ContentRecord, ContentType, PlatformType
from dependencies import build_in_memory_services


NOW = datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)


class FlakyMetricsRepository(InMemoryMetricsRepository):
    """Raises for selected content ids to simulate an upstream platform outage."""

    def __init__(self, failing: List[str]) -> None:
        super().__init__()
        self.failing = set(failing)

    async def daily_metrics(self, content_id, start, end):
        if content_id in self.failing:
            raise RuntimeError(f"platform API timeout for {content_id}")
        return await super().daily_metrics(content_id, start, end)


async def _seed_family(services) -> None:
    """Root video R with a derivative clip C, both on YouTube."""
    await services.hierarchy.insert_root("R", "youtube", "video", creator_id="creator-1")
    await services.hierarchy.insert_root("C", "youtube", "short_video", creator_id="creator-1")
    await services.hierarchy.attach_child("R", "C")
    await services.relationships.add_edge("R", "C", "derivative", 0.9, "ai_suggested")

    metrics = services.metrics_repository
    await metrics.record_daily("R", date(2026, 10, 5), {"views": 10000, "likes": 500, "comments": 100, "shares": 50})
    await metrics.record_daily("R", date(2026, 9, 10), {"views": 5000})
    await metrics.record_daily("C", date(2026, 10, 6), {"views": 1500})
    await metrics.record_daily("C", date(2026, 10, 7), {"views": 2500})
    await metrics.record_daily("C", date(2026, 11, 1), {"views": 99999})


async def _seed_creator(services) -> None:
    await _seed_family(services)
    await services.hierarchy.insert_root("solo", "instagram", "photo", creator_id="creator-1")
    await services.catalog.upsert(
        ContentRecord(
            id="loose",
            creator_id="creator-1",
            platform=PlatformType.TWITTER,
            content_type=ContentType.POST,
            title="Launch thread",
        )
    )
    await services.metrics_repository.record_daily("solo", date(2026, 10, 8), {"impressions": 2000, "likes": 100})
    await services.metrics_repository.record_daily("loose", date(2026, 10, 9), {"impressions": 1000, "favorites": 10})


@pytest.mark.asyncio
async def test_family_aggregate_deduplicates_views_with_overlap_estimate():
    services = build_in_memory_services()
    await _seed_family(services)

    result = await services.aggregation.aggregate_family("R", MetricPeriod.MONTH, now=NOW)

    assert result.range_start == datetime(2026, 10, 1, tzinfo=timezone.utc)
    assert result.content_count == 2
    assert result.platform_count == 1
    assert result.failed_content_ids == []

    overlap = result.audience_overlap
    assert overlap.platform_pairs == []
    assert len(overlap.content_pairs) == 1
    assert overlap.content_pairs[0].duplicated_views == pytest.approx(432.0)
    assert overlap.estimated_duplication == 5.0
    assert overlap.estimated_unique_reach == 13300

    totals = result.aggregate_metrics
    assert totals.raw_total_views == 14000
    assert totals.total_views == 13300
    assert result.unique_reach_estimate == 13300
    assert totals.total_engagements == pytest.approx(595.0)
    assert totals.engagement_rate == pytest.approx(4.4737)
    assert totals.total_likes == 500

    views = {item.id: item.metrics.views for item in result.content_items}
    assert views == {"R": 10000, "C": 4000}


@pytest.mark.asyncio
async def test_family_aggregate_survives_a_failing_metrics_fetch(caplog):
    services = build_in_memory_services()
    services.metrics_repository = FlakyMetricsRepository(failing=["C"])
    await _seed_family(services)
    engine = AggregationEngine(
        services.hierarchy,
        services.relationships,
        services.metrics_repository,
        catalog=services.catalog,
    )

    with caplog.at_level(logging.WARNING):
        result = await engine.aggregate_family("R", "month", now=NOW)

    assert result.failed_content_ids == ["C"]
    assert [item.id for item in result.content_items] == ["R"]
    assert result.aggregate_metrics.raw_total_views == 10000
    assert result.aggregate_metrics.total_views == 9500
    assert result.content_count == 2
    assert "Metrics fetch failed for content C" in caplog.text


@pytest.mark.asyncio
async def test_family_aggregate_is_empty_when_every_fetch_fails():
    services = build_in_memory_services()
    services.metrics_repository = FlakyMetricsRepository(failing=["R", "C"])
    await _seed_family(services)
    engine = AggregationEngine(
        services.hierarchy,
        services.relationships,
        services.metrics_repository,
        catalog=services.catalog,
    )

    result = await engine.aggregate_family("R", "month", now=NOW)

    assert sorted(result.failed_content_ids) == ["C", "R"]
    assert result.content_items == []
    assert result.content_count == 2
    assert result.aggregate_metrics.raw_total_views == 0
    assert result.aggregate_metrics.total_views == 0
    assert result.audience_overlap.content_pairs == []


@pytest.mark.asyncio
async def test_tree_links_count_toward_content_overlap():
    services = build_in_memory_services()
    for content_id in ("A", "B", "C"):
        await services.hierarchy.insert_root(content_id, "youtube", "video", creator_id="creator-1")
        await services.metrics_repository.record_daily(content_id, date(2026, 10, 3), {"views": 10000})
    await services.hierarchy.attach_child("A", "B")
    await services.hierarchy.attach_child("B", "C")

    result = await services.aggregation.aggregate_family("A", "month", now=NOW)

    overlap = result.audience_overlap
    assert [pair.content_ids for pair in overlap.content_pairs] == [("A", "B"), ("B", "C")]
    assert [pair.relationship_type for pair in overlap.content_pairs] == ["parent", "parent"]
    # 0.5 (parent) * 1.0 confidence * 10000 * 0.2 per linked pair
    assert [pair.duplicated_views for pair in overlap.content_pairs] == [1000.0, 1000.0]
    assert overlap.platform_pairs == []
    assert overlap.estimated_duplication == pytest.approx(6.6667, abs=1e-4)
    assert result.aggregate_metrics.raw_total_views == 30000
    assert result.aggregate_metrics.total_views == 28000


@pytest.mark.asyncio
async def test_family_aggregate_accepts_any_node_and_aggregates_its_subtree():
    services = build_in_memory_services()
    await _seed_family(services)

    result = await services.aggregation.aggregate_family("C", "month", now=NOW)

    assert result.root_content_id == "C"
    assert result.aggregate_metrics.raw_total_views == 4000
    assert result.aggregate_metrics.total_views == 3800


@pytest.mark.asyncio
async def test_family_aggregate_is_served_from_cache():
    services = build_in_memory_services()
    await _seed_family(services)

    first = await services.aggregation.aggregate_family("R", "month", now=NOW)
    await services.metrics_repository.record_daily("R", date(2026, 10, 20), {"views": 50000})
    second = await services.aggregation.aggregate_family("R", "month", now=NOW)

    assert second.model_dump(mode="json") == first.model_dump(mode="json")


@pytest.mark.asyncio
async def test_family_aggregate_with_no_metrics_is_empty_not_an_error():
    services = build_in_memory_services()
    await services.hierarchy.insert_root("quiet", "linkedin", "article")

    result = await services.aggregation.aggregate_family("quiet", "week", now=NOW)

    assert result.aggregate_metrics.total_views == 0
    assert result.aggregate_metrics.engagement_rate == 0.0
    assert result.audience_overlap.estimated_duplication == 5.0


@pytest.mark.asyncio
async def test_custom_period_requires_a_range():
    services = build_in_memory_services()
    await services.hierarchy.insert_root("quiet", "linkedin", "article")

    with pytest.raises(ValidationError):
        await services.aggregation.aggregate_family("quiet", "custom", now=NOW)


@pytest.mark.asyncio
async def test_creator_aggregate_combines_families_standalone_and_orphans():
    services = build_in_memory_services()
    await _seed_creator(services)

    result = await services.aggregation.aggregate_creator("creator-1", MetricPeriod.MONTH, now=NOW)

    assert result.content_family_count == 1
    assert result.standalone_content_count == 2
    assert result.total_content_count == 4
    assert result.aggregate_metrics.total_views == 13300 + 2000 + 1000
    assert result.aggregate_metrics.raw_total_views == 14000 + 2000 + 1000
    assert result.aggregate_metrics.total_engagements == pytest.approx(702.0)

    assert [item.id for item in result.top_performing_content] == ["R", "solo", "loose", "C"]
    assert result.top_performing_content[2].title == "Launch thread"
    assert [row.platform for row in result.platform_breakdown] == [
        PlatformType.YOUTUBE,
        PlatformType.INSTAGRAM,
        PlatformType.TWITTER,
    ]
    assert result.platform_breakdown[0].views == 14000
    assert result.platform_breakdown[0].content_count == 2


@pytest.mark.asyncio
async def test_creator_growth_compares_against_previous_month():
    services = build_in_memory_services()
    await _seed_creator(services)

    result = await services.aggregation.aggregate_creator("creator-1", "month", now=NOW)

    # September: only R had 5000 views, deduplicated to 4750.
    assert result.growth_metrics["views_growth"] == pytest.approx(243.16)
    assert result.growth_metrics["engagements_growth"] == 100.0
    assert result.aggregate_metrics.growth_rates == result.growth_metrics


@pytest.mark.asyncio
async def test_creator_growth_is_skipped_for_explicit_ranges():
    services = build_in_memory_services()
    await _seed_creator(services)
    window = DateRange(
        start=datetime(2026, 10, 1, tzinfo=timezone.utc),
        end=datetime(2026, 10, 31, tzinfo=timezone.utc),
    )

    result = await services.aggregation.aggregate_creator("creator-1", "custom", window)

    assert result.growth_metrics == {}
    assert result.total_content_count == 4


class EchoInsights(InsightGenerator):
    def __init__(self) -> None:
        self.seen = None

    async def generate(self, aggregate):
        self.seen = aggregate
        aggregate.aggregate_metrics.total_views = -1
        return [Insight(title="Clips travel", description="Short-form carries the family.", priority=1)]


class BrokenInsights(InsightGenerator):
    async def generate(self, aggregate):
        raise RuntimeError("model unavailable")


@pytest.mark.asyncio
async def test_insight_generator_gets_a_copy_of_the_aggregate():
    services = build_in_memory_services()
    await _seed_family(services)
    aggregate = await services.aggregation.aggregate_family("R", "month", now=NOW)
    generator = EchoInsights()

    report = await attach_insights(aggregate, generator)

    assert [insight.title for insight in report.insights] == ["Clips travel"]
    assert report.insight_error is None
    assert generator.seen is not aggregate
    assert report.aggregate.aggregate_metrics.total_views == 13300


@pytest.mark.asyncio
async def test_insight_failure_keeps_the_aggregate(caplog):
    services = build_in_memory_services()
    await _seed_family(services)
    aggregate = await services.aggregation.aggregate_family("R", "month", now=NOW)

    with caplog.at_level(logging.WARNING):
        report = await attach_insights(aggregate, BrokenInsights())

    assert report.insights == []
    assert report.insight_error == "model unavailable"
    assert report.aggregate.model_dump() == aggregate.model_dump()
    assert "Insight generation failed" in caplog.text
