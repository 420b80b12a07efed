"""
Family and creator metric aggregation.

A family aggregate fans out one task per content node (bounded by a
semaphore), standardizes each node's raw daily metrics, sums them, and then
replaces the raw view total with the overlap-adjusted unique reach. Creator
aggregates combine the deduplicated family totals with standalone content.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np

from analytics.cache import AggregateCache, AggregateCacheKey
from analytics.metrics_store import MetricsRepository
from analytics.models import (
    AggregateMetrics,
    ContentItemSummary,
    ContentTypeBreakdown,
    CreatorMetrics,
    DateRange,
    EntityType,
    FamilyMetrics,
    MetricPeriod,
    PlatformBreakdown,
)
from analytics.overlap import estimate_audience_overlap
from analytics.periods import previous_period_range, resolve_period_range
from analytics.standardization import combine_daily_payloads, engagement_rate, round2, standardize
from content_graph.hierarchy import HierarchyStore
from content_graph.relationships import RelationshipGraph
from content_graph.repository import ContentCatalog
from content_graph.types import ContentType, GraphSnapshot, PlatformType, effective_edges, parse_enum

logger = logging.getLogger(__name__)

TOP_CONTENT_LIMIT = 10
VIDEO_CONTENT_TYPES = frozenset({ContentType.VIDEO, ContentType.SHORT_VIDEO})
# Assumed average minutes watched per view when deriving view-through rate.
VIEW_THROUGH_MINUTES_PER_VIEW = 10.0

_METRIC_COLUMNS = ("views", "engagements", "shares", "comments", "likes", "watch_time", "estimated_value")

K = TypeVar("K")


@dataclass(frozen=True)
class _Target:
    id: str
    platform: PlatformType
    content_type: ContentType
    family_root_id: Optional[str] = None
    title: Optional[str] = None


def _column_sums(items: Sequence[ContentItemSummary]) -> Dict[str, float]:
    if not items:
        return {column: 0.0 for column in _METRIC_COLUMNS}
    matrix = np.array(
        [[float(getattr(item.metrics, column)) for column in _METRIC_COLUMNS] for item in items],
        dtype=np.float64,
    )
    sums = matrix.sum(axis=0)
    return {column: float(sums[index]) for index, column in enumerate(_METRIC_COLUMNS)}


def _view_through_rate(watch_time: float, total_views: int, video_count: int) -> float:
    if total_views <= 0 or video_count <= 0:
        return 0.0
    return round(watch_time / (total_views * video_count * VIEW_THROUGH_MINUTES_PER_VIEW) * 100.0, 4)


def _percent_change(current: float, previous: float) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100.0, 2)
    return 100.0 if current > 0 else 0.0


def growth_between(current: AggregateMetrics, previous: AggregateMetrics) -> Dict[str, float]:
    return {
        "views_growth": _percent_change(current.total_views, previous.total_views),
        "engagements_growth": _percent_change(current.total_engagements, previous.total_engagements),
        "value_growth": _percent_change(current.estimated_total_value, previous.estimated_total_value),
        "engagement_rate_change": round(current.engagement_rate - previous.engagement_rate, 4),
    }


def _breakdown(
    items: Sequence[ContentItemSummary],
    key_fn: Callable[[ContentItemSummary], K],
    order: Dict[K, int],
) -> List[Tuple[K, Dict[str, Any]]]:
    """Per-key sums ranked by share of engagements (views when no engagements exist)."""
    grouped: Dict[K, List[ContentItemSummary]] = {}
    for item in items:
        grouped.setdefault(key_fn(item), []).append(item)

    overall = _column_sums(items)
    rows: List[Tuple[K, Dict[str, Any]]] = []
    for key, members in grouped.items():
        sums = _column_sums(members)
        if overall["engagements"] > 0:
            percentage = sums["engagements"] / overall["engagements"] * 100.0
        elif overall["views"] > 0:
            percentage = sums["views"] / overall["views"] * 100.0
        else:
            percentage = 0.0
        rows.append(
            (
                key,
                {
                    "views": int(round(sums["views"])),
                    "engagements": round(sums["engagements"], 4),
                    "shares": int(round(sums["shares"])),
                    "comments": int(round(sums["comments"])),
                    "likes": int(round(sums["likes"])),
                    "watch_time": round(sums["watch_time"], 4),
                    "estimated_value": round2(sums["estimated_value"]),
                    "engagement_rate": engagement_rate(sums["engagements"], sums["views"]),
                    "percentage": round(percentage, 2),
                    "content_count": len(members),
                },
            )
        )
    rows.sort(key=lambda row: (-row[1]["percentage"], order.get(row[0], len(order))))
    return rows


def platform_breakdown(items: Sequence[ContentItemSummary]) -> List[PlatformBreakdown]:
    order = {platform: index for index, platform in enumerate(PlatformType)}
    return [
        PlatformBreakdown(platform=platform, **values)
        for platform, values in _breakdown(items, lambda item: item.platform, order)
    ]


def content_type_breakdown(items: Sequence[ContentItemSummary]) -> List[ContentTypeBreakdown]:
    order = {content_type: index for index, content_type in enumerate(ContentType)}
    return [
        ContentTypeBreakdown(content_type=content_type, **values)
        for content_type, values in _breakdown(items, lambda item: item.content_type, order)
    ]


def top_performing(items: Iterable[ContentItemSummary], limit: int = TOP_CONTENT_LIMIT) -> List[ContentItemSummary]:
    ranked = sorted(items, key=lambda item: (-item.metrics.engagements, -item.metrics.views, item.id))
    return ranked[:limit]


class AggregationEngine:
    def __init__(
        self,
        hierarchy: HierarchyStore,
        relationships: RelationshipGraph,
        metrics: MetricsRepository,
        *,
        catalog: Optional[ContentCatalog] = None,
        cache: Optional[AggregateCache] = None,
        max_workers: int = 8,
    ) -> None:
        self._hierarchy = hierarchy
        self._relationships = relationships
        self._metrics = metrics
        self._catalog = catalog
        self._cache = cache
        self._max_workers = max(int(max_workers), 1)

    # ── Public API ────────────────────────────────────────────

    async def aggregate_family(
        self,
        root_id: str,
        period: Union[MetricPeriod, str] = MetricPeriod.MONTH,
        date_range: Optional[DateRange] = None,
        *,
        now: Optional[datetime] = None,
    ) -> FamilyMetrics:
        """Aggregate ``root_id`` and everything below it for the resolved period."""
        metric_period = parse_enum(MetricPeriod, period, "period")
        start, end = resolve_period_range(metric_period, date_range, now)
        return await self._family_for_range(root_id, metric_period, start, end)

    async def aggregate_creator(
        self,
        creator_id: str,
        period: Union[MetricPeriod, str] = MetricPeriod.MONTH,
        date_range: Optional[DateRange] = None,
        *,
        now: Optional[datetime] = None,
    ) -> CreatorMetrics:
        """Combine the creator's family aggregates with standalone content.

        Growth against the previous period is only computed for calendar
        periods (day, week, month, quarter, year).
        """
        metric_period = parse_enum(MetricPeriod, period, "period")
        start, end = resolve_period_range(metric_period, date_range, now)
        key = AggregateCacheKey(creator_id, EntityType.CREATOR, metric_period, start, end)
        cached = await self._cache_get(key)
        if cached is not None:
            return CreatorMetrics.model_validate(cached)

        result = await self._compute_creator(creator_id, metric_period, start, end)
        if date_range is None:
            previous = previous_period_range(metric_period, start, end)
            if previous is not None:
                growth = await self._growth_for(creator_id, metric_period, result, previous)
                if growth:
                    result.growth_metrics = growth
                    result.aggregate_metrics.growth_rates = dict(growth)

        await self._cache_put(key, result.model_dump(mode="json"))
        return result

    # ── Family ────────────────────────────────────────────────

    async def _family_for_range(
        self, root_id: str, period: MetricPeriod, start: datetime, end: datetime
    ) -> FamilyMetrics:
        key = AggregateCacheKey(root_id, EntityType.FAMILY, period, start, end)
        cached = await self._cache_get(key)
        if cached is not None:
            return FamilyMetrics.model_validate(cached)

        nodes = await self._hierarchy.subtree_of(root_id)
        stored_edges = await self._relationships.edges_within([node.id for node in nodes])
        # Implied parent links count alongside stored edges; a stored edge replaces its pair.
        edges = effective_edges(GraphSnapshot(nodes={node.id: node for node in nodes}, edges=stored_edges))
        targets = [
            _Target(id=node.id, platform=node.platform, content_type=node.content_type, family_root_id=root_id)
            for node in nodes
        ]
        items, failed = await self._collect(targets, start, end)

        overlap = estimate_audience_overlap(
            {item.id: item.metrics.views for item in items},
            {item.id: item.platform for item in items},
            edges,
        )
        sums = _column_sums(items)
        raw_views = int(round(sums["views"]))
        unique_reach = overlap.estimated_unique_reach if raw_views > 0 else 0
        aggregate = self._aggregate(sums, items, total_views=unique_reach, raw_views=raw_views)

        result = FamilyMetrics(
            root_content_id=root_id,
            period=period,
            range_start=start,
            range_end=end,
            aggregate_metrics=aggregate,
            platform_breakdown=platform_breakdown(items),
            content_type_breakdown=content_type_breakdown(items),
            audience_overlap=overlap,
            unique_reach_estimate=unique_reach,
            content_count=len(nodes),
            platform_count=len({node.platform for node in nodes}),
            content_items=items,
            failed_content_ids=failed,
        )
        if failed:
            logger.warning(
                "Family %s aggregated without %d node(s): %s", root_id, len(failed), ", ".join(failed)
            )
        await self._cache_put(key, result.model_dump(mode="json"))
        return result

    # ── Creator ───────────────────────────────────────────────

    async def _compute_creator(
        self, creator_id: str, period: MetricPeriod, start: datetime, end: datetime
    ) -> CreatorMetrics:
        families = await self._hierarchy.creator_families(creator_id)
        family_roots = [root for root, members in families if len(members) > 1]
        standalone: List[_Target] = [
            _Target(id=root.id, platform=root.platform, content_type=root.content_type)
            for root, members in families
            if len(members) <= 1
        ]
        for record in await self._hierarchy.orphans_of(creator_id):
            standalone.append(
                _Target(id=record.id, platform=record.platform, content_type=record.content_type, title=record.title)
            )

        family_results = await asyncio.gather(
            *(self._family_for_range(root.id, period, start, end) for root in family_roots),
            return_exceptions=True,
        )
        standalone_items, failed = await self._collect(standalone, start, end)

        family_metrics: List[FamilyMetrics] = []
        for root, outcome in zip(family_roots, family_results):
            if isinstance(outcome, BaseException):
                logger.warning("Skipping family %s for creator %s: %s", root.id, creator_id, outcome)
                failed.append(root.id)
                continue
            family_metrics.append(outcome)
            failed.extend(outcome.failed_content_ids)

        items: List[ContentItemSummary] = [item for family in family_metrics for item in family.content_items]
        items.extend(standalone_items)

        standalone_sums = _column_sums(standalone_items)
        sums = dict(standalone_sums)
        for family in family_metrics:
            family_totals = family.aggregate_metrics
            sums["engagements"] += family_totals.total_engagements
            sums["shares"] += family_totals.total_shares
            sums["comments"] += family_totals.total_comments
            sums["likes"] += family_totals.total_likes
            sums["watch_time"] += family_totals.total_watch_time
            sums["estimated_value"] += family_totals.estimated_total_value
        total_views = int(round(standalone_sums["views"])) + sum(
            family.aggregate_metrics.total_views for family in family_metrics
        )
        raw_views = int(round(standalone_sums["views"])) + sum(
            family.aggregate_metrics.raw_total_views for family in family_metrics
        )

        return CreatorMetrics(
            creator_id=creator_id,
            period=period,
            range_start=start,
            range_end=end,
            aggregate_metrics=self._aggregate(sums, items, total_views=total_views, raw_views=raw_views),
            platform_breakdown=platform_breakdown(items),
            content_type_breakdown=content_type_breakdown(items),
            top_performing_content=top_performing(items),
            content_family_count=len(family_metrics),
            standalone_content_count=len(standalone_items),
            total_content_count=len(items),
            failed_content_ids=list(dict.fromkeys(failed)),
        )

    async def _growth_for(
        self,
        creator_id: str,
        period: MetricPeriod,
        current: CreatorMetrics,
        previous: Tuple[datetime, datetime],
    ) -> Dict[str, float]:
        try:
            baseline = await self._compute_creator(creator_id, period, previous[0], previous[1])
        except Exception as exc:
            logger.warning("Growth comparison skipped for creator %s: %s", creator_id, exc)
            return {}
        return growth_between(current.aggregate_metrics, baseline.aggregate_metrics)

    # ── Shared ────────────────────────────────────────────────

    async def _collect(
        self, targets: Sequence[_Target], start: datetime, end: datetime
    ) -> Tuple[List[ContentItemSummary], List[str]]:
        """Fetch and standardize every target concurrently; failures are logged and skipped."""
        if not targets:
            return [], []
        semaphore = asyncio.Semaphore(self._max_workers)

        async def fetch(target: _Target) -> ContentItemSummary:
            async with semaphore:
                rows = await self._metrics.daily_metrics(target.id, start, end)
                title = target.title
                if title is None and self._catalog is not None:
                    record = await self._catalog.get(target.id)
                    title = record.title if record is not None else None
            metrics = standardize(
                combine_daily_payloads(rows),
                target.platform,
                target.content_type,
                content_id=target.id,
            )
            return ContentItemSummary(
                id=target.id,
                title=title,
                platform=target.platform,
                content_type=target.content_type,
                family_root_id=target.family_root_id,
                metrics=metrics,
            )

        tasks = [asyncio.create_task(fetch(target)) for target in targets]
        # A cancelled caller stops waiting; in-flight fetches finish and are discarded.
        outcomes = await asyncio.shield(asyncio.gather(*tasks, return_exceptions=True))

        items: List[ContentItemSummary] = []
        failed: List[str] = []
        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Metrics fetch failed for content %s: %s", target.id, outcome)
                failed.append(target.id)
                continue
            items.append(outcome)
        return items, failed

    @staticmethod
    def _aggregate(
        sums: Dict[str, float],
        items: Sequence[ContentItemSummary],
        *,
        total_views: int,
        raw_views: int,
    ) -> AggregateMetrics:
        video_count = sum(1 for item in items if item.content_type in VIDEO_CONTENT_TYPES)
        return AggregateMetrics(
            total_views=total_views,
            raw_total_views=raw_views,
            total_engagements=round(sums["engagements"], 4),
            total_shares=int(round(sums["shares"])),
            total_comments=int(round(sums["comments"])),
            total_likes=int(round(sums["likes"])),
            total_watch_time=round(sums["watch_time"], 4),
            engagement_rate=engagement_rate(sums["engagements"], total_views),
            view_through_rate=_view_through_rate(sums["watch_time"], total_views, video_count),
            estimated_total_value=round2(sums["estimated_value"]),
        )

    async def _cache_get(self, key: AggregateCacheKey) -> Optional[Dict[str, Any]]:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key)
        except Exception as exc:
            logger.warning("Aggregate cache read failed for %s: %s", key.as_string(), exc)
            return None

    async def _cache_put(self, key: AggregateCacheKey, payload: Dict[str, Any]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.put(key, payload)
        except Exception as exc:
            logger.warning("Aggregate cache write failed for %s: %s", key.as_string(), exc)
