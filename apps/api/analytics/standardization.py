"""
Cross-platform metric standardization.

Maps raw per-platform payloads (arbitrary field names) into
``StandardizedMetrics`` using per-platform weights and field mappings.
Everything here is pure: the same payload, platform and content type always
produce the same output.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from analytics.models import DailyStandardizedMetrics, ScalarValue, StandardizedMetrics
from content_graph.types import ContentType, PlatformType, parse_enum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformStandardization:
    engagement_weight: float
    share_weight: float
    comment_weight: float
    like_weight: float
    platform_engagement_factor: float
    platform_value_factor: float
    # Canonical field -> platform field. Canonical fields not listed read their own name.
    metric_mappings: Dict[str, str] = field(default_factory=dict)


PLATFORM_STANDARDIZATION: Dict[PlatformType, PlatformStandardization] = {
    PlatformType.YOUTUBE: PlatformStandardization(
        engagement_weight=1.0,
        share_weight=1.5,
        comment_weight=1.2,
        like_weight=0.8,
        platform_engagement_factor=1.0,
        platform_value_factor=1.2,
        metric_mappings={"watch_time": "minutes_watched"},
    ),
    PlatformType.INSTAGRAM: PlatformStandardization(
        engagement_weight=1.2,
        share_weight=1.8,
        comment_weight=1.5,
        like_weight=1.0,
        platform_engagement_factor=1.2,
        platform_value_factor=1.4,
        metric_mappings={"saves": "bookmarks", "views": "impressions"},
    ),
    PlatformType.TIKTOK: PlatformStandardization(
        engagement_weight=1.3,
        share_weight=2.0,
        comment_weight=1.4,
        like_weight=1.0,
        platform_engagement_factor=1.3,
        platform_value_factor=1.1,
        metric_mappings={"watch_time": "total_time_watched"},
    ),
    PlatformType.TWITTER: PlatformStandardization(
        engagement_weight=0.9,
        share_weight=1.6,
        comment_weight=1.5,
        like_weight=0.7,
        platform_engagement_factor=0.9,
        platform_value_factor=0.8,
        metric_mappings={
            "likes": "favorites",
            "comments": "replies",
            "shares": "retweets",
            "views": "impressions",
        },
    ),
    PlatformType.LINKEDIN: PlatformStandardization(
        engagement_weight=1.1,
        share_weight=2.0,
        comment_weight=1.7,
        like_weight=0.9,
        platform_engagement_factor=0.9,
        platform_value_factor=1.5,
        metric_mappings={"views": "impressions"},
    ),
}

DEFAULT_STANDARDIZATION = PlatformStandardization(
    engagement_weight=1.0,
    share_weight=1.0,
    comment_weight=1.0,
    like_weight=1.0,
    platform_engagement_factor=1.0,
    platform_value_factor=1.0,
)

CONTENT_TYPE_VALUE_MULTIPLIERS: Dict[ContentType, float] = {
    ContentType.VIDEO: 1.5,
    ContentType.SHORT_VIDEO: 1.2,
    ContentType.PHOTO: 1.0,
    ContentType.CAROUSEL: 1.3,
    ContentType.STORY: 0.7,
    ContentType.POST: 1.0,
    ContentType.ARTICLE: 1.4,
    ContentType.PODCAST: 1.8,
    ContentType.OTHER: 1.0,
}

BASE_VALUE_MULTIPLIER = 0.01
COMMENT_VALUE = 0.02
SHARE_VALUE = 0.05

COUNT_FIELDS = ("views", "likes", "comments", "shares")
# Extra interaction fields counted at the platform's default engagement weight.
INTERACTION_FIELDS = ("saves",)
CANONICAL_FIELDS = COUNT_FIELDS + ("watch_time",) + INTERACTION_FIELDS
IDENTITY_FIELDS = frozenset({"id", "content_id", "contentId", "last_updated", "lastUpdated", "date"})


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def _safe_int(value: Any, default: int = 0) -> int:
    number = _safe_float(value, float("nan"))
    return int(number) if math.isfinite(number) else default


def round2(value: float) -> float:
    """Round half-up to cents."""
    return float(Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def _overflow_value(value: Any) -> ScalarValue:
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return json.dumps(value, sort_keys=True, default=str)


def standardization_config(platform: PlatformType) -> PlatformStandardization:
    config = PLATFORM_STANDARDIZATION.get(platform)
    if config is None:
        logger.warning("No standardization profile for platform %s; using defaults", platform.value)
        return DEFAULT_STANDARDIZATION
    return config


def content_type_multiplier(content_type: ContentType) -> float:
    return CONTENT_TYPE_VALUE_MULTIPLIERS.get(content_type, CONTENT_TYPE_VALUE_MULTIPLIERS[ContentType.OTHER])


def engagement_rate(engagements: float, views: float, factor: float = 1.0) -> float:
    if views <= 0:
        return 0.0
    return round((engagements / views) * 100.0 * factor, 4)


def standardize(
    raw: Mapping[str, Any],
    platform: PlatformType,
    content_type: ContentType,
    *,
    content_id: Optional[str] = None,
) -> StandardizedMetrics:
    """Normalize one raw metrics payload.

    Mapped fields read the platform's field name first and the canonical name
    second. Anything not consumed lands in ``platform_specific_metrics``.
    """
    platform = parse_enum(PlatformType, platform, "platform")
    content_type = parse_enum(ContentType, content_type, "content type")
    config = standardization_config(platform)

    consumed = set(IDENTITY_FIELDS)
    values: Dict[str, Any] = {}
    for canonical in CANONICAL_FIELDS:
        for key in (config.metric_mappings.get(canonical, canonical), canonical):
            if raw.get(key) is not None:
                values[canonical] = raw[key]
                consumed.add(key)
                break

    views = max(_safe_int(values.get("views")), 0)
    likes = max(_safe_int(values.get("likes")), 0)
    comments = max(_safe_int(values.get("comments")), 0)
    shares = max(_safe_int(values.get("shares")), 0)
    watch_time = max(_safe_float(values.get("watch_time")), 0.0)

    overflow: Dict[str, ScalarValue] = {}
    other_interactions = 0.0
    for name in INTERACTION_FIELDS:
        if name in values:
            count = max(_safe_int(values[name]), 0)
            other_interactions += count
            overflow[name] = count
    for key in sorted(raw):
        if key not in consumed:
            overflow[key] = _overflow_value(raw[key])

    engagements = round(
        likes * config.like_weight
        + comments * config.comment_weight
        + shares * config.share_weight
        + other_interactions * config.engagement_weight,
        4,
    )
    rate = engagement_rate(engagements, views, config.platform_engagement_factor)
    value = round2(
        views * (rate / 100.0) * BASE_VALUE_MULTIPLIER * config.platform_value_factor * content_type_multiplier(content_type)
        + comments * COMMENT_VALUE
        + shares * SHARE_VALUE
    )

    resolved_id = content_id or raw.get("content_id") or raw.get("contentId") or raw.get("id") or ""
    metrics = StandardizedMetrics(
        content_id=str(resolved_id),
        views=views,
        engagements=engagements,
        engagement_rate=rate,
        shares=shares,
        comments=comments,
        likes=likes,
        watch_time=round(watch_time, 4),
        estimated_value=value,
        platform_specific_metrics=overflow,
        last_updated=_parse_timestamp(raw.get("last_updated", raw.get("lastUpdated"))),
    )
    logger.debug(
        "Standardized %s metrics for %s: engagements=%s rate=%.2f%% value=$%.2f",
        platform.value,
        metrics.content_id or "<unknown>",
        engagements,
        rate,
        value,
    )
    return metrics


def combine_daily_payloads(days: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Fold raw daily rows into one payload.

    Numeric fields are summed; any other value keeps the latest row's value.
    Rows are expected oldest first.
    """
    combined: Dict[str, Any] = {}
    for row in days:
        for key, value in row.items():
            if key == "date":
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                previous = combined.get(key)
                if isinstance(previous, (int, float)) and not isinstance(previous, bool):
                    combined[key] = previous + value
                else:
                    combined[key] = value
            else:
                combined[key] = value
    return combined


def standardize_time_series(
    points: Iterable[Mapping[str, Any]],
    platform: PlatformType,
    content_type: ContentType,
    *,
    content_id: Optional[str] = None,
) -> List[DailyStandardizedMetrics]:
    """Group raw points by calendar day, sum each day, and standardize it."""
    grouped: Dict[date, List[Mapping[str, Any]]] = {}
    for point in points:
        raw_day = point.get("date")
        if isinstance(raw_day, datetime):
            day = raw_day.date()
        elif isinstance(raw_day, date):
            day = raw_day
        else:
            parsed = _parse_timestamp(raw_day)
            if parsed is None:
                logger.warning("Skipping metrics point without a usable date: %r", raw_day)
                continue
            day = parsed.date()
        grouped.setdefault(day, []).append(point)

    return [
        DailyStandardizedMetrics(
            day=day,
            metrics=standardize(combine_daily_payloads(grouped[day]), platform, content_type, content_id=content_id),
        )
        for day in sorted(grouped)
    ]
