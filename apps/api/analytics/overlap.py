"""Statistical audience-overlap estimation for content families.

Two kinds of duplicated reach are estimated and summed:
  - platform pairs: audiences shared between two platforms, scaled by the
    smaller platform's views
  - content pairs: audiences shared along a relationship edge, scaled by the
    smaller item's views and the edge confidence
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from itertools import combinations
from typing import Dict, FrozenSet, List, Mapping, Sequence

from analytics.models import AudienceOverlapEstimate, ContentPairOverlap, PlatformPairOverlap
from content_graph.types import PlatformType, RelationshipEdge, RelationshipType


def _pair(a: PlatformType, b: PlatformType) -> FrozenSet[PlatformType]:
    return frozenset((a, b))


# Percent of one platform's audience assumed to also follow on the other.
PLATFORM_OVERLAP_PERCENTAGES: Dict[FrozenSet[PlatformType], float] = {
    _pair(PlatformType.YOUTUBE, PlatformType.INSTAGRAM): 42.0,
    _pair(PlatformType.YOUTUBE, PlatformType.TIKTOK): 35.0,
    _pair(PlatformType.YOUTUBE, PlatformType.TWITTER): 28.0,
    _pair(PlatformType.YOUTUBE, PlatformType.LINKEDIN): 15.0,
    _pair(PlatformType.INSTAGRAM, PlatformType.TIKTOK): 45.0,
    _pair(PlatformType.INSTAGRAM, PlatformType.TWITTER): 30.0,
    _pair(PlatformType.INSTAGRAM, PlatformType.LINKEDIN): 18.0,
    _pair(PlatformType.TIKTOK, PlatformType.TWITTER): 25.0,
    _pair(PlatformType.TIKTOK, PlatformType.LINKEDIN): 12.0,
    _pair(PlatformType.TWITTER, PlatformType.LINKEDIN): 22.0,
}
DEFAULT_PLATFORM_OVERLAP = 20.0

RELATIONSHIP_OVERLAP_COEFFICIENTS: Dict[RelationshipType, float] = {
    RelationshipType.PARENT: 0.50,
    RelationshipType.DERIVATIVE: 0.60,
    RelationshipType.REPURPOSED: 0.45,
    RelationshipType.REACTION: 0.35,
    RelationshipType.REFERENCE: 0.25,
}

PLATFORM_PAIR_DAMPING = 0.5
CONTENT_PAIR_DAMPING = 0.2
MIN_DUPLICATION = 5.0
MAX_DUPLICATION = 75.0

_PLATFORM_ORDER = {platform: index for index, platform in enumerate(PlatformType)}


def platform_overlap_percentage(a: PlatformType, b: PlatformType) -> float:
    return PLATFORM_OVERLAP_PERCENTAGES.get(_pair(a, b), DEFAULT_PLATFORM_OVERLAP)


def _clip(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(Decimal(repr(float(value))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def estimate_audience_overlap(
    views_by_content: Mapping[str, int],
    platform_by_content: Mapping[str, PlatformType],
    edges: Sequence[RelationshipEdge],
) -> AudienceOverlapEstimate:
    """Estimate duplicated reach across a set of content items.

    Each unordered platform pair is counted once. Only edges whose endpoints
    both have views contribute a content-pair term.
    """
    platform_views: Dict[PlatformType, int] = {}
    for content_id, views in views_by_content.items():
        platform = platform_by_content.get(content_id)
        if platform is None:
            continue
        platform_views[platform] = platform_views.get(platform, 0) + int(views)

    platform_pairs: List[PlatformPairOverlap] = []
    present = sorted(platform_views, key=lambda platform: _PLATFORM_ORDER[platform])
    for first, second in combinations(present, 2):
        percentage = platform_overlap_percentage(first, second)
        duplicated = (percentage / 100.0) * min(platform_views[first], platform_views[second]) * PLATFORM_PAIR_DAMPING
        platform_pairs.append(
            PlatformPairOverlap(
                platforms=(first, second),
                overlap_percentage=percentage,
                duplicated_views=round(duplicated, 4),
            )
        )

    content_pairs: List[ContentPairOverlap] = []
    for edge in edges:
        if edge.source_id not in views_by_content or edge.target_id not in views_by_content:
            continue
        coefficient = RELATIONSHIP_OVERLAP_COEFFICIENTS[edge.relationship_type] * edge.confidence
        duplicated = (
            coefficient
            * min(views_by_content[edge.source_id], views_by_content[edge.target_id])
            * CONTENT_PAIR_DAMPING
        )
        content_pairs.append(
            ContentPairOverlap(
                content_ids=(edge.source_id, edge.target_id),
                relationship_type=edge.relationship_type.value,
                overlap_percentage=round(coefficient * 100.0, 4),
                duplicated_views=round(duplicated, 4),
            )
        )

    total_views = sum(int(views) for views in views_by_content.values())
    if total_views <= 0:
        return AudienceOverlapEstimate(
            platform_pairs=platform_pairs,
            content_pairs=content_pairs,
            estimated_duplication=MIN_DUPLICATION,
            estimated_unique_reach=0,
        )

    duplicated_total = sum(pair.duplicated_views for pair in platform_pairs) + sum(
        pair.duplicated_views for pair in content_pairs
    )
    duplication = round(_clip(duplicated_total / total_views * 100.0, MIN_DUPLICATION, MAX_DUPLICATION), 4)
    return AudienceOverlapEstimate(
        platform_pairs=platform_pairs,
        content_pairs=content_pairs,
        estimated_duplication=duplication,
        estimated_unique_reach=_round_half_up(total_views * (1.0 - duplication / 100.0)),
    )
