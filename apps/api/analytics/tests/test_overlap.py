import pytest

from analytics.overlap import estimate_audience_overlap, platform_overlap_percentage
from content_graph.types import CreationMethod, PlatformType, RelationshipEdge, RelationshipType


def _edge(source, target, relationship_type, confidence):
    return RelationshipEdge(
        source_id=source,
        target_id=target,
        relationship_type=relationship_type,
        confidence=confidence,
        creation_method=CreationMethod.AI_SUGGESTED,
    )


def test_derivative_pair_on_one_platform_hits_the_duplication_floor():
    estimate = estimate_audience_overlap(
        {"R": 10000, "C": 4000},
        {"R": PlatformType.YOUTUBE, "C": PlatformType.YOUTUBE},
        [_edge("R", "C", RelationshipType.DERIVATIVE, 0.9)],
    )

    assert estimate.platform_pairs == []
    assert estimate.content_pairs[0].duplicated_views == pytest.approx(432.0)
    assert estimate.content_pairs[0].overlap_percentage == pytest.approx(54.0)
    assert estimate.estimated_duplication == 5.0
    assert estimate.estimated_unique_reach == 13300


def test_each_platform_pair_is_counted_once():
    estimate = estimate_audience_overlap(
        {"yt": 10000, "ig": 6000},
        {"yt": PlatformType.YOUTUBE, "ig": PlatformType.INSTAGRAM},
        [],
    )

    assert len(estimate.platform_pairs) == 1
    pair = estimate.platform_pairs[0]
    assert pair.platforms == (PlatformType.YOUTUBE, PlatformType.INSTAGRAM)
    assert pair.overlap_percentage == 42.0
    # 42% of the smaller platform, damped by half.
    assert pair.duplicated_views == pytest.approx(1260.0)
    assert estimate.estimated_duplication == pytest.approx(7.875)
    assert estimate.estimated_unique_reach == 14740


def test_duplication_is_capped():
    estimate = estimate_audience_overlap(
        {"a": 1000, "b": 1000, "c": 1000},
        {"a": PlatformType.TIKTOK, "b": PlatformType.INSTAGRAM, "c": PlatformType.TIKTOK},
        [
            _edge("a", "b", RelationshipType.DERIVATIVE, 1.0),
            _edge("a", "c", RelationshipType.DERIVATIVE, 1.0),
            _edge("b", "c", RelationshipType.DERIVATIVE, 1.0),
        ]
        * 10,
    )

    assert estimate.estimated_duplication == 75.0
    assert estimate.estimated_unique_reach == 750


def test_edges_to_items_without_views_are_ignored():
    estimate = estimate_audience_overlap(
        {"R": 5000},
        {"R": PlatformType.YOUTUBE},
        [_edge("R", "gone", RelationshipType.REACTION, 1.0)],
    )

    assert estimate.content_pairs == []
    assert estimate.estimated_unique_reach == 4750


def test_zero_views_yields_floor_duplication_and_no_reach():
    estimate = estimate_audience_overlap({"R": 0}, {"R": PlatformType.YOUTUBE}, [])

    assert estimate.estimated_duplication == 5.0
    assert estimate.estimated_unique_reach == 0


def test_unlisted_platform_pairs_use_the_default_overlap():
    assert platform_overlap_percentage(PlatformType.YOUTUBE, PlatformType.OTHER) == 20.0
    assert platform_overlap_percentage(PlatformType.TIKTOK, PlatformType.INSTAGRAM) == 45.0
