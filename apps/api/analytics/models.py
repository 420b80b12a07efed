"""
Analytics models and schemas.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from content_graph.types import ContentType, PlatformType


ScalarValue = Union[bool, int, float, str, None]


class MetricPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CUSTOM = "custom"
    ALL_TIME = "all_time"


class EntityType(str, Enum):
    FAMILY = "family"
    CREATOR = "creator"


class DateRange(BaseModel):
    start: datetime
    end: datetime


class StandardizedMetrics(BaseModel):
    """Platform-agnostic metrics for one content item."""
    content_id: str = ""
    views: int = 0
    engagements: float = 0.0
    engagement_rate: float = 0.0  # Percent
    shares: int = 0
    comments: int = 0
    likes: int = 0
    watch_time: float = 0.0  # Minutes
    estimated_value: float = 0.0  # USD
    platform_specific_metrics: Dict[str, ScalarValue] = {}
    last_updated: Optional[datetime] = None


class DailyStandardizedMetrics(BaseModel):
    day: date
    metrics: StandardizedMetrics


class PlatformPairOverlap(BaseModel):
    platforms: Tuple[PlatformType, PlatformType]
    overlap_percentage: float
    duplicated_views: float


class ContentPairOverlap(BaseModel):
    content_ids: Tuple[str, str]
    relationship_type: str
    overlap_percentage: float  # Base coefficient x confidence, as a percent
    duplicated_views: float


class AudienceOverlapEstimate(BaseModel):
    platform_pairs: List[PlatformPairOverlap] = []
    content_pairs: List[ContentPairOverlap] = []
    estimated_duplication: float = 5.0  # Percent, clamped to [5, 75]
    estimated_unique_reach: int = 0


class AggregateMetrics(BaseModel):
    total_views: int = 0  # Deduplicated where overlap applies
    raw_total_views: int = 0
    total_engagements: float = 0.0
    total_shares: int = 0
    total_comments: int = 0
    total_likes: int = 0
    total_watch_time: float = 0.0
    engagement_rate: float = 0.0
    view_through_rate: float = 0.0
    estimated_total_value: float = 0.0
    growth_rates: Dict[str, float] = {}


class BreakdownMetrics(BaseModel):
    views: int = 0
    engagements: float = 0.0
    shares: int = 0
    comments: int = 0
    likes: int = 0
    watch_time: float = 0.0
    estimated_value: float = 0.0
    engagement_rate: float = 0.0
    percentage: float = 0.0  # Share of total engagements, else of views
    content_count: int = 0


class PlatformBreakdown(BreakdownMetrics):
    platform: PlatformType


class ContentTypeBreakdown(BreakdownMetrics):
    content_type: ContentType


class ContentItemSummary(BaseModel):
    id: str
    title: Optional[str] = None
    platform: PlatformType
    content_type: ContentType
    family_root_id: Optional[str] = None
    metrics: StandardizedMetrics


class FamilyMetrics(BaseModel):
    root_content_id: str
    period: MetricPeriod
    range_start: datetime
    range_end: datetime
    aggregate_metrics: AggregateMetrics
    platform_breakdown: List[PlatformBreakdown] = []
    content_type_breakdown: List[ContentTypeBreakdown] = []
    audience_overlap: AudienceOverlapEstimate
    unique_reach_estimate: int = 0
    content_count: int = 0
    platform_count: int = 0
    content_items: List[ContentItemSummary] = []
    failed_content_ids: List[str] = []


class CreatorMetrics(BaseModel):
    creator_id: str
    period: MetricPeriod
    range_start: datetime
    range_end: datetime
    aggregate_metrics: AggregateMetrics
    platform_breakdown: List[PlatformBreakdown] = []
    content_type_breakdown: List[ContentTypeBreakdown] = []
    growth_metrics: Dict[str, float] = {}
    top_performing_content: List[ContentItemSummary] = []
    content_family_count: int = 0
    standalone_content_count: int = 0
    total_content_count: int = 0
    failed_content_ids: List[str] = []


class Insight(BaseModel):
    """Output item of an external insight generator."""
    title: str
    description: str
    priority: int = 2  # 1 (Highest) to 3 (Lowest)


class InsightReport(BaseModel):
    aggregate: Union[FamilyMetrics, CreatorMetrics]
    insights: List[Insight] = []
    insight_error: Optional[str] = None
