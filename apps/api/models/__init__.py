"""Models package."""

from .content_item import ContentItem
from .content_node import ContentPathNode
from .content_relationship import ContentRelationship
from .daily_metric import DailyMetric
from .aggregate_metric import AggregateMetricSnapshot
