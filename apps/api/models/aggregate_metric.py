"""AggregateMetricSnapshot model for cached family/creator aggregates."""

from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
import uuid

from database import Base


class AggregateMetricSnapshot(Base):
    """Last computed aggregate for an entity and period range."""

    __tablename__ = "aggregate_metrics"
    __table_args__ = (
        UniqueConstraint(
            "entity_id", "entity_type", "period", "range_start", "range_end",
            name="uq_aggregate_metrics_key",
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_id = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    period = Column(String, nullable=False)
    range_start = Column(String, nullable=False)  # ISO-8601, UTC
    range_end = Column(String, nullable=False)  # ISO-8601, UTC
    payload_json = Column(JSON, nullable=False)
    computed_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
