"""DailyMetric model for raw per-platform metrics by day."""

from sqlalchemy import Column, String, Date, DateTime, JSON
from sqlalchemy.sql import func

from database import Base


class DailyMetric(Base):
    """Raw platform payload for one content item on one day."""

    __tablename__ = "daily_metrics"

    content_id = Column(String, primary_key=True)
    metric_date = Column(Date, primary_key=True)
    payload_json = Column(JSON, nullable=False)  # Platform field names, unmapped
    fetched_at = Column(DateTime(timezone=True), server_default=func.now())
