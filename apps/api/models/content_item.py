"""ContentItem model for the content catalog."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from database import Base


class ContentItem(Base):
    """Catalog row for a published piece of content, in or out of the hierarchy."""

    __tablename__ = "content"

    id = Column(String, primary_key=True)
    creator_id = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    title = Column(String, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
