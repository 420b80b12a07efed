"""ContentPathNode model for the materialized-path index."""

from sqlalchemy import Column, String, DateTime, Integer, Text
from sqlalchemy.sql import func

from database import Base


class ContentPathNode(Base):
    """One content item positioned in a family tree."""

    __tablename__ = "content_nodes"

    id = Column(String, primary_key=True)
    path = Column(Text, nullable=False, index=True)  # Dot-joined ancestor ids, root first
    depth = Column(Integer, nullable=False, default=0)
    root_id = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    creator_id = Column(String, nullable=True, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())
