"""ContentRelationship model for typed edges between content nodes."""

from sqlalchemy import Column, String, DateTime, Float, ForeignKey, Integer, JSON, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class ContentRelationship(Base):
    """Directed edge from an originating item to a derived one."""

    __tablename__ = "content_relationships"
    __table_args__ = (UniqueConstraint("source_id", "target_id", name="uq_content_relationships_pair"),)

    id = Column(Integer, primary_key=True, autoincrement=True)  # Creation order
    source_id = Column(String, ForeignKey("content_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    target_id = Column(String, ForeignKey("content_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    relationship_type = Column(String, nullable=False)
    confidence = Column(Float, nullable=False)
    creation_method = Column(String, nullable=False)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())
