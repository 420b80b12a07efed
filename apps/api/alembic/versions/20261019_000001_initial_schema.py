"""create content graph schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "content",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_content_creator_id"), "content", ["creator_id"], unique=False)
    op.create_index(op.f("ix_content_published_at"), "content", ["published_at"], unique=False)

    op.create_table(
        "content_nodes",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("root_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_content_nodes_path"), "content_nodes", ["path"], unique=False)
    op.create_index(op.f("ix_content_nodes_root_id"), "content_nodes", ["root_id"], unique=False)
    op.create_index(op.f("ix_content_nodes_creator_id"), "content_nodes", ["creator_id"], unique=False)

    op.create_table(
        "content_relationships",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("source_id", sa.String(), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("relationship_type", sa.String(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("creation_method", sa.String(), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["source_id"], ["content_nodes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_id"], ["content_nodes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_id", "target_id", name="uq_content_relationships_pair"),
    )
    op.create_index(op.f("ix_content_relationships_source_id"), "content_relationships", ["source_id"], unique=False)
    op.create_index(op.f("ix_content_relationships_target_id"), "content_relationships", ["target_id"], unique=False)

    op.create_table(
        "daily_metrics",
        sa.Column("content_id", sa.String(), nullable=False),
        sa.Column("metric_date", sa.Date(), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("content_id", "metric_date"),
    )

    op.create_table(
        "aggregate_metrics",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("period", sa.String(), nullable=False),
        sa.Column("range_start", sa.String(), nullable=False),
        sa.Column("range_end", sa.String(), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "entity_id", "entity_type", "period", "range_start", "range_end",
            name="uq_aggregate_metrics_key",
        ),
    )
    op.create_index(op.f("ix_aggregate_metrics_entity_id"), "aggregate_metrics", ["entity_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_aggregate_metrics_entity_id"), table_name="aggregate_metrics")
    op.drop_table("aggregate_metrics")
    op.drop_table("daily_metrics")
    op.drop_index(op.f("ix_content_relationships_target_id"), table_name="content_relationships")
    op.drop_index(op.f("ix_content_relationships_source_id"), table_name="content_relationships")
    op.drop_table("content_relationships")
    op.drop_index(op.f("ix_content_nodes_creator_id"), table_name="content_nodes")
    op.drop_index(op.f("ix_content_nodes_root_id"), table_name="content_nodes")
    op.drop_index(op.f("ix_content_nodes_path"), table_name="content_nodes")
    op.drop_table("content_nodes")
    op.drop_index(op.f("ix_content_published_at"), table_name="content")
    op.drop_index(op.f("ix_content_creator_id"), table_name="content")
    op.drop_table("content")
