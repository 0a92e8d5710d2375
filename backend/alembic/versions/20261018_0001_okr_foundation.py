"""okr catalog, objectives and action lifecycle tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""
from alembic import op
import sqlalchemy as sa


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "dim_metric_type",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=80), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit", sa.String(length=40), nullable=True),
        sa.Column("category", sa.String(length=80), nullable=True),
    )
    op.create_table(
        "dim_date",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("date_value", sa.Date(), nullable=False, unique=True),
    )
    op.create_table(
        "dim_platform",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=80), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=True),
    )
    op.create_table(
        "okr_master",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("industry", sa.String(length=120), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=False),
        sa.Column("objective_title", sa.String(length=200), nullable=False),
        sa.Column("objective_description", sa.Text(), nullable=True),
        sa.Column("suggested_timeframe", sa.String(length=20), nullable=True),
        sa.Column("priority_level", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tags", sa.Text(), nullable=False, server_default="[]"),
    )
    op.create_index("ix_okr_master_industry", "okr_master", ["industry"])
    op.create_table(
        "okr_master_metrics",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("okr_master_id", sa.String(length=36), sa.ForeignKey("okr_master.id", ondelete="CASCADE"), nullable=False),
        sa.Column("metric_type_id", sa.String(length=36), sa.ForeignKey("dim_metric_type.id"), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("target_improvement_percentage", sa.Float(), nullable=True),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
    )
    op.create_index("ix_okr_master_metrics_okr_master_id", "okr_master_metrics", ["okr_master_id"])
    op.create_table(
        "okr_objectives",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("brand_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("target_date_id", sa.Integer(), sa.ForeignKey("dim_date.id"), nullable=False),
        sa.Column("granularity", sa.String(length=20), nullable=False),
        sa.Column("metric_type_id", sa.String(length=36), sa.ForeignKey("dim_metric_type.id"), nullable=False),
        sa.Column("platform_id", sa.String(length=36), sa.ForeignKey("dim_platform.id"), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("master_template_id", sa.String(length=36), sa.ForeignKey("okr_master.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_okr_objectives_brand_id", "okr_objectives", ["brand_id"])
    op.create_index("ix_okr_objectives_is_active", "okr_objectives", ["is_active"])
    op.create_index("ix_okr_objectives_created_at", "okr_objectives", ["created_at"])
    op.create_table(
        "recommended_actions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("insight_id", sa.String(length=36), nullable=False),
        sa.Column("action_text", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("stage", sa.String(length=40), nullable=False, server_default="new"),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("impact_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("viewed_by", sa.String(length=36), nullable=True),
        sa.Column("saved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("saved_by", sa.String(length=36), nullable=True),
        sa.Column("actioned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actioned_by", sa.String(length=36), nullable=True),
        sa.Column("okr_objective_id", sa.String(length=36), nullable=True),
        sa.Column("campaign_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_recommended_actions_insight_id", "recommended_actions", ["insight_id"])
    op.create_index("ix_recommended_actions_stage", "recommended_actions", ["stage"])
    op.create_index("ix_recommended_actions_created_at", "recommended_actions", ["created_at"])
    op.create_index("ix_recommended_actions_okr_objective_id", "recommended_actions", ["okr_objective_id"])
    op.create_index("ix_recommended_actions_campaign_id", "recommended_actions", ["campaign_id"])
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_entity_event", "audit_logs", ["entity_id", "event_type"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("recommended_actions")
    op.drop_table("okr_objectives")
    op.drop_table("okr_master_metrics")
    op.drop_table("okr_master")
    op.drop_table("dim_platform")
    op.drop_table("dim_date")
    op.drop_table("dim_metric_type")
