"""Initial schema: apps, deployments, api_tokens, environment_variables, analytics.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "apps",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("region", sa.String(63), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_apps_owner_id", "apps", ["owner_id"])

    op.create_table(
        "deployments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "app_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("apps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("region", sa.String(63), nullable=False, server_default=""),
        sa.Column("url", sa.String(500), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _timestamp("created_at"),
    )
    op.create_index("ix_deployments_app_id", "deployments", ["app_id"])

    op.create_table(
        "api_tokens",
        sa.Column("id", sa.String(63), primary_key=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
        _timestamp("last_used_at", nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"])
    op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"])

    op.create_table(
        "environment_variables",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "app_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("apps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "is_encrypted", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("environment", sa.String(63), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("app_id", "key", "environment", name="uq_environment_variables"),
    )
    op.create_index(
        "ix_environment_variables_app_env", "environment_variables", ["app_id", "environment"]
    )

    op.create_table(
        "analytics_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "app_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("apps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(63), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column(
            "deployment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("deployments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("timestamp"),
    )
    op.create_index(
        "ix_analytics_events_app_timestamp", "analytics_events", ["app_id", "timestamp"]
    )
    op.create_index(
        "ix_analytics_events_app_type_timestamp",
        "analytics_events",
        ["app_id", "event_type", "timestamp"],
    )

    op.create_table(
        "analytics_metrics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "app_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("apps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("metric_type", sa.String(63), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "app_id", "metric_type", "date", name="uq_analytics_metrics_bucket"
        ),
    )
    op.create_index("ix_analytics_metrics_app_date", "analytics_metrics", ["app_id", "date"])


def downgrade() -> None:
    op.drop_table("analytics_metrics")
    op.drop_table("analytics_events")
    op.drop_table("environment_variables")
    op.drop_table("api_tokens")
    op.drop_table("deployments")
    op.drop_table("apps")
