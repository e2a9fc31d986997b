"""
SQLAlchemy database models for AppDeck.

All models use:
- UUIDv7 primary keys (time-sortable), except api_tokens (prefixed string PK)
- snake_case column names
- Plural table names
- TIMESTAMPTZ with UTC for all timestamps
- Hard deletes (no soft delete columns); app-scoped rows cascade with their app

apps and deployments belong to the surrounding app-management component.
They are modelled here because the core reads them for ownership checks,
deployment counts and cascading deletes.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON on SQLite (tests)
JsonType = JSONB().with_variant(JSON(), "sqlite")


def generate_uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-sortable UUID)."""
    import time

    timestamp_ms = int(time.time() * 1000)
    rand_bytes = uuid.uuid4().bytes[6:]

    uuid_bytes = (
        timestamp_ms.to_bytes(6, "big")
        + bytes([0x70 | (rand_bytes[0] & 0x0F)])  # Version 7
        + bytes([0x80 | (rand_bytes[1] & 0x3F)])  # Variant
        + rand_bytes[2:]
    )
    return uuid.UUID(bytes=uuid_bytes)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JsonType,
    }


class App(Base):
    """Tenant-scoped project container. The owner is the sole mutator."""

    __tablename__ = "apps"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid7)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(63), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    environment_variables: Mapped[list["EnvironmentVariable"]] = relationship(
        back_populates="app", cascade="all, delete-orphan", passive_deletes=True
    )
    deployments: Mapped[list["Deployment"]] = relationship(
        back_populates="app", cascade="all, delete-orphan", passive_deletes=True
    )
    events: Mapped[list["AnalyticsEvent"]] = relationship(
        back_populates="app", cascade="all, delete-orphan", passive_deletes=True
    )
    metrics: Mapped[list["AnalyticsMetric"]] = relationship(
        back_populates="app", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (Index("ix_apps_owner_id", "owner_id"),)


class Deployment(Base):
    """A deployment of an app. Only status is read by the core."""

    __tablename__ = "deployments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid7)
    app_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(63), nullable=False, default="")
    url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    app: Mapped["App"] = relationship(back_populates="deployments")

    __table_args__ = (Index("ix_deployments_app_id", "app_id"),)


class APIToken(Base):
    """Long-lived Bearer tokens identifying a caller.

    Tokens are hashed at rest (SHA-256). The raw token value is only
    returned once at creation time.
    """

    __tablename__ = "api_tokens"

    id: Mapped[str] = mapped_column(String(63), primary_key=True)  # "at-{hex}"
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (Index("ix_api_tokens_user_id", "user_id"),)


class EnvironmentVariable(Base):
    """App-scoped key/value for one deployment stage.

    When is_encrypted is set, value holds the codec output rather than the
    plaintext. (app_id, key, environment) is unique.
    """

    __tablename__ = "environment_variables"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid7)
    app_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False
    )
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_encrypted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    environment: Mapped[str] = mapped_column(String(63), nullable=False)  # all, development, ...
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    app: Mapped["App"] = relationship(back_populates="environment_variables")

    __table_args__ = (
        sa.UniqueConstraint("app_id", "key", "environment", name="uq_environment_variables"),
        Index("ix_environment_variables_app_env", "app_id", "environment"),
    )


class AnalyticsEvent(Base):
    """Append-only activity record. Never updated."""

    __tablename__ = "analytics_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid7)
    app_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(63), nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Any | None] = mapped_column("metadata", JsonType, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)  # app end user
    deployment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("deployments.id", ondelete="SET NULL"), nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    app: Mapped["App"] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_analytics_events_app_timestamp", "app_id", "timestamp"),
        Index("ix_analytics_events_app_type_timestamp", "app_id", "event_type", "timestamp"),
    )


class AnalyticsMetric(Base):
    """Daily rollup counter for one (app, metric_type, date) bucket."""

    __tablename__ = "analytics_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid7)
    app_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD, UTC
    metric_type: Mapped[str] = mapped_column(String(63), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    app: Mapped["App"] = relationship(back_populates="metrics")

    __table_args__ = (
        sa.UniqueConstraint("app_id", "metric_type", "date", name="uq_analytics_metrics_bucket"),
        Index("ix_analytics_metrics_app_date", "app_id", "date"),
    )
