"""Append-only analytics event log.

append_event inserts the event and bumps its daily metric in the same
session, so both land or neither does.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.config import settings
from appdeck.db.models import AnalyticsEvent, utc_now
from appdeck.errors import ValidationError
from appdeck.logging_config import get_logger
from appdeck.services import app_service, metrics_service

logger = get_logger(__name__)


async def append_event(
    db: AsyncSession,
    app_id: uuid.UUID,
    event_type: str,
    metadata: Any = None,
    user_id: str | None = None,
    deployment_id: uuid.UUID | None = None,
) -> AnalyticsEvent:
    """Record an event and roll it into today's metric bucket.

    Internal entry point: callers are expected to have checked ownership.
    """
    if not event_type:
        raise ValidationError("Event type is required")

    now = utc_now()
    event = AnalyticsEvent(
        app_id=app_id,
        event_type=event_type,
        event_metadata=metadata,
        user_id=user_id,
        deployment_id=deployment_id,
        timestamp=now,
    )
    db.add(event)
    await db.flush()

    await metrics_service.record_occurrence(db, app_id, event_type, occurred_at=now)

    logger.debug("Event appended", app_id=str(app_id), event_type=event_type)
    return event


async def track_event(
    db: AsyncSession,
    app_id: uuid.UUID,
    caller_id: str,
    event_type: str,
    metadata: Any = None,
    user_id: str | None = None,
    deployment_id: uuid.UUID | None = None,
) -> AnalyticsEvent:
    """Public append: the caller must own the app.

    A deployment_id must name a deployment of the same app.
    """
    await app_service.verify_app_ownership(db, app_id, caller_id)
    if deployment_id is not None:
        await app_service.get_deployment(db, app_id, deployment_id)
    return await append_event(
        db,
        app_id,
        event_type,
        metadata=metadata,
        user_id=user_id,
        deployment_id=deployment_id,
    )


async def list_events(
    db: AsyncSession,
    app_id: uuid.UUID,
    user_id: str,
    event_type: str | None = None,
    limit: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[AnalyticsEvent]:
    """Events for an app, newest first.

    The date range is part of the query, so limit applies to matching
    events only. Both bounds are inclusive. limit defaults to the configured
    page size and is capped at the configured maximum.
    """
    await app_service.verify_app_ownership(db, app_id, user_id)

    if limit is None:
        limit = settings.analytics.default_event_limit
    elif limit < 1:
        raise ValidationError("limit must be at least 1")
    limit = min(limit, settings.analytics.max_event_limit)

    query = select(AnalyticsEvent).where(AnalyticsEvent.app_id == app_id)
    if event_type:
        query = query.where(AnalyticsEvent.event_type == event_type)
    if start_date is not None:
        query = query.where(AnalyticsEvent.timestamp >= start_date)
    if end_date is not None:
        query = query.where(AnalyticsEvent.timestamp <= end_date)

    result = await db.execute(
        query.order_by(AnalyticsEvent.timestamp.desc(), AnalyticsEvent.id.desc()).limit(limit)
    )
    return list(result.scalars().all())
