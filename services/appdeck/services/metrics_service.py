"""Daily metric rollups and the analytics summary.

Each appended event bumps one counter keyed by (app, metric_type, UTC date).
The bump is a single INSERT ... ON CONFLICT DO UPDATE so concurrent events
landing in the same bucket cannot lose increments.

The summary is computed from raw events, not from the rollups. The two
views are maintained independently and consumers rely on each.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.config import settings
from appdeck.db.models import AnalyticsEvent, AnalyticsMetric, generate_uuid7, utc_now
from appdeck.logging_config import get_logger
from appdeck.services import app_service

logger = get_logger(__name__)

# Event types with a dedicated metric name. Anything else is counted under
# its own event type.
METRIC_TYPE_BY_EVENT = {
    "api_call": "api_calls",
    "error": "errors",
    "user_login": "active_users",
    "deployment_created": "deployments",
}


@dataclass
class SummaryReport:
    """Point-in-time analytics over a trailing window."""

    days: int
    total_api_calls: int
    total_errors: int
    error_rate: float  # percent
    active_users: int
    total_deployments: int
    active_deployments: int


def _window_days(days: int | None) -> int:
    return settings.analytics.default_window_days if days is None else days


def metric_type_for(event_type: str) -> str:
    """Map an event type to the metric it rolls up into."""
    return METRIC_TYPE_BY_EVENT.get(event_type, event_type)


def bucket_date(moment: datetime) -> str:
    """Calendar day of a timestamp as YYYY-MM-DD in UTC."""
    return moment.astimezone(UTC).strftime("%Y-%m-%d")


def _increment_statement(dialect_name: str, values: dict[str, Any]) -> Any:
    """Build the dialect-specific upsert-increment for one metric bucket."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    stmt = insert(AnalyticsMetric).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["app_id", "metric_type", "date"],
        set_={
            "value": AnalyticsMetric.value + 1,
            "updated_at": values["updated_at"],
        },
    )


async def record_occurrence(
    db: AsyncSession,
    app_id: uuid.UUID,
    event_type: str,
    occurred_at: datetime | None = None,
) -> None:
    """Count one event in today's bucket for its metric type.

    Creates the bucket with value 1 or atomically adds 1 to it.
    """
    now = occurred_at or utc_now()
    metric_type = metric_type_for(event_type)
    values = {
        "id": generate_uuid7(),
        "app_id": app_id,
        "metric_type": metric_type,
        "date": bucket_date(now),
        "value": 1,
        "updated_at": now,
    }

    dialect_name = db.get_bind().dialect.name
    await db.execute(_increment_statement(dialect_name, values))


async def list_metrics(
    db: AsyncSession,
    app_id: uuid.UUID,
    user_id: str,
    metric_type: str | None = None,
    days: int | None = None,
) -> list[AnalyticsMetric]:
    """Rollup rows for the trailing window, optionally for one metric type.

    The lower bound is today minus days (the configured window when
    omitted), compared against the YYYY-MM-DD date strings. Lexicographic
    order of those strings matches calendar order.
    """
    await app_service.verify_app_ownership(db, app_id, user_id)

    start_date = bucket_date(utc_now() - timedelta(days=_window_days(days)))
    query = select(AnalyticsMetric).where(
        AnalyticsMetric.app_id == app_id,
        AnalyticsMetric.date >= start_date,
    )
    if metric_type:
        query = query.where(AnalyticsMetric.metric_type == metric_type)

    # Counters are bumped with Core statements; refresh any rows already in the session
    query = query.order_by(AnalyticsMetric.date, AnalyticsMetric.metric_type).execution_options(
        populate_existing=True
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def summarize(
    db: AsyncSession,
    app_id: uuid.UUID,
    user_id: str,
    days: int | None = None,
) -> SummaryReport:
    """Totals, error rate and active users from raw events in the window.

    Deployment counts are structural (all deployments of the app), not
    windowed.
    """
    await app_service.verify_app_ownership(db, app_id, user_id)

    days = _window_days(days)
    start = utc_now() - timedelta(days=days)
    result = await db.execute(
        select(
            func.coalesce(func.sum(case((AnalyticsEvent.event_type == "api_call", 1), else_=0)), 0),
            func.coalesce(func.sum(case((AnalyticsEvent.event_type == "error", 1), else_=0)), 0),
            func.count(distinct(AnalyticsEvent.user_id)),
        ).where(
            AnalyticsEvent.app_id == app_id,
            AnalyticsEvent.timestamp >= start,
        )
    )
    api_calls, errors, active_users = result.one()
    api_calls, errors = int(api_calls), int(errors)

    deployments = await app_service.list_deployments(db, app_id)

    return SummaryReport(
        days=days,
        total_api_calls=api_calls,
        total_errors=errors,
        error_rate=(errors / api_calls) * 100 if api_calls > 0 else 0.0,
        active_users=int(active_users),
        total_deployments=len(deployments),
        active_deployments=sum(1 for d in deployments if d.status == "active"),
    )
