"""Analytics endpoints: event log, daily metrics, summary.

Endpoints:
    GET/POST  /api/v1/apps/{app_id}/events
    GET       /api/v1/apps/{app_id}/metrics
    GET       /api/v1/apps/{app_id}/summary
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.api.dependencies import AuthenticatedUser, get_current_user, parse_id
from appdeck.db.models import AnalyticsEvent, AnalyticsMetric
from appdeck.db.session import get_db
from appdeck.errors import ValidationError
from appdeck.logging_config import get_logger
from appdeck.services import event_service, metrics_service

router = APIRouter(tags=["analytics"])
logger = get_logger(__name__)


def _rfc3339(dt: datetime | None) -> str:
    if dt is None:
        return ""
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _event_json(event: AnalyticsEvent) -> dict:
    return {
        "id": f"evt-{event.id}",
        "type": "analytics-events",
        "attributes": {
            "event-type": event.event_type,
            "metadata": event.event_metadata,
            "user-id": event.user_id,
            "deployment-id": f"dep-{event.deployment_id}" if event.deployment_id else None,
            "timestamp": _rfc3339(event.timestamp),
        },
        "relationships": {
            "app": {"data": {"id": f"app-{event.app_id}", "type": "apps"}},
        },
    }


def _metric_json(metric: AnalyticsMetric) -> dict:
    return {
        "id": f"met-{metric.id}",
        "type": "analytics-metrics",
        "attributes": {
            "date": metric.date,
            "metric-type": metric.metric_type,
            "value": metric.value,
            "updated-at": _rfc3339(metric.updated_at),
        },
        "relationships": {
            "app": {"data": {"id": f"app-{metric.app_id}", "type": "apps"}},
        },
    }


def _as_utc(dt: datetime | None) -> datetime | None:
    """Treat naive query datetimes as UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


@router.post("/apps/{app_id}/events", status_code=201)
async def track_event(
    app_id: str = Path(...),
    body: dict = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Record an event for an app the caller owns."""
    data = body.get("data")
    attrs = (data.get("attributes") or {}) if isinstance(data, dict) else {}
    event_type = attrs.get("event-type")
    if not isinstance(event_type, str) or not event_type:
        raise ValidationError("Attribute 'event-type' is required")

    user_id = attrs.get("user-id")
    if user_id is not None and not isinstance(user_id, str):
        raise ValidationError("Attribute 'user-id' must be a string")
    deployment_id = attrs.get("deployment-id")
    if deployment_id is not None and not isinstance(deployment_id, str):
        raise ValidationError("Attribute 'deployment-id' must be a string")
    event = await event_service.track_event(
        db,
        parse_id(app_id, "app-", "App"),
        user.user_id,
        event_type,
        metadata=attrs.get("metadata"),
        user_id=user_id,
        deployment_id=parse_id(deployment_id, "dep-", "Deployment") if deployment_id else None,
    )
    await db.commit()
    return JSONResponse(content={"data": _event_json(event)}, status_code=201)


@router.get("/apps/{app_id}/events")
async def list_events(
    app_id: str = Path(...),
    event_type: str | None = Query(None, alias="event-type"),
    limit: int | None = Query(None, ge=1),
    start_date: datetime | None = Query(None, alias="start-date"),
    end_date: datetime | None = Query(None, alias="end-date"),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Events newest first, optionally filtered by type and time range."""
    events = await event_service.list_events(
        db,
        parse_id(app_id, "app-", "App"),
        user.user_id,
        event_type=event_type,
        limit=limit,
        start_date=_as_utc(start_date),
        end_date=_as_utc(end_date),
    )
    return JSONResponse(content={"data": [_event_json(e) for e in events]})


@router.get("/apps/{app_id}/metrics")
async def list_metrics(
    app_id: str = Path(...),
    metric_type: str | None = Query(None, alias="metric-type"),
    days: int | None = Query(None, ge=1),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Daily rollups for the trailing window."""
    metrics = await metrics_service.list_metrics(
        db,
        parse_id(app_id, "app-", "App"),
        user.user_id,
        metric_type=metric_type,
        days=days,
    )
    return JSONResponse(content={"data": [_metric_json(m) for m in metrics]})


@router.get("/apps/{app_id}/summary")
async def get_summary(
    app_id: str = Path(...),
    days: int | None = Query(None, ge=1),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Totals, error rate, active users and deployment counts."""
    report = await metrics_service.summarize(
        db, parse_id(app_id, "app-", "App"), user.user_id, days=days
    )
    return JSONResponse(
        content={
            "data": {
                "type": "analytics-summaries",
                "id": f"app-{app_id.removeprefix('app-')}",
                "attributes": {
                    "days": report.days,
                    "total-api-calls": report.total_api_calls,
                    "total-errors": report.total_errors,
                    "error-rate": report.error_rate,
                    "active-users": report.active_users,
                    "total-deployments": report.total_deployments,
                    "active-deployments": report.active_deployments,
                },
            }
        }
    )
