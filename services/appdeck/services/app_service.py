"""App ownership guard and the app-level reads the core depends on.

Every app-scoped operation calls verify_app_ownership first. The result is
never cached; each call re-reads the app row.
"""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.db.models import (
    AnalyticsEvent,
    AnalyticsMetric,
    App,
    Deployment,
    EnvironmentVariable,
)
from appdeck.errors import NotFoundError, UnauthorizedError
from appdeck.logging_config import get_logger

logger = get_logger(__name__)


async def get_app(db: AsyncSession, app_id: uuid.UUID) -> App | None:
    """Get an app by ID, without any ownership check."""
    result = await db.execute(select(App).where(App.id == app_id))
    return result.scalar_one_or_none()


async def verify_app_ownership(db: AsyncSession, app_id: uuid.UUID, user_id: str) -> App:
    """Return the app if user_id owns it.

    A missing app and an app owned by someone else both raise
    UnauthorizedError, so callers cannot discover which apps exist.
    """
    if not user_id:
        raise UnauthorizedError()

    app = await get_app(db, app_id)
    if app is None or app.owner_id != user_id:
        logger.debug("Ownership check failed", app_id=str(app_id), user_id=user_id)
        raise UnauthorizedError()
    return app


async def list_deployments(db: AsyncSession, app_id: uuid.UUID) -> list[Deployment]:
    """List all deployments for an app."""
    result = await db.execute(
        select(Deployment).where(Deployment.app_id == app_id).order_by(Deployment.created_at)
    )
    return list(result.scalars().all())


async def get_deployment(
    db: AsyncSession, app_id: uuid.UUID, deployment_id: uuid.UUID
) -> Deployment:
    """Resolve a deployment of this app. Deployments of other apps are not found."""
    result = await db.execute(
        select(Deployment).where(Deployment.id == deployment_id, Deployment.app_id == app_id)
    )
    deployment = result.scalar_one_or_none()
    if deployment is None:
        raise NotFoundError("Deployment", deployment_id)
    return deployment


async def delete_app(db: AsyncSession, app_id: uuid.UUID, user_id: str) -> None:
    """Delete an app together with everything scoped to it.

    Children are removed with explicit bulk deletes so the cascade does not
    depend on the database enforcing foreign keys.
    """
    app = await verify_app_ownership(db, app_id, user_id)

    for model in (AnalyticsMetric, AnalyticsEvent, EnvironmentVariable, Deployment):
        await db.execute(delete(model).where(model.app_id == app_id))

    await db.delete(app)
    await db.flush()

    logger.info("App deleted", app_id=str(app_id), user_id=user_id)
