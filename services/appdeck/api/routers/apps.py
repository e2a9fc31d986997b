"""App removal endpoint.

Endpoints:
    DELETE /api/v1/apps/{app_id}

Deleting an app removes its environment variables, events, metrics and
deployments with it.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.api.dependencies import AuthenticatedUser, get_current_user, parse_id
from appdeck.db.session import get_db
from appdeck.services import app_service

router = APIRouter(tags=["apps"])


@router.delete("/apps/{app_id}", status_code=204)
async def delete_app(
    app_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    await app_service.delete_app(db, parse_id(app_id, "app-", "App"), user.user_id)
    await db.commit()
