"""Environment variable endpoints.

Endpoints:
    GET/POST       /api/v1/apps/{app_id}/env-vars
    POST           /api/v1/apps/{app_id}/env-vars/bulk-import
    GET/PATCH/DELETE /api/v1/env-vars/{env_var_id}

Documents use JSON:API framing: {"data": {"type", "id", "attributes"}}.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.api.dependencies import AuthenticatedUser, get_current_user, parse_id
from appdeck.db.session import get_db
from appdeck.errors import ValidationError
from appdeck.logging_config import get_logger
from appdeck.services import env_var_service
from appdeck.services.env_var_service import BulkImportEntry, EnvironmentVariableView

router = APIRouter(tags=["env-vars"])
logger = get_logger(__name__)


def _rfc3339(dt: datetime | None) -> str:
    if dt is None:
        return ""
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _env_var_json(view: EnvironmentVariableView) -> dict:
    return {
        "id": f"env-{view.id}",
        "type": "env-vars",
        "attributes": {
            "key": view.key,
            "value": view.value,
            "decrypted-value": view.decrypted_value,
            "is-encrypted": view.is_encrypted,
            "environment": view.environment,
            "description": view.description,
            "created-at": _rfc3339(view.created_at),
            "updated-at": _rfc3339(view.updated_at),
        },
        "relationships": {
            "app": {"data": {"id": f"app-{view.app_id}", "type": "apps"}},
        },
    }


def _attr(attrs: dict[str, Any], name: str, kind: type, default: Any = None) -> Any:
    """Read an optional attribute, rejecting values of the wrong type."""
    value = attrs.get(name, default)
    if value is not None and not isinstance(value, kind):
        raise ValidationError(f"Attribute '{name}' must be of type {kind.__name__}")
    return value


def _attributes(body: dict) -> dict[str, Any]:
    data = body.get("data")
    if not isinstance(data, dict):
        raise ValidationError("Request body must contain a data object")
    return data.get("attributes") or {}


@router.get("/apps/{app_id}/env-vars")
async def list_env_vars(
    app_id: str = Path(...),
    environment: str | None = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """List an app's variables with encrypted values masked."""
    views = await env_var_service.list_env_vars(
        db, parse_id(app_id, "app-", "App"), user.user_id, environment=environment
    )
    return JSONResponse(content={"data": [_env_var_json(v) for v in views]})


@router.post("/apps/{app_id}/env-vars", status_code=201)
async def create_env_var(
    app_id: str = Path(...),
    body: dict = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Create a variable. 409 if (key, environment) already exists."""
    attrs = _attributes(body)
    var = await env_var_service.create_env_var(
        db,
        parse_id(app_id, "app-", "App"),
        user.user_id,
        key=_attr(attrs, "key", str, ""),
        value=_attr(attrs, "value", str, ""),
        environment=_attr(attrs, "environment", str, ""),
        is_encrypted=_attr(attrs, "is-encrypted", bool, False),
        description=_attr(attrs, "description", str),
    )
    await db.commit()
    return JSONResponse(
        content={"data": _env_var_json(env_var_service.to_view(var))}, status_code=201
    )


@router.post("/apps/{app_id}/env-vars/bulk-import")
async def bulk_import_env_vars(
    app_id: str = Path(...),
    body: dict = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Upsert a list of variables. Returns one {key, action} per entry."""
    items = body.get("data")
    if not isinstance(items, list):
        raise ValidationError("Request body must contain a data array")

    entries = []
    for item in items:
        attrs = (item.get("attributes") or {}) if isinstance(item, dict) else {}
        entries.append(
            BulkImportEntry(
                key=_attr(attrs, "key", str, ""),
                value=_attr(attrs, "value", str, ""),
                environment=_attr(attrs, "environment", str, ""),
                is_encrypted=_attr(attrs, "is-encrypted", bool, False),
                description=_attr(attrs, "description", str),
            )
        )

    results = await env_var_service.bulk_import(
        db, parse_id(app_id, "app-", "App"), user.user_id, entries
    )
    await db.commit()
    return JSONResponse(
        content={"data": [{"key": r.key, "action": r.action} for r in results]}
    )


@router.get("/env-vars/{env_var_id}")
async def get_env_var(
    env_var_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Get a single variable, including its decrypted value."""
    view = await env_var_service.get_env_var(
        db, parse_id(env_var_id, "env-", "Environment variable"), user.user_id
    )
    return JSONResponse(content={"data": _env_var_json(view)})


@router.patch("/env-vars/{env_var_id}")
async def update_env_var(
    env_var_id: str = Path(...),
    body: dict = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Update any subset of key, value, is-encrypted, environment, description."""
    attrs = _attributes(body)
    var = await env_var_service.update_env_var(
        db,
        parse_id(env_var_id, "env-", "Environment variable"),
        user.user_id,
        key=_attr(attrs, "key", str),
        value=_attr(attrs, "value", str),
        is_encrypted=_attr(attrs, "is-encrypted", bool),
        environment=_attr(attrs, "environment", str),
        description=_attr(attrs, "description", str),
    )
    await db.commit()
    return JSONResponse(content={"data": _env_var_json(env_var_service.to_view(var))})


@router.delete("/env-vars/{env_var_id}", status_code=204)
async def delete_env_var(
    env_var_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete a variable."""
    await env_var_service.delete_env_var(
        db, parse_id(env_var_id, "env-", "Environment variable"), user.user_id
    )
    await db.commit()
