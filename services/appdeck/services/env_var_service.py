"""Environment variable CRUD and bulk import.

Variables are scoped to an app and a deployment stage ("all", "development",
"staging", "production", or any other tag). (app, key, environment) is
unique. Values flagged is_encrypted are stored through the codec and shown
masked, with the decoded plaintext in a separate field for edit screens.

Every mutation records an audit event through the event log.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.db.models import EnvironmentVariable, utc_now
from appdeck.errors import DuplicateKeyError, NotFoundError, ValidationError
from appdeck.logging_config import get_logger
from appdeck.services import app_service, event_service
from appdeck.services.codec_service import decode_value, encode_value

logger = get_logger(__name__)

MASK_PLACEHOLDER = "••••••••"

_CONVENTIONAL_KEY = re.compile(r"^[A-Z_][A-Z0-9_]*$")


@dataclass
class EnvironmentVariableView:
    """Masked projection returned to callers."""

    id: uuid.UUID
    app_id: uuid.UUID
    key: str
    value: str  # placeholder when encrypted
    decrypted_value: str
    is_encrypted: bool
    environment: str
    description: str | None
    created_at: datetime
    updated_at: datetime


@dataclass
class BulkImportEntry:
    key: str
    value: str
    environment: str
    is_encrypted: bool = False
    description: str | None = None


@dataclass
class BulkImportResult:
    key: str
    action: str  # "created" or "updated"


def to_view(var: EnvironmentVariable) -> EnvironmentVariableView:
    """Project a stored variable to its masked view."""
    if var.is_encrypted:
        shown, plain = MASK_PLACEHOLDER, decode_value(var.value)
    else:
        shown = plain = var.value
    return EnvironmentVariableView(
        id=var.id,
        app_id=var.app_id,
        key=var.key,
        value=shown,
        decrypted_value=plain,
        is_encrypted=var.is_encrypted,
        environment=var.environment,
        description=var.description,
        created_at=var.created_at,
        updated_at=var.updated_at,
    )


def _stored_value(value: str, is_encrypted: bool) -> str:
    return encode_value(value) if is_encrypted else value


def _validate(key: str | None, value: str | None, environment: str | None) -> None:
    """Reject missing fields before anything is written."""
    if key is not None and not key.strip():
        raise ValidationError("Variable key is required")
    if value is not None and value == "":
        raise ValidationError(f"Value for {key!r} is required")
    if environment is not None and not environment.strip():
        raise ValidationError("Environment is required")


def _warn_unconventional_key(key: str) -> None:
    if not _CONVENTIONAL_KEY.match(key):
        logger.warning("Unconventional environment variable key", key=key)


async def _find_by_key(
    db: AsyncSession,
    app_id: uuid.UUID,
    key: str,
    environment: str,
) -> EnvironmentVariable | None:
    result = await db.execute(
        select(EnvironmentVariable).where(
            EnvironmentVariable.app_id == app_id,
            EnvironmentVariable.key == key,
            EnvironmentVariable.environment == environment,
        )
    )
    return result.scalar_one_or_none()


async def _get_owned(
    db: AsyncSession, env_var_id: uuid.UUID, user_id: str
) -> EnvironmentVariable:
    """Resolve a variable and check the caller owns its app."""
    result = await db.execute(
        select(EnvironmentVariable).where(EnvironmentVariable.id == env_var_id)
    )
    var = result.scalar_one_or_none()
    if var is None:
        raise NotFoundError("Environment variable", env_var_id)
    await app_service.verify_app_ownership(db, var.app_id, user_id)
    return var


async def list_env_vars(
    db: AsyncSession,
    app_id: uuid.UUID,
    user_id: str,
    environment: str | None = None,
) -> list[EnvironmentVariableView]:
    """List an app's variables, optionally for one environment (exact match)."""
    await app_service.verify_app_ownership(db, app_id, user_id)

    query = select(EnvironmentVariable).where(EnvironmentVariable.app_id == app_id)
    if environment:
        query = query.where(EnvironmentVariable.environment == environment)

    result = await db.execute(
        query.order_by(EnvironmentVariable.key, EnvironmentVariable.environment)
    )
    return [to_view(v) for v in result.scalars().all()]


async def get_env_var(
    db: AsyncSession, env_var_id: uuid.UUID, user_id: str
) -> EnvironmentVariableView:
    """Get a single variable with its decoded value."""
    var = await _get_owned(db, env_var_id, user_id)
    return to_view(var)


async def create_env_var(
    db: AsyncSession,
    app_id: uuid.UUID,
    user_id: str,
    key: str,
    value: str,
    environment: str,
    is_encrypted: bool = False,
    description: str | None = None,
) -> EnvironmentVariable:
    """Create a variable. Raises DuplicateKeyError if (key, environment) is taken."""
    await app_service.verify_app_ownership(db, app_id, user_id)
    _validate(key, value, environment)
    _warn_unconventional_key(key)

    if await _find_by_key(db, app_id, key, environment) is not None:
        raise DuplicateKeyError(key, environment)

    now = utc_now()
    var = EnvironmentVariable(
        app_id=app_id,
        key=key,
        value=_stored_value(value, is_encrypted),
        is_encrypted=is_encrypted,
        environment=environment,
        description=description,
        created_at=now,
        updated_at=now,
    )
    db.add(var)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent create of the same key
        raise DuplicateKeyError(key, environment) from None

    await event_service.append_event(
        db, app_id, "env_var_created", metadata={"key": key, "environment": environment}
    )
    logger.info(
        "Environment variable created",
        app_id=str(app_id),
        key=key,
        environment=environment,
        is_encrypted=is_encrypted,
    )
    return var


def _apply_update(
    var: EnvironmentVariable,
    key: str | None = None,
    value: str | None = None,
    is_encrypted: bool | None = None,
    environment: str | None = None,
    description: str | None = None,
) -> None:
    """Apply a partial update to a loaded variable (no flush, no checks)."""
    if key is not None:
        var.key = key
    if environment is not None:
        var.environment = environment
    if description is not None:
        var.description = description

    # Explicit flag in this call wins, otherwise keep the current state
    encrypt = is_encrypted if is_encrypted is not None else var.is_encrypted

    if value is not None:
        var.value = _stored_value(value, encrypt)
    elif encrypt != var.is_encrypted:
        # Flag flipped without a new value: transcode what is stored
        var.value = encode_value(var.value) if encrypt else decode_value(var.value)

    var.is_encrypted = encrypt
    var.updated_at = utc_now()


async def update_env_var(
    db: AsyncSession,
    env_var_id: uuid.UUID,
    user_id: str,
    key: str | None = None,
    value: str | None = None,
    is_encrypted: bool | None = None,
    environment: str | None = None,
    description: str | None = None,
) -> EnvironmentVariable:
    """Update any subset of a variable's fields.

    The audit event names the key the variable had before this call; if the
    key changed, the new one is recorded as new_key.
    """
    var = await _get_owned(db, env_var_id, user_id)
    _validate(key, value, environment)

    original_key = var.key
    target_key = key if key is not None else var.key
    target_env = environment if environment is not None else var.environment
    if (target_key, target_env) != (var.key, var.environment):
        _warn_unconventional_key(target_key)
        if await _find_by_key(db, var.app_id, target_key, target_env) is not None:
            raise DuplicateKeyError(target_key, target_env)

    _apply_update(
        var,
        key=key,
        value=value,
        is_encrypted=is_encrypted,
        environment=environment,
        description=description,
    )
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateKeyError(target_key, target_env) from None

    metadata = {"key": original_key}
    if var.key != original_key:
        metadata["new_key"] = var.key
    await event_service.append_event(db, var.app_id, "env_var_updated", metadata=metadata)

    logger.info("Environment variable updated", env_var_id=str(env_var_id), key=original_key)
    return var


async def delete_env_var(db: AsyncSession, env_var_id: uuid.UUID, user_id: str) -> None:
    """Delete a variable."""
    var = await _get_owned(db, env_var_id, user_id)
    app_id, key = var.app_id, var.key

    await db.delete(var)
    await db.flush()

    await event_service.append_event(db, app_id, "env_var_deleted", metadata={"key": key})
    logger.info("Environment variable deleted", env_var_id=str(env_var_id), key=key)


async def bulk_import(
    db: AsyncSession,
    app_id: uuid.UUID,
    user_id: str,
    entries: list[BulkImportEntry],
) -> list[BulkImportResult]:
    """Upsert a batch of variables by (key, environment).

    Existing rows get value, encryption flag and description overwritten;
    missing rows are created. Entries are applied in order. Re-running the
    same batch reports every entry as updated and creates nothing.
    """
    await app_service.verify_app_ownership(db, app_id, user_id)
    for entry in entries:
        _validate(entry.key, entry.value, entry.environment)

    results: list[BulkImportResult] = []
    now = utc_now()

    for entry in entries:
        existing = await _find_by_key(db, app_id, entry.key, entry.environment)
        stored = _stored_value(entry.value, entry.is_encrypted)

        if existing is not None:
            existing.value = stored
            existing.is_encrypted = entry.is_encrypted
            existing.description = entry.description
            existing.updated_at = now
            action = "updated"
        else:
            _warn_unconventional_key(entry.key)
            db.add(
                EnvironmentVariable(
                    app_id=app_id,
                    key=entry.key,
                    value=stored,
                    is_encrypted=entry.is_encrypted,
                    environment=entry.environment,
                    description=entry.description,
                    created_at=now,
                    updated_at=now,
                )
            )
            action = "created"

        # Flush per entry so a duplicate later in the same batch finds this row
        try:
            await db.flush()
        except IntegrityError:
            raise DuplicateKeyError(entry.key, entry.environment) from None
        results.append(BulkImportResult(key=entry.key, action=action))

    await event_service.append_event(
        db, app_id, "env_vars_bulk_imported", metadata={"count": len(entries)}
    )
    logger.info(
        "Bulk import complete",
        app_id=str(app_id),
        created=sum(1 for r in results if r.action == "created"),
        updated=sum(1 for r in results if r.action == "updated"),
    )
    return results
