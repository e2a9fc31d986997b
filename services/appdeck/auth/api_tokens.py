"""Bearer tokens that identify AppDeck API callers.

A token is "{lookup}.adk.{secret}". Only its SHA-256 digest is stored, so
the raw value exists once, in the response to whoever issued it.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.config import settings
from appdeck.db.models import APIToken, utc_now
from appdeck.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_ID_PREFIX = "at-"
TOKEN_MARKER = ".adk."

# last_used_at is written at most this often per token
TOUCH_INTERVAL = timedelta(seconds=60)


class IssuedToken(NamedTuple):
    record: APIToken
    raw_value: str


def _generate_token_id() -> str:
    return TOKEN_ID_PREFIX + secrets.token_hex(8)


def _generate_raw_token() -> str:
    return secrets.token_urlsafe(12) + TOKEN_MARKER + secrets.token_urlsafe(32)


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


def is_well_formed(raw_token: str) -> bool:
    """Cheap shape check so garbage never reaches the database."""
    lookup, marker, secret = raw_token.partition(TOKEN_MARKER)
    return bool(marker and lookup and secret)


def is_expired(token: APIToken, now: datetime, max_ttl_hours: int) -> bool:
    """A max TTL of 0 disables expiry."""
    return max_ttl_hours > 0 and now > token.created_at + timedelta(hours=max_ttl_hours)


async def create_api_token(db: AsyncSession, user_id: str, description: str = "") -> IssuedToken:
    """Issue a token for user_id. The raw value is not recoverable afterwards."""
    raw_token = _generate_raw_token()
    record = APIToken(
        id=_generate_token_id(),
        token_hash=hash_token(raw_token),
        user_id=user_id,
        description=description,
    )
    db.add(record)
    await db.flush()

    logger.info("API token issued", token_id=record.id, user_id=user_id)
    return IssuedToken(record, raw_token)


async def validate_api_token(db: AsyncSession, raw_token: str) -> APIToken | None:
    """Return the stored token for a Bearer value, or None if it is unusable."""
    if not is_well_formed(raw_token):
        return None

    result = await db.execute(select(APIToken).where(APIToken.token_hash == hash_token(raw_token)))
    token = result.scalar_one_or_none()
    if token is None:
        return None

    now = utc_now()
    if is_expired(token, now, settings.auth.api_token_max_ttl_hours):
        logger.debug("API token past max lifetime", token_id=token.id)
        return None

    if token.last_used_at is None or now - token.last_used_at > TOUCH_INTERVAL:
        token.last_used_at = now

    return token
