"""FastAPI dependencies for caller identity.

Callers send an API token as a Bearer header. Ownership of the app a
request targets is checked by the services, not here, so every operation
goes through the same guard.
"""

import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.auth.api_tokens import validate_api_token
from appdeck.db.session import get_db
from appdeck.errors import NotFoundError
from appdeck.logging_config import get_logger

logger = get_logger(__name__)
security = HTTPBearer()


@dataclass
class AuthenticatedUser:
    """Identity of the caller."""

    user_id: str
    auth_method: str  # "api_token"


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    """Resolve the Bearer token to a user, or 401."""
    api_token = await validate_api_token(db, credentials.credentials)
    if api_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthenticatedUser(user_id=api_token.user_id, auth_method="api_token")


def parse_id(raw: str, prefix: str, resource: str) -> uuid.UUID:
    """Parse an external ID like "env-<uuid>" (prefix optional)."""
    try:
        return uuid.UUID(raw.removeprefix(prefix))
    except ValueError:
        raise NotFoundError(resource, raw) from None
