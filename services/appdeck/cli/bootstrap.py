"""
Bootstrap script that issues an API token for a user.

Run via: python -m appdeck.cli.bootstrap

Reads configuration from environment variables:
  APPDECK_BOOTSTRAP_USER_ID      - User the token identifies (required)
  APPDECK_BOOTSTRAP_DESCRIPTION  - Token description (optional)
  DATABASE_URL                   - PostgreSQL connection URL
"""

import asyncio
import logging
import os
import sys

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from appdeck.auth.api_tokens import create_api_token

# Use stdlib logging: structlog isn't configured outside the API process
logger = logging.getLogger("appdeck.bootstrap")
logging.basicConfig(level=logging.INFO, format="%(message)s")


async def bootstrap() -> None:
    user_id = os.environ.get("APPDECK_BOOTSTRAP_USER_ID", "").strip()
    description = os.environ.get("APPDECK_BOOTSTRAP_DESCRIPTION", "bootstrap").strip()
    database_url = os.environ.get("DATABASE_URL", "").strip()

    if not user_id:
        logger.error("APPDECK_BOOTSTRAP_USER_ID is required")
        sys.exit(1)

    if not database_url:
        logger.error("DATABASE_URL is required")
        sys.exit(1)

    # Ensure async driver
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        logger.info("Connected to database")

    async with AsyncSession(engine, expire_on_commit=False) as session:
        async with session.begin():
            issued = await create_api_token(session, user_id, description)

    logger.info("Created API token %s for %s", issued.record.id, user_id)
    logger.info("Token: %s", issued.raw_value)
    logger.warning("IMPORTANT: Save this token now. It will not be shown again.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(bootstrap())
