"""
Shared fixtures for service tests.

Services run against an in-memory SQLite database via aiosqlite. JSONB has
no SQLite compiler and SQLite hands back naive datetimes, so both column
types are swapped once at import time.
"""

from datetime import UTC

import pytest
import pytest_asyncio
from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.types import TypeDecorator

from appdeck.db.models import App, Base, Deployment
from appdeck.services import codec_service


class _UTCAwareDateTime(TypeDecorator):
    """Return stored datetimes as UTC-aware."""

    impl = DateTime
    cache_ok = True

    def process_result_value(self, value, dialect):  # type: ignore[override]
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


def _patch_columns_for_sqlite() -> None:
    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()
            elif isinstance(column.type, DateTime) and getattr(column.type, "timezone", False):
                column.type = _UTCAwareDateTime()


_patch_columns_for_sqlite()


@pytest.fixture(autouse=True)
def obfuscate_codec(monkeypatch):
    """Run every service test with the default obfuscation codec."""
    monkeypatch.setattr(codec_service, "_fernet", None)


@pytest_asyncio.fixture
async def db_session():
    """Async session backed by a fresh in-memory database."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def app_record(db_session):
    """An app owned by owner-1."""
    app = App(owner_id="owner-1", name="storefront", region="us-east-1")
    db_session.add(app)
    await db_session.flush()
    return app


@pytest_asyncio.fixture
async def other_app(db_session):
    """An app owned by someone else."""
    app = App(owner_id="owner-2", name="billing", region="eu-west-1")
    db_session.add(app)
    await db_session.flush()
    return app


@pytest_asyncio.fixture
async def deployments(db_session, app_record):
    """Three deployments of app_record, two of them active."""
    rows = [
        Deployment(app_id=app_record.id, name="web-1", status="active"),
        Deployment(app_id=app_record.id, name="web-2", status="active"),
        Deployment(app_id=app_record.id, name="web-3", status="failed"),
    ]
    db_session.add_all(rows)
    await db_session.flush()
    return rows
