"""Shared fixtures: an in-memory SQLite database with the full schema."""

import uuid

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dashworld.core.database import Base
from dashworld.modules.footage.models import VideoAsset  # noqa: F401 - registers tables
from dashworld.modules.transcoding.models import EncodingProgress  # noqa: F401


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def asset(db_session):
    """A freshly ingested asset with no renditions."""
    from dashworld.modules.footage.repository import VideoAssetRepository

    created = await VideoAssetRepository(db_session).create(
        owner_id=uuid.uuid4(),
        original_key="uploads/raw/clip.mp4",
    )
    await db_session.commit()
    return created
