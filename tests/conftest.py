"""Shared fixtures: a fresh SQLite database per test and a FastAPI test client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lesson_booking import store
from lesson_booking.main import app, get_redis, get_session
from lesson_booking.seed import REFERENCE_LESSONS


@pytest.fixture
async def test_engine(tmp_path):
    # File database so that each session gets its own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/lessons.db", echo=False)
    store.install_sqlite_functions(engine)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await store.ensure_schema(session)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    return AsyncMock()


@pytest.fixture
async def catalog(db):
    """Load the reference lessons directly through the store."""
    await store.insert_lessons(db, REFERENCE_LESSONS)
    await db.commit()
    return REFERENCE_LESSONS


@pytest.fixture
def make_lesson(db):
    """Insert a single lesson with the given seat count."""

    async def _make(lesson_id: int, seats: int, **fields) -> dict:
        lesson = {
            "id": lesson_id,
            "title": fields.get("title", f"Lesson {lesson_id}"),
            "description": fields.get("description", "A test lesson"),
            "price": fields.get("price", 50),
            "location": fields.get("location", "Hendon"),
            "rating": fields.get("rating", 3),
            "availableSeats": seats,
            "image": "images/test.png",
        }
        await store.insert_lessons(db, [lesson])
        await db.commit()
        return lesson

    return _make


@pytest.fixture
async def client(session_factory, redis):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_redis] = lambda: redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
