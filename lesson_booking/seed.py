"""
Lesson Booking Service — カタログ初期データ

ストアが空のときだけ固定の12レッスン(id 2001〜2012)を投入する。
force_reseed は管理者用のリセットで、無条件に削除して再投入する。
"""

import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import store
from .errors import StoreFailureError
from .events import CatalogSeeded, publish

logger = logging.getLogger(__name__)


def _lesson(id, title, description, price, location, rating, seats, image):
    return {
        "id": id,
        "title": title,
        "description": description,
        "price": price,
        "location": location,
        "rating": rating,
        "availableSeats": seats,
        "image": f"images/{image}",
    }


REFERENCE_LESSONS = [
    _lesson(2001, "Mathematics", "Algebra, geometry and problem solving for GCSE students.", 100, "Hendon", 5, 5, "math.png"),
    _lesson(2002, "English", "Reading comprehension, essay writing and grammar.", 90, "Colindale", 4, 5, "english.png"),
    _lesson(2003, "Physics", "Mechanics, electricity and hands-on experiments.", 110, "Brent Cross", 4, 5, "physics.png"),
    _lesson(2004, "Chemistry", "Atoms, reactions and safe laboratory practice.", 110, "Golders Green", 3, 5, "chemistry.png"),
    _lesson(2005, "Biology", "Cells, genetics and the human body.", 95, "Hendon", 4, 5, "biology.png"),
    _lesson(2006, "Computer Science", "Programming fundamentals with Python and JavaScript.", 120, "Colindale", 5, 5, "computing.png"),
    _lesson(2007, "Music", "Piano and music theory for beginners.", 80, "Mill Hill", 4, 5, "music.png"),
    _lesson(2008, "Art", "Drawing, painting and portfolio preparation.", 70, "Finchley", 3, 5, "art.png"),
    _lesson(2009, "History", "Modern British and world history.", 75, "Brent Cross", 3, 5, "history.png"),
    _lesson(2010, "Geography", "Physical and human geography with field trips.", 75, "Mill Hill", 4, 5, "geography.png"),
    _lesson(2011, "Spanish", "Conversational Spanish for all levels.", 85, "Finchley", 5, 5, "spanish.png"),
    _lesson(2012, "Drama", "Acting, improvisation and stage performance.", 65, "Golders Green", 4, 5, "drama.png"),
]


async def _load(session: AsyncSession) -> int:
    await store.delete_lessons(session)
    inserted = await store.insert_lessons(session, REFERENCE_LESSONS)
    await session.commit()

    # インデックス作成の失敗(既に存在する等)は投入結果に影響させない
    try:
        await store.create_text_index(session)
        await session.commit()
    except StoreFailureError:
        await session.rollback()
        logger.warning("Text index creation failed; continuing without it")

    logger.info("Seeded %d lessons", inserted)
    return inserted


async def seed_if_empty(session: AsyncSession, redis: aioredis.Redis | None = None) -> int:
    if await store.count_lessons(session) > 0:
        return 0
    inserted = await _load(session)
    await publish(redis, CatalogSeeded(inserted_count=inserted, timestamp=datetime.now(timezone.utc)))
    return inserted


async def force_reseed(session: AsyncSession, redis: aioredis.Redis | None = None) -> int:
    inserted = await _load(session)
    await publish(redis, CatalogSeeded(inserted_count=inserted, timestamp=datetime.now(timezone.utc)))
    return inserted
