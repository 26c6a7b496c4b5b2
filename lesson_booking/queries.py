"""
Lesson Booking Service — クエリハンドラ (Read 側)
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from . import store
from .search import build_filter

logger = logging.getLogger(__name__)


async def list_lessons(session: AsyncSession) -> list[dict]:
    lessons = await store.find_lessons(session)
    logger.info("Returned %d lessons", len(lessons))
    return lessons


async def list_orders(session: AsyncSession) -> list[dict]:
    return await store.find_orders(session)


async def search_lessons(session: AsyncSession, query: str | None) -> dict:
    """クエリからフィルタを組み立てて検索し、件数と結果を返す"""
    lesson_filter = build_filter(query)
    lessons = await store.find_lessons(session, lesson_filter)
    logger.info("Found %d results for %r", len(lessons), lesson_filter.query)
    return {
        "query": lesson_filter.query,
        "count": len(lessons),
        "results": lessons,
    }
