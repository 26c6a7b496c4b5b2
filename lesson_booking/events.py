"""
Lesson Booking Service — イベント定義と発行

コミット後に発生した事実を Redis Pub/Sub の lesson_events チャネルに発行する。
イベントは過去形で命名する。

注意: Redis Pub/Sub は fire-and-forget 方式。
発行に失敗してもコミット済みの変更は取り消さない(ログに残すだけ)。
"""

import json
import logging
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

from .config import EVENTS_CHANNEL

logger = logging.getLogger(__name__)


class SeatsReserved(BaseModel):
    """注文によって座席が予約された"""
    lesson_id: int
    quantity: int
    available_seats: int
    timestamp: datetime


class SeatsUpdated(BaseModel):
    """管理者が座席数を直接設定した"""
    lesson_id: int
    available_seats: int
    timestamp: datetime


class OrderPlaced(BaseModel):
    """注文が確定された"""
    order_id: str
    lesson_ids: list[int]
    number_of_spaces: int
    timestamp: datetime


class CatalogSeeded(BaseModel):
    """カタログが初期データで再作成された"""
    inserted_count: int
    timestamp: datetime


async def publish(redis: aioredis.Redis | None, event: BaseModel) -> None:
    if redis is None:
        return
    try:
        await redis.publish(
            EVENTS_CHANNEL,
            json.dumps(
                {
                    "event_type": type(event).__name__,
                    "data": event.model_dump(mode="json"),
                },
                default=str,
            ),
        )
    except RedisError:
        logger.exception("Failed to publish %s", type(event).__name__)
