"""
Lesson Booking Service — コマンドハンドラ (Write 側)

座席の予約(Reserve)・座席数の直接設定(Set)・注文の受付(Submit)を処理する。

注文は1つのトランザクションで処理する:
  1. 入力を検証(ストアに触れる前に失敗させる)
  2. レッスンごとに条件付き更新で座席を予約
     └─ 1件でも失敗 → ロールバックして注文全体を中止
  3. 注文を記録してコミット
  4. Redis Pub/Sub でイベントを発行
"""

import logging
from collections import Counter
from datetime import datetime, timezone

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import store
from .errors import BookingError, InsufficientSeatsError, InvalidArgumentError, NotFoundError
from .events import OrderPlaced, SeatsReserved, SeatsUpdated, publish
from .schemas import OrderSubmission, SeatUpdate, fits_int_column, parse

logger = logging.getLogger(__name__)

ORDER_STATUS_CONFIRMED = "confirmed"


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{field} must be an integer", field=field)
    if not fits_int_column(value):
        raise InvalidArgumentError(f"{field} is out of range", field=field)
    return value


async def _reserve(session: AsyncSession, lesson_id: int, count: int) -> int:
    """コミットせずに座席を予約し、予約後の残席数を返す"""
    # 合計需要が INTEGER の範囲を超える場合は更新せずに判別へ進む
    if fits_int_column(count):
        remaining = await store.reserve_seats_if_available(session, lesson_id, count)
        if remaining is not None:
            return remaining

    # 更新されなかった理由を判別する
    lesson = await store.find_lesson(session, lesson_id)
    if lesson is None:
        raise NotFoundError(lesson_id)
    raise InsufficientSeatsError(lesson_id, count, lesson["availableSeats"])


async def reserve_seats(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    lesson_id: int,
    count: int,
) -> int:
    """
    座席予約コマンド

    残席が足りない場合や存在しないレッスンの場合は何も変更しない。
    """
    _require_int(lesson_id, "lessonId")
    count = _require_int(count, "count")
    if count < 0:
        raise InvalidArgumentError("count must not be negative", field="count")

    try:
        remaining = await _reserve(session, lesson_id, count)
    except BookingError:
        await session.rollback()
        raise
    await session.commit()

    logger.info("Reserved %d seats", count, extra={"lesson_id": lesson_id})
    await publish(
        redis,
        SeatsReserved(
            lesson_id=lesson_id,
            quantity=count,
            available_seats=remaining,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return remaining


async def set_seats(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    lesson_id: int,
    value,
) -> int:
    """座席数設定コマンド(管理者用、需要チェックなし)"""
    _require_int(lesson_id, "lessonId")
    update = parse(SeatUpdate, {"availableSeats": value})

    if not await store.update_seats(session, lesson_id, update.available_seats):
        await session.rollback()
        raise NotFoundError(lesson_id)
    await session.commit()

    logger.info(
        "Set available seats to %d", update.available_seats, extra={"lesson_id": lesson_id}
    )
    await publish(
        redis,
        SeatsUpdated(
            lesson_id=lesson_id,
            available_seats=update.available_seats,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return update.available_seats


async def submit_order(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    name,
    phone,
    lesson_ids,
    number_of_spaces,
) -> dict:
    """
    注文受付コマンド

    number_of_spaces は lesson_ids のすべてのレッスンに同じ数だけ適用する。
    同じレッスンが複数回含まれる場合はその回数分を合計して予約する。
    """
    submission = parse(
        OrderSubmission,
        {
            "name": name,
            "phone": phone,
            "lessonIDs": lesson_ids,
            "numberOfSpaces": number_of_spaces,
        },
    )

    demand = Counter()
    for lesson_id in submission.lesson_ids:
        demand[lesson_id] += submission.number_of_spaces

    reserved: dict[int, int] = {}
    try:
        for lesson_id, count in demand.items():
            reserved[lesson_id] = await _reserve(session, lesson_id, count)
    except BookingError:
        # 予約済みの座席もまとめて戻す
        await session.rollback()
        raise

    now = datetime.now(timezone.utc)
    order = {
        "name": submission.name,
        "phone": submission.phone,
        "lessonIDs": submission.lesson_ids,
        "numberOfSpaces": submission.number_of_spaces,
        "status": ORDER_STATUS_CONFIRMED,
        "createdAt": now.isoformat(),
    }
    order_id = await store.insert_order(session, order)
    await session.commit()

    logger.info("Order created", extra={"order_id": order_id})
    for lesson_id, remaining in reserved.items():
        await publish(
            redis,
            SeatsReserved(
                lesson_id=lesson_id,
                quantity=demand[lesson_id],
                available_seats=remaining,
                timestamp=now,
            ),
        )
    await publish(
        redis,
        OrderPlaced(
            order_id=order_id,
            lesson_ids=submission.lesson_ids,
            number_of_spaces=submission.number_of_spaces,
            timestamp=now,
        ),
    )
    return {"id": order_id, **order}
