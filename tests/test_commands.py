"""Tests for seat reservation, seat updates and order submission."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from lesson_booking import commands, store
from lesson_booking.errors import (
    ErrorKind,
    InsufficientSeatsError,
    InvalidArgumentError,
    NotFoundError,
)


async def _seats(db, lesson_id):
    lesson = await store.find_lesson(db, lesson_id)
    return lesson["availableSeats"]


async def _order_count(db):
    result = await db.execute(text("SELECT COUNT(*) FROM orders"))
    return result.scalar_one()


class TestReserveSeats:

    async def test_reserving_all_seats_leaves_zero(self, db, redis, make_lesson):
        await make_lesson(1, seats=3)
        assert await commands.reserve_seats(db, redis, 1, 3) == 0
        assert await _seats(db, 1) == 0

    async def test_one_more_than_available_is_rejected(self, db, redis, make_lesson):
        await make_lesson(1, seats=2)
        with pytest.raises(InsufficientSeatsError) as exc:
            await commands.reserve_seats(db, redis, 1, 3)
        assert exc.value.kind is ErrorKind.INSUFFICIENT_SEATS
        assert exc.value.available == 2
        assert await _seats(db, 1) == 2
        redis.publish.assert_not_awaited()

    async def test_unknown_lesson_is_not_found(self, db, redis, catalog):
        before = await store.find_lessons(db)
        with pytest.raises(NotFoundError):
            await commands.reserve_seats(db, redis, 9999, 1)
        assert await store.find_lessons(db) == before

    @pytest.mark.parametrize("count", [-1, 1.5, "2", True, None])
    async def test_invalid_count_is_rejected(self, count, redis):
        session = AsyncMock(spec=AsyncSession)
        with pytest.raises(InvalidArgumentError):
            await commands.reserve_seats(session, redis, 1, count)
        session.execute.assert_not_awaited()

    async def test_seats_never_go_negative(self, db, redis, make_lesson):
        await make_lesson(1, seats=5)
        for count in (2, 2, 2, 1, 1):
            try:
                await commands.reserve_seats(db, redis, 1, count)
            except InsufficientSeatsError:
                pass
            assert await _seats(db, 1) >= 0
        assert await _seats(db, 1) == 0

    async def test_publishes_seats_reserved(self, db, redis, make_lesson):
        await make_lesson(1, seats=4)
        await commands.reserve_seats(db, redis, 1, 1)

        channel, payload = redis.publish.await_args.args
        event = json.loads(payload)
        assert channel == "lesson_events"
        assert event["event_type"] == "SeatsReserved"
        assert event["data"]["available_seats"] == 3

    async def test_concurrent_reservations_cannot_both_succeed(
        self, session_factory, redis, make_lesson
    ):
        await make_lesson(1, seats=2)

        async def reserve():
            async with session_factory() as session:
                return await commands.reserve_seats(session, redis, 1, 2)

        results = await asyncio.gather(reserve(), reserve(), return_exceptions=True)

        assert results.count(0) == 1
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientSeatsError)


class TestSetSeats:

    async def test_sets_absolute_value(self, db, redis, make_lesson):
        await make_lesson(1, seats=1)
        assert await commands.set_seats(db, redis, 1, 20) == 20
        assert await _seats(db, 1) == 20

    async def test_unknown_lesson_is_not_found(self, db, redis):
        with pytest.raises(NotFoundError):
            await commands.set_seats(db, redis, 4242, 3)

    @pytest.mark.parametrize("value", [-1, None, "5", 2.5])
    async def test_invalid_value_is_rejected(self, db, redis, make_lesson, value):
        await make_lesson(1, seats=1)
        with pytest.raises(InvalidArgumentError) as exc:
            await commands.set_seats(db, redis, 1, value)
        assert exc.value.field == "availableSeats"
        assert await _seats(db, 1) == 1


class TestSubmitOrder:

    async def test_missing_phone_performs_no_store_call(self, redis):
        session = AsyncMock(spec=AsyncSession)
        with pytest.raises(InvalidArgumentError) as exc:
            await commands.submit_order(session, redis, "Ana", None, [2001], 1)
        assert exc.value.field == "phone"
        session.execute.assert_not_awaited()
        session.commit.assert_not_awaited()
        redis.publish.assert_not_awaited()

    @pytest.mark.parametrize(
        "name, phone, lesson_ids, spaces, field",
        [
            ("", "0700", [2001], 1, "name"),
            ("Ana", "   ", [2001], 1, "phone"),
            ("Ana", "0700", [], 1, "lessonIDs"),
            ("Ana", "0700", None, 1, "lessonIDs"),
            ("Ana", "0700", [2001], 0, "numberOfSpaces"),
            ("Ana", "0700", [2001], None, "numberOfSpaces"),
            ("Ana", "0700", [2001], [1], "numberOfSpaces"),
        ],
    )
    async def test_malformed_input_is_rejected(
        self, redis, name, phone, lesson_ids, spaces, field
    ):
        session = AsyncMock(spec=AsyncSession)
        with pytest.raises(InvalidArgumentError) as exc:
            await commands.submit_order(session, redis, name, phone, lesson_ids, spaces)
        assert exc.value.field == field
        session.execute.assert_not_awaited()

    async def test_successful_order_reserves_and_records(self, db, redis, catalog):
        order = await commands.submit_order(
            db, redis, "Ana", "07000000000", [2001, 2002], 2
        )

        assert order["id"]
        assert order["status"] == "confirmed"
        assert order["lessonIDs"] == [2001, 2002]
        assert order["createdAt"]
        assert await _seats(db, 2001) == 3
        assert await _seats(db, 2002) == 3

        orders = await store.find_orders(db)
        assert [o["id"] for o in orders] == [order["id"]]
        assert orders[0]["numberOfSpaces"] == 2

        event_types = [
            json.loads(call.args[1])["event_type"] for call in redis.publish.await_args_list
        ]
        assert event_types == ["SeatsReserved", "SeatsReserved", "OrderPlaced"]

    async def test_repeated_lesson_ids_add_up(self, db, redis, catalog):
        await commands.submit_order(db, redis, "Ana", "0700", [2003, 2003], 2)
        assert await _seats(db, 2003) == 1

    async def test_insufficient_seats_aborts_whole_order(self, db, redis, catalog):
        with pytest.raises(InsufficientSeatsError):
            await commands.submit_order(db, redis, "Ana", "0700", [2001, 2002, 2003], 6)

        for lesson_id in (2001, 2002, 2003):
            assert await _seats(db, lesson_id) == 5
        assert await _order_count(db) == 0

    async def test_later_failure_rolls_back_earlier_reservations(
        self, db, redis, make_lesson
    ):
        await make_lesson(1, seats=5)
        await make_lesson(2, seats=1)
        with pytest.raises(InsufficientSeatsError) as exc:
            await commands.submit_order(db, redis, "Ana", "0700", [1, 2], 2)

        assert exc.value.lesson_id == 2
        assert await _seats(db, 1) == 5
        assert await _order_count(db) == 0
        redis.publish.assert_not_awaited()

    async def test_unknown_lesson_aborts_order(self, db, redis, catalog):
        with pytest.raises(NotFoundError):
            await commands.submit_order(db, redis, "Ana", "0700", [2001, 7777], 1)
        assert await _seats(db, 2001) == 5
        assert await _order_count(db) == 0

    async def test_works_without_redis(self, db, catalog):
        order = await commands.submit_order(db, None, "Ana", "0700", [2004], 1)
        assert order["status"] == "confirmed"


class TestIntegerRange:

    async def test_out_of_range_lesson_id_is_rejected(self, redis):
        session = AsyncMock(spec=AsyncSession)
        with pytest.raises(InvalidArgumentError) as exc:
            await commands.reserve_seats(session, redis, 2**40, 1)
        assert exc.value.field == "lessonId"
        session.execute.assert_not_awaited()

    async def test_out_of_range_count_is_rejected(self, redis):
        session = AsyncMock(spec=AsyncSession)
        with pytest.raises(InvalidArgumentError):
            await commands.reserve_seats(session, redis, 1, 2**31)
        session.execute.assert_not_awaited()

    async def test_summed_demand_beyond_column_range_is_insufficient(
        self, db, redis, catalog
    ):
        with pytest.raises(InsufficientSeatsError) as exc:
            await commands.submit_order(
                db, redis, "Ana", "0700", [2001, 2001], 2**31 - 1
            )
        assert exc.value.requested == 2 * (2**31 - 1)
        assert await _seats(db, 2001) == 5
        assert await _order_count(db) == 0
