"""
Lesson Booking Service — カタログストア

lessons / orders テーブルへのアクセスをまとめる。
コミットは呼び出し側(commands / seed)が行い、ここでは行わない。
SQLAlchemy の例外はすべて StoreFailureError に変換する。
"""

import json
import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from .errors import StoreFailureError
from .search import LIKE_ESCAPE, LessonFilter

logger = logging.getLogger(__name__)

# API のフィールド名 → カラム名
LESSON_COLUMNS = {
    "id": "id",
    "title": "title",
    "description": "description",
    "price": "price",
    "location": "location",
    "rating": "rating",
    "availableSeats": "available_seats",
    "image": "image",
}

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS lessons (
        id INTEGER PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        price REAL NOT NULL CHECK (price >= 0),
        location TEXT NOT NULL,
        rating INTEGER NOT NULL,
        available_seats INTEGER NOT NULL CHECK (available_seats >= 0),
        image TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        phone TEXT NOT NULL,
        lesson_ids TEXT NOT NULL,
        number_of_spaces INTEGER NOT NULL,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
)


@asynccontextmanager
async def store_operation(operation: str):
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Store operation %s failed: %s", operation, e)
        raise StoreFailureError(operation) from e


def _lesson(row) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "description": row.description,
        "price": float(row.price),
        "location": row.location,
        "rating": row.rating,
        "availableSeats": row.available_seats,
        "image": row.image,
    }


def _order(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "phone": row.phone,
        "lessonIDs": json.loads(row.lesson_ids),
        "numberOfSpaces": row.number_of_spaces,
        "status": row.status,
        "createdAt": row.created_at,
    }


async def ensure_schema(session: AsyncSession) -> None:
    async with store_operation("ensure_schema"):
        for statement in SCHEMA:
            await session.execute(text(statement))
        await session.commit()


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def install_sqlite_functions(engine: AsyncEngine) -> None:
    """
    SQLite の lower() は ASCII しか変換しないため、
    接続ごとに Unicode 対応の casefold() を登録する
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _register(dbapi_connection, connection_record):
        dbapi_connection.create_function("casefold", 1, _casefold, deterministic=True)


def _fold_function(session: AsyncSession) -> str:
    bind = session.bind
    if bind is not None and bind.dialect.name == "sqlite":
        return "casefold"
    return "lower"


# ── Lessons ──────────────────────────────────────


def compile_filter(lesson_filter: LessonFilter, fold: str = "lower") -> tuple[str, dict]:
    """
    LessonFilter を WHERE 句とバインドパラメータに変換する

    fold はテキストカラムを小文字化する SQL 関数名。
    パターン側は build_filter で casefold 済み。
    """
    clauses = []
    params = {}
    for i, predicate in enumerate(lesson_filter.branches):
        column = LESSON_COLUMNS[predicate.field]
        key = f"p{i}"
        if predicate.op == "contains":
            clauses.append(f"{fold}({column}) LIKE :{key} ESCAPE '{LIKE_ESCAPE}'")
        else:
            clauses.append(f"{column} = :{key}")
        params[key] = predicate.value
    return " OR ".join(clauses), params


async def find_lessons(
    session: AsyncSession,
    lesson_filter: LessonFilter | None = None,
) -> list[dict]:
    sql = "SELECT * FROM lessons"
    params: dict = {}
    if lesson_filter is not None and lesson_filter.branches:
        where, params = compile_filter(lesson_filter, _fold_function(session))
        sql += f" WHERE {where}"
    sql += " ORDER BY id"
    async with store_operation("find_lessons"):
        result = await session.execute(text(sql), params)
        return [_lesson(row) for row in result.fetchall()]


async def find_lesson(session: AsyncSession, lesson_id: int) -> dict | None:
    async with store_operation("find_lesson"):
        result = await session.execute(
            text("SELECT * FROM lessons WHERE id = :id"),
            {"id": lesson_id},
        )
        row = result.fetchone()
    return _lesson(row) if row else None


async def reserve_seats_if_available(
    session: AsyncSession,
    lesson_id: int,
    count: int,
) -> int | None:
    """
    条件付き更新で座席を減らす

    書き込み時点で available_seats >= count の場合だけ更新される。
    読んでから書く方式と違い、同時に予約されても残席がマイナスにならない。
    更新できなかった場合は None を返す(レッスンなし or 残席不足)。
    """
    async with store_operation("reserve_seats"):
        result = await session.execute(
            text("""
                UPDATE lessons
                SET available_seats = available_seats - :count
                WHERE id = :id AND available_seats >= :count
            """),
            {"id": lesson_id, "count": count},
        )
        if result.rowcount == 0:
            return None
        result = await session.execute(
            text("SELECT available_seats FROM lessons WHERE id = :id"),
            {"id": lesson_id},
        )
        return result.scalar_one()


async def update_seats(session: AsyncSession, lesson_id: int, value: int) -> bool:
    async with store_operation("update_seats"):
        result = await session.execute(
            text("UPDATE lessons SET available_seats = :value WHERE id = :id"),
            {"id": lesson_id, "value": value},
        )
    return result.rowcount > 0


async def insert_lessons(session: AsyncSession, lessons: list[dict]) -> int:
    if not lessons:
        return 0
    async with store_operation("insert_lessons"):
        await session.execute(
            text("""
                INSERT INTO lessons
                    (id, title, description, price, location, rating, available_seats, image)
                VALUES
                    (:id, :title, :description, :price, :location, :rating, :availableSeats, :image)
            """),
            lessons,
        )
    return len(lessons)


async def count_lessons(session: AsyncSession) -> int:
    async with store_operation("count_lessons"):
        result = await session.execute(text("SELECT COUNT(*) FROM lessons"))
        return result.scalar_one()


async def delete_lessons(session: AsyncSession) -> int:
    async with store_operation("delete_lessons"):
        result = await session.execute(text("DELETE FROM lessons"))
    return result.rowcount


async def create_text_index(session: AsyncSession) -> None:
    """
    title / location / description の複合 B-tree インデックスを作成する

    前方一致や完全一致の絞り込みには使えるが、find_lessons の
    部分一致検索(%...%)はこのインデックスを使わずに全件走査になる。
    カタログは小さいので全文検索インデックスは作らない。
    """
    async with store_operation("create_text_index"):
        await session.execute(
            text("""
                CREATE INDEX IF NOT EXISTS lessons_text_idx
                ON lessons (title, location, description)
            """)
        )


# ── Orders ───────────────────────────────────────


async def insert_order(session: AsyncSession, order: dict) -> str:
    order_id = str(uuid4())
    async with store_operation("insert_order"):
        await session.execute(
            text("""
                INSERT INTO orders
                    (id, name, phone, lesson_ids, number_of_spaces, status, created_at)
                VALUES
                    (:id, :name, :phone, :lesson_ids, :number_of_spaces, :status, :created_at)
            """),
            {
                "id": order_id,
                "name": order["name"],
                "phone": order["phone"],
                "lesson_ids": json.dumps(order["lessonIDs"]),
                "number_of_spaces": order["numberOfSpaces"],
                "status": order["status"],
                "created_at": order["createdAt"],
            },
        )
    return order_id


async def find_orders(session: AsyncSession) -> list[dict]:
    async with store_operation("find_orders"):
        result = await session.execute(
            text("SELECT * FROM orders ORDER BY created_at DESC")
        )
        return [_order(row) for row in result.fetchall()]
