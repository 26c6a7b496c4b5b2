"""
Lesson Booking Service — FastAPI エントリーポイント

レッスン一覧・注文・座席数更新・検索・カタログリセットを HTTP で公開する。
ハンドラはリクエストの受け渡しだけを行い、ロジックは commands / queries / seed に置く。
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as aioredis
import uvicorn
from fastapi import Body, Depends, FastAPI, Path, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from . import commands, queries, seed, store
from .config import (
    CORS_ORIGINS,
    DATABASE_URL,
    HOST,
    LOG_FORMAT,
    LOG_LEVEL,
    PORT,
    REDIS_URL,
    SEED_ON_STARTUP,
)
from .errors import BookingError, ErrorKind
from .observability import setup_logging
from .schemas import (
    MAX_INT,
    MIN_INT,
    CatalogReset,
    Lesson,
    OrderConfirmation,
    OrderRecord,
    SearchResult,
    SeatUpdateResult,
)

logger = logging.getLogger(__name__)

engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
store.install_sqlite_functions(engine)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool
    setup_logging(LOG_LEVEL, LOG_FORMAT)
    if REDIS_URL:
        redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)

    async with async_session() as session:
        await store.ensure_schema(session)
        if SEED_ON_STARTUP:
            await seed.seed_if_empty(session, redis_pool)
    logger.info("Lesson booking service started")

    yield

    if redis_pool is not None:
        await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Lesson Booking Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
    allow_credentials=True,
)


async def get_session():
    async with async_session() as session:
        yield session


def get_redis() -> aioredis.Redis | None:
    return redis_pool


# ── Error Handlers ───────────────────────────────


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(exc.message, extra={"error_kind": exc.kind.value, "path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "kind": ErrorKind.INVALID_ARGUMENT.value,
                "message": "Malformed request",
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "kind": ErrorKind.STORE_FAILURE.value,
                "message": "An unexpected error occurred",
            }
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(
        "%s %s", request.method, request.url.path,
        extra={"path": request.url.path, "status_code": response.status_code},
    )
    return response


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/")
async def index():
    return {
        "message": "Lesson Booking API",
        "endpoints": {
            "GET /lessons": "Get all lessons",
            "POST /orders": "Create order",
            "GET /orders": "Get all orders",
            "PUT /lessons/{id}": "Update lesson spaces",
            "GET /search?q=query": "Search lessons",
            "POST /admin/reset": "Reset the lesson catalog",
        },
    }


@app.get("/lessons", response_model=list[Lesson])
async def get_lessons(session: AsyncSession = Depends(get_session)):
    return await queries.list_lessons(session)


@app.get("/orders", response_model=list[OrderRecord])
async def get_orders(session: AsyncSession = Depends(get_session)):
    return await queries.list_orders(session)


@app.get("/search", response_model=SearchResult)
async def search(q: str | None = None, session: AsyncSession = Depends(get_session)):
    return await queries.search_lessons(session, q)


# ── Command Endpoints (Write 側) ─────────────────


@app.post(
    "/orders", response_model=OrderConfirmation, status_code=status.HTTP_201_CREATED
)
async def create_order(
    payload: dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis | None = Depends(get_redis),
):
    order = await commands.submit_order(
        session,
        redis,
        payload.get("name"),
        payload.get("phone"),
        payload.get("lessonIDs"),
        payload.get("numberOfSpaces"),
    )
    return {
        "message": "Order created successfully",
        "orderId": order["id"],
        "order": order,
    }


@app.put("/lessons/{lesson_id}", response_model=SeatUpdateResult)
async def update_lesson(
    lesson_id: int = Path(ge=MIN_INT, le=MAX_INT),
    payload: dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis | None = Depends(get_redis),
):
    new_value = await commands.set_seats(
        session, redis, lesson_id, payload.get("availableSeats")
    )
    return {
        "message": "Lesson updated successfully",
        "lessonId": lesson_id,
        "newAvailableSeats": new_value,
    }


@app.post("/admin/reset", response_model=CatalogReset)
async def reset_catalog(
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis | None = Depends(get_redis),
):
    inserted = await seed.force_reseed(session, redis)
    return {"message": "Catalog reset", "insertedCount": inserted}


@app.get("/health")
async def health():
    return {"status": "ok", "service": "lesson-booking-service"}


def run() -> None:
    uvicorn.run("lesson_booking.main:app", host=HOST, port=PORT)
