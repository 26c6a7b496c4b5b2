"""
Lesson Booking Service — 入力モデルとレスポンスモデル

リクエストボディは各コマンドの入口でここのモデルを使って一度だけ検証する。
レスポンスは API のフィールド名(camelCase)で返す。
"""

from datetime import datetime
from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from .errors import InvalidArgumentError

# INTEGER カラムの範囲(PostgreSQL の int4 に合わせる)
MIN_INT = -(2**31)
MAX_INT = 2**31 - 1

DbInt = Annotated[StrictInt, Field(ge=MIN_INT, le=MAX_INT)]


def fits_int_column(value: int) -> bool:
    return MIN_INT <= value <= MAX_INT


# ── Request Models ───────────────────────────────


class OrderSubmission(BaseModel):
    """
    注文の入力

    number_of_spaces は1つの値で、lesson_ids のすべてのレッスンに同じ数だけ適用する。
    """

    model_config = ConfigDict(populate_by_name=True)

    name: StrictStr
    phone: StrictStr
    lesson_ids: list[DbInt] = Field(alias="lessonIDs", min_length=1)
    number_of_spaces: StrictInt = Field(alias="numberOfSpaces", gt=0, le=MAX_INT)

    @field_validator("name", "phone")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class SeatUpdate(BaseModel):
    """管理者による座席数の直接設定"""

    model_config = ConfigDict(populate_by_name=True)

    available_seats: StrictInt = Field(alias="availableSeats", ge=0, le=MAX_INT)


def parse(model: type[BaseModel], data: dict) -> BaseModel:
    """モデルで検証し、失敗したら InvalidArgumentError に変換する"""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        raise InvalidArgumentError(f"{field}: {first['msg']}", field=field) from e


# ── Response Models ──────────────────────────────


class Lesson(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    description: str
    price: float
    location: str
    rating: int
    available_seats: int = Field(alias="availableSeats")
    image: str


class OrderRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    phone: str
    lesson_ids: list[int] = Field(alias="lessonIDs")
    number_of_spaces: int = Field(alias="numberOfSpaces")
    status: str
    created_at: datetime = Field(alias="createdAt")


class OrderConfirmation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    order_id: str = Field(alias="orderId")
    order: OrderRecord


class SeatUpdateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    lesson_id: int = Field(alias="lessonId")
    new_available_seats: int = Field(alias="newAvailableSeats")


class SearchResult(BaseModel):
    query: str
    count: int
    results: list[Lesson]


class CatalogReset(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    inserted_count: int = Field(alias="insertedCount")
