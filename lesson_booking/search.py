"""
Lesson Booking Service — 検索フィルタの構築

クエリ文字列から複数フィールドに対する OR 条件を組み立てる。
ここではクエリを実行しない(純粋関数)。実行は store.find_lessons が行う。

  テキスト: title / location / description の部分一致(大文字小文字を区別しない)
  数値:     クエリが数値として解釈できる場合のみ price / availableSeats / rating の完全一致
"""

import math
import re
from dataclasses import dataclass

from .errors import InvalidArgumentError
from .schemas import fits_int_column

TEXT_FIELDS = ("title", "location", "description")

LIKE_ESCAPE = "\\"

_NUMBER = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)")


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str  # "contains" | "eq"
    value: str | int | float


@dataclass(frozen=True)
class LessonFilter:
    query: str
    branches: tuple[Predicate, ...]

    @property
    def numeric_fields(self) -> set[str]:
        return {p.field for p in self.branches if p.op == "eq"}


def escape_like(value: str) -> str:
    """LIKE のワイルドカードをリテラルとして扱うようにエスケープする"""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def parse_number(query: str) -> float | None:
    if not _NUMBER.fullmatch(query):
        return None
    number = float(query)
    return number if math.isfinite(number) else None


def build_filter(raw_query: str | None) -> LessonFilter:
    if raw_query is None or not isinstance(raw_query, str) or not raw_query.strip():
        raise InvalidArgumentError('Search query "q" required', field="q")

    query = raw_query.strip()
    pattern = f"%{escape_like(query.casefold())}%"
    branches = [Predicate(field, "contains", pattern) for field in TEXT_FIELDS]

    number = parse_number(query)
    if number is not None:
        branches.append(Predicate("price", "eq", number))
        # 整数フィールドは値が整数かつカラムの範囲内のときだけ比較する
        if number.is_integer() and fits_int_column(int(number)):
            branches.append(Predicate("availableSeats", "eq", int(number)))
            branches.append(Predicate("rating", "eq", int(number)))

    return LessonFilter(query=query, branches=tuple(branches))
