"""
Lesson Booking Service — エラー定義

すべての失敗は ErrorKind と利用者向けメッセージを持つ。
内部の詳細(SQL やスタックトレース)はメッセージに含めない。
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_SEATS = "INSUFFICIENT_SEATS"
    STORE_FAILURE = "STORE_FAILURE"


class BookingError(Exception):
    """全ドメインエラーの基底クラス"""

    kind: ErrorKind = ErrorKind.STORE_FAILURE
    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": {"kind": self.kind.value, "message": self.message}}


class InvalidArgumentError(BookingError):
    """入力が欠けている、または形式が不正"""

    kind = ErrorKind.INVALID_ARGUMENT
    http_status = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(BookingError):
    """指定されたレッスンが存在しない"""

    kind = ErrorKind.NOT_FOUND
    http_status = 404

    def __init__(self, lesson_id: int) -> None:
        super().__init__(f"Lesson {lesson_id} not found")
        self.lesson_id = lesson_id


class InsufficientSeatsError(BookingError):
    """要求座席数が残席数を超えている"""

    kind = ErrorKind.INSUFFICIENT_SEATS
    http_status = 409

    def __init__(self, lesson_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient seats for lesson {lesson_id}: "
            f"requested={requested}, available={available}"
        )
        self.lesson_id = lesson_id
        self.requested = requested
        self.available = available


class StoreFailureError(BookingError):
    """データストアに到達できない、または操作が拒否された"""

    kind = ErrorKind.STORE_FAILURE
    http_status = 500

    def __init__(self, operation: str) -> None:
        super().__init__(f"Store operation failed: {operation}")
        self.operation = operation
