"""
Lesson Booking Service — ログ設定

本番では JSON、開発ではテキスト形式で標準エラーに出力する。
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_FIELDS = ("error_kind", "lesson_id", "order_id", "path", "status_code")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


HANDLER_NAME = "lesson_booking"


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """アプリケーション起動時に呼ぶ。再度呼ばれた場合は前回のハンドラを置き換える"""
    for existing in list(logging.root.handlers):
        if existing.get_name() == HANDLER_NAME:
            logging.root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
