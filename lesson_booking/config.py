"""
Lesson Booking Service — 設定

すべての設定は環境変数から読み込む。
REDIS_URL が未設定の場合はイベント発行を行わない。
"""

import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./lessons.db")
REDIS_URL = os.environ.get("REDIS_URL")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://127.0.0.1:5500").split(",")
    if origin.strip()
]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

SEED_ON_STARTUP = os.environ.get("SEED_ON_STARTUP", "true").lower() in ("1", "true", "yes")

EVENTS_CHANNEL = "lesson_events"

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
