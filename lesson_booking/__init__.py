"""
Lesson Booking Service

レッスン一覧・注文受付・座席数管理・検索を提供する小さなバックエンド。
"""
