"""
Timezone-aware timestamp columns.

All timestamps are UTC and tz-aware in Python. Backends without a native
timestamptz (SQLite) store naive UTC and get the zone re-attached on load.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive values are taken to be UTC already"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def utc_column(index: bool = False, nullable: bool = False) -> Column:
    return Column(UTCDateTime(timezone=True), index=index, nullable=nullable)
