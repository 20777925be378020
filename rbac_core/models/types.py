"""공용 컬럼 타입.

Column types shared across models.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.types import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """UTC로 정규화되는 timezone-aware datetime.

    Timezone-aware datetime that normalizes values to UTC on the way in and
    out. Backends that drop tzinfo (SQLite) still hand back aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any):
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: Any, dialect: Any):
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value


def utcnow() -> datetime:
    """현재 UTC 시각 (Current UTC timestamp)."""
    return datetime.now(timezone.utc)
