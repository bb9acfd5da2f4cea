from __future__ import annotations

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def utc_date(value: datetime) -> date:
    """UTC 기준 날짜. 일일 수익 지급 키로 사용한다."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()
