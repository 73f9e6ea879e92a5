"""
타임존/날짜 유틸리티

내부 저장: UTC ISO-8601 문자열 원칙 준수를 위한 헬퍼 함수
"""

import calendar
from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """현재 UTC 시간 반환 (타임존 명시)

    datetime.now(timezone.utc)의 축약형.

    Returns:
        현재 UTC 시간 (tzinfo=timezone.utc)
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """datetime을 UTC로 정규화 (naive면 UTC로 간주)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: datetime | None) -> str | None:
    """UTC ISO 문자열 (저장용)

    마이크로초까지 고정 폭으로 기록하여 문자열 비교가 시각 비교와 일치한다.
    """
    if dt is None:
        return None
    return to_utc(dt).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime | date) -> datetime:
    """저장된 날짜/시각 문자열을 UTC datetime으로 변환

    DATE 컬럼("2026-03-01")과 TIMESTAMP 컬럼 모두 허용.

    Example:
        >>> parse_timestamp("2026-03-01")
        datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def add_months(day: date, months: int) -> date:
    """월 단위 날짜 이동 (말일 보정)

    Example:
        >>> add_months(date(2026, 1, 31), 1)
        date(2026, 2, 28)
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))
