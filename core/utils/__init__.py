"""
유틸리티 패키지

멱등 키 생성, 재시도 정책, 타임존 처리 등 공통 유틸리티
"""

from core.utils.timezone import (
    add_months,
    isoformat_utc,
    now_utc,
    parse_timestamp,
    to_utc,
)

__all__ = [
    "add_months",
    "isoformat_utc",
    "now_utc",
    "parse_timestamp",
    "to_utc",
]
