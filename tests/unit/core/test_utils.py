"""
유틸리티 테스트 (재시도, 멱등 키, 타임존)
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from core.domain.errors import InvalidAmount, TransientStoreError
from core.utils.idempotency import make_charge_key, make_order_key, parse_order_key
from core.utils.retry import RetryPolicy, with_store_retry
from core.utils.timezone import add_months, isoformat_utc, parse_timestamp, to_utc


class TestRetryPolicy:
    """RetryPolicy 테스트"""

    def test_default_schedule(self) -> None:
        """3600 × 2^(n-1), 86400 상한"""
        policy = RetryPolicy()

        assert policy.delay_for(1) == timedelta(seconds=3600)
        assert policy.delay_for(2) == timedelta(seconds=7200)
        assert policy.delay_for(3) == timedelta(seconds=14400)
        assert policy.delay_for(10) == timedelta(seconds=86400)

    def test_huge_attempt_does_not_overflow(self) -> None:
        """지수 상한으로 큰 시도 번호도 안전"""
        assert RetryPolicy().delay_for(10_000) == timedelta(seconds=86400)

    def test_next_attempt_at(self) -> None:
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        policy = RetryPolicy(initial_delay_seconds=60)

        assert policy.next_attempt_at(2, now) == now + timedelta(seconds=120)

    def test_is_exhausted(self) -> None:
        policy = RetryPolicy(max_attempts=3)

        assert not policy.is_exhausted(2)
        assert policy.is_exhausted(3)

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"initial_delay_seconds": -1}, {"backoff_multiplier": 0.5}],
    )
    def test_invalid_policy(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestWithStoreRetry:
    """with_store_retry 테스트"""

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self) -> None:
        """TransientStoreError는 재시도"""
        calls = {"count": 0}

        async def flaky() -> str:
            calls["count"] += 1
            if calls["count"] < 3:
                raise TransientStoreError("database is locked")
            return "ok"

        result = await with_store_retry(flaky, attempts=3, base_delay=0)

        assert result == "ok"
        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_exhausted_raises(self) -> None:
        calls = {"count": 0}

        async def always_locked() -> None:
            calls["count"] += 1
            raise TransientStoreError("database is locked")

        with pytest.raises(TransientStoreError):
            await with_store_retry(always_locked, attempts=2, base_delay=0)
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self) -> None:
        """도메인 오류는 즉시 전파"""
        calls = {"count": 0}

        async def invalid() -> None:
            calls["count"] += 1
            raise InvalidAmount("bad")

        with pytest.raises(InvalidAmount):
            await with_store_retry(invalid, attempts=3, base_delay=0)
        assert calls["count"] == 1


class TestIdempotencyKeys:
    """멱등 키 테스트"""

    def test_order_key(self) -> None:
        assert make_order_key(42) == "rq-42"
        assert parse_order_key("rq-42") == 42

    def test_parse_foreign_key(self) -> None:
        assert parse_order_key("rn-7-1") is None
        assert parse_order_key("rq-abc") is None
        assert parse_order_key("") is None

    def test_charge_key_per_attempt(self) -> None:
        """결제 키는 시도별로 다름"""
        assert make_charge_key(7, 1) == "rn-7-1"
        assert make_charge_key(7, 2) != make_charge_key(7, 1)

    def test_invalid_inputs(self) -> None:
        with pytest.raises(ValueError):
            make_order_key(None)
        with pytest.raises(ValueError):
            make_charge_key(7, 0)


class TestTimezone:
    """타임존 유틸리티 테스트"""

    def test_isoformat_fixed_width(self) -> None:
        """마이크로초 고정 폭이라 문자열 순서 = 시각 순서"""
        earlier = datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
        later = earlier + timedelta(microseconds=1)

        assert isoformat_utc(earlier) == "2026-03-01T10:00:00.000000+00:00"
        assert isoformat_utc(earlier) < isoformat_utc(later)
        assert isoformat_utc(None) is None

    def test_naive_treated_as_utc(self) -> None:
        assert to_utc(datetime(2026, 3, 1)).tzinfo == timezone.utc

    def test_parse_timestamp_z_suffix(self) -> None:
        assert parse_timestamp("2026-03-01T00:00:00Z") == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_add_months_clamps_day(self) -> None:
        """말일 보정"""
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
        assert add_months(date(2026, 11, 15), 2) == date(2027, 1, 15)
        assert add_months(date(2024, 2, 29), 12) == date(2025, 2, 28)
