"""
라운드업 / 수수료 계산 테스트
"""

from decimal import Decimal

import pytest

from core.domain.errors import InvalidAmount
from core.ledger.roundup import (
    FeeSchedule,
    compute_round_up,
    parse_amount,
    quote,
    to_cents,
)
from core.types import FeeMode


class TestComputeRoundUp:
    """compute_round_up 테스트"""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            ("4.35", "0.65"),
            ("12.01", "0.99"),
            ("0.99", "0.01"),
            ("100.50", "0.50"),
        ],
    )
    def test_fractional_amount(self, amount: str, expected: str) -> None:
        """소수부가 있으면 다음 정수까지의 차액"""
        assert compute_round_up(Decimal(amount)) == Decimal(expected)

    def test_whole_amount_uses_whole_dollar_round_up(self) -> None:
        """정수 금액은 1.00 라운드업"""
        assert compute_round_up(Decimal("5.00")) == Decimal("1.00")

    def test_whole_amount_custom_round_up(self) -> None:
        """정수 금액 라운드업 설정값 적용"""
        assert compute_round_up(Decimal("5"), Decimal("0.50")) == Decimal("0.50")

    def test_float_and_string_inputs(self) -> None:
        """float/문자열 입력도 Decimal로 변환"""
        assert compute_round_up(4.35) == Decimal("0.65")
        assert compute_round_up("4.35") == Decimal("0.65")

    def test_sub_cent_amount_rounds_first(self) -> None:
        """센트 미만은 반올림 후 계산 (4.999 → 5.00)"""
        assert compute_round_up(Decimal("4.999")) == Decimal("1.00")

    def test_result_is_cent_precision(self) -> None:
        """결과는 소수 2자리"""
        result = compute_round_up(Decimal("7.3"))
        assert result == Decimal("0.70")
        assert result.as_tuple().exponent == -2

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-3.20"), "0.00"])
    def test_zero_or_negative_rejected(self, amount) -> None:
        """0 이하 금액은 InvalidAmount"""
        with pytest.raises(InvalidAmount):
            compute_round_up(amount)

    def test_missing_amount_rejected(self) -> None:
        """금액 누락은 InvalidAmount"""
        with pytest.raises(InvalidAmount):
            compute_round_up(None)


class TestParseAmount:
    """parse_amount 테스트"""

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, [1]])
    def test_invalid_values(self, value) -> None:
        """숫자가 아니거나 유한하지 않으면 거부"""
        with pytest.raises(InvalidAmount):
            parse_amount(value)

    def test_decimal_passthrough(self) -> None:
        """Decimal은 그대로 반환"""
        value = Decimal("1.23")
        assert parse_amount(value) is value

    def test_to_cents_half_up(self) -> None:
        """센트 반올림은 ROUND_HALF_UP"""
        assert to_cents(Decimal("0.125")) == Decimal("0.13")
        assert to_cents(Decimal("0.124")) == Decimal("0.12")


class TestFeeSchedule:
    """FeeSchedule 테스트"""

    def test_percentage_fee(self) -> None:
        """percentage: round_up × rate, 센트 반올림"""
        schedule = FeeSchedule(mode=FeeMode.PERCENTAGE, rate=Decimal("0.025"))

        assert schedule.compute_fee(Decimal("0.65")) == Decimal("0.02")
        assert schedule.compute_fee(Decimal("1.00")) == Decimal("0.03")

    def test_flat_fee(self) -> None:
        """flat: 고정 금액"""
        schedule = FeeSchedule(mode=FeeMode.FLAT, flat_amount=Decimal("0.05"))

        assert schedule.compute_fee(Decimal("0.65")) == Decimal("0.05")

    def test_flat_fee_capped_at_round_up(self) -> None:
        """flat 수수료는 라운드업 금액을 넘지 않음"""
        schedule = FeeSchedule(mode=FeeMode.FLAT, flat_amount=Decimal("0.50"))

        assert schedule.compute_fee(Decimal("0.10")) == Decimal("0.10")

    def test_zero_rate(self) -> None:
        """요율 0이면 수수료 0"""
        schedule = FeeSchedule(rate=Decimal("0"))
        assert schedule.compute_fee(Decimal("0.65")) == Decimal("0.00")

    def test_negative_settings_rejected(self) -> None:
        """음수 설정은 생성 시 거부"""
        with pytest.raises(InvalidAmount):
            FeeSchedule(rate=Decimal("-0.01"))
        with pytest.raises(InvalidAmount):
            FeeSchedule(mode=FeeMode.FLAT, flat_amount=Decimal("-1"))

    def test_negative_round_up_rejected(self) -> None:
        """음수 라운드업에 대한 수수료 계산 거부"""
        with pytest.raises(InvalidAmount):
            FeeSchedule().compute_fee(Decimal("-0.10"))


class TestQuote:
    """quote 테스트"""

    def test_quote_values(self) -> None:
        """라운드업, 수수료, 순투자액"""
        result = quote(Decimal("4.35"), FeeSchedule(rate=Decimal("0.025")))

        assert result.round_up_amount == Decimal("0.65")
        assert result.fee_amount == Decimal("0.02")
        assert result.net_investment == Decimal("0.63")

    def test_fee_never_exceeds_round_up(self) -> None:
        """수수료 ≤ 라운드업"""
        for amount in ("0.99", "1.50", "3.00", "9.01"):
            result = quote(Decimal(amount), FeeSchedule(mode=FeeMode.FLAT, flat_amount=Decimal("0.25")))
            assert Decimal("0") <= result.fee_amount <= result.round_up_amount
