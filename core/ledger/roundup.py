"""
라운드업 / 수수료 계산 규칙

모든 금액은 Decimal, 센트 단위 ROUND_HALF_UP.

라운드업 규칙:
- amount가 소수부를 가지면: ceil(amount) - amount
- amount가 이미 정수 단위면: whole_dollar_amount (다음 정수 단위까지, 기본 1.00)
- amount가 없거나 0 이하이면: InvalidAmount
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from core.constants import CENT, Defaults
from core.domain.errors import InvalidAmount
from core.types import FeeMode


def to_cents(value: Decimal) -> Decimal:
    """센트 단위로 반올림 (ROUND_HALF_UP)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """금액 입력을 Decimal로 변환

    float는 str 경유로 변환하여 이진 오차를 피한다.

    Raises:
        InvalidAmount: None, 숫자가 아님, NaN/Infinity
    """
    if value is None:
        raise InvalidAmount("금액이 없습니다")
    if isinstance(value, bool):
        raise InvalidAmount(f"금액 형식이 잘못되었습니다: {value!r}")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"금액 형식이 잘못되었습니다: {value!r}") from e

    if not amount.is_finite():
        raise InvalidAmount(f"금액 형식이 잘못되었습니다: {value!r}")
    return amount


def compute_round_up(
    amount: Any,
    whole_dollar_amount: Decimal = Defaults.WHOLE_DOLLAR_ROUND_UP,
) -> Decimal:
    """구매 금액의 라운드업 계산

    Args:
        amount: 구매 금액
        whole_dollar_amount: 정수 금액일 때 적용할 라운드업

    Returns:
        라운드업 금액 (0 이상, 센트 단위)

    Raises:
        InvalidAmount: 금액 누락/음수/0

    Example:
        >>> compute_round_up(Decimal("4.35"))
        Decimal('0.65')
        >>> compute_round_up(Decimal("5.00"))
        Decimal('1.00')
    """
    value = to_cents(parse_amount(amount))
    if value <= 0:
        raise InvalidAmount(f"금액은 0보다 커야 합니다: {value}")

    ceiling = value.to_integral_value(rounding=ROUND_CEILING)
    round_up = ceiling - value

    if round_up == 0:
        return to_cents(whole_dollar_amount)
    return to_cents(round_up)


@dataclass(frozen=True)
class FeeSchedule:
    """수수료 스케줄

    Args:
        mode: percentage (round_up × rate) 또는 flat (고정 금액)
        rate: percentage 모드 요율 (0.025 = 2.5%)
        flat_amount: flat 모드 고정 수수료 (라운드업 금액을 넘지 않음)
    """

    mode: FeeMode = FeeMode.PERCENTAGE
    rate: Decimal = Defaults.FEE_RATE
    flat_amount: Decimal = Defaults.FEE_FLAT_AMOUNT

    def __post_init__(self) -> None:
        if self.rate < 0 or self.flat_amount < 0:
            raise InvalidAmount(
                f"수수료 설정은 음수일 수 없습니다: rate={self.rate}, flat={self.flat_amount}"
            )

    def compute_fee(self, round_up: Decimal) -> Decimal:
        """라운드업 금액에 대한 수수료 계산

        Returns:
            수수료 (0 이상, round_up 이하, 센트 단위)
        """
        if round_up < 0:
            raise InvalidAmount(f"라운드업 금액은 음수일 수 없습니다: {round_up}")

        if self.mode == FeeMode.FLAT:
            return min(to_cents(self.flat_amount), round_up)
        return to_cents(round_up * self.rate)


@dataclass(frozen=True)
class RoundupQuote:
    """라운드업 계산 결과"""

    round_up_amount: Decimal
    fee_amount: Decimal

    @property
    def net_investment(self) -> Decimal:
        """실제 투자 금액 (라운드업 - 수수료)"""
        return self.round_up_amount - self.fee_amount


def quote(
    amount: Any,
    fee_schedule: FeeSchedule,
    whole_dollar_amount: Decimal = Defaults.WHOLE_DOLLAR_ROUND_UP,
) -> RoundupQuote:
    """구매 금액에 대한 라운드업/수수료 산출"""
    round_up = compute_round_up(amount, whole_dollar_amount)
    return RoundupQuote(
        round_up_amount=round_up,
        fee_amount=fee_schedule.compute_fee(round_up),
    )
