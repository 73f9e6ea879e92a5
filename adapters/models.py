"""
어댑터 공통 데이터 모델

외부 협력자(브로커, 결제 게이트웨이) 요청/응답을 표준화한 모델.
모든 금액은 Decimal 타입 사용.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class ExecutionResult:
    """마켓 주문 체결 결과

    Attributes:
        order_ref: 브로커 주문 참조 ID
        ticker: 종목
        amount: 투자 금액
        filled_quantity: 체결 수량 (분수 주식 가능)
        price: 평균 체결가
        executed_at: 체결 시각
    """

    order_ref: str
    ticker: str
    amount: Decimal
    filled_quantity: Decimal | None = None
    price: Decimal | None = None
    executed_at: datetime | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "ExecutionResult":
        """브로커 응답 JSON 파싱"""
        return cls(
            order_ref=str(data["order_id"]),
            ticker=data["ticker"],
            amount=Decimal(str(data["amount"])),
            filled_quantity=_optional_decimal(data.get("filled_quantity")),
            price=_optional_decimal(data.get("price")),
        )


@dataclass(frozen=True)
class ChargeRequest:
    """구독 갱신 결제 요청

    Attributes:
        subscription_id: 구독 ID
        user_id: 사용자 ID
        amount: 청구 금액
        payment_method_id: 결제 수단 ID
        idempotency_key: 동일 시도 재전송 시 중복 청구 방지 키
    """

    subscription_id: int
    user_id: int
    amount: Decimal
    payment_method_id: str | None
    idempotency_key: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "payment_method_id": self.payment_method_id,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class ChargeResult:
    """결제 결과"""

    charge_id: str
    amount: Decimal
    payment_method: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "ChargeResult":
        return cls(
            charge_id=str(data["charge_id"]),
            amount=Decimal(str(data["amount"])),
            payment_method=data.get("payment_method"),
        )


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))
