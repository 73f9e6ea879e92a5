"""
Mock 결제 게이트웨이

테스트용 Mock Payments. IPaymentGateway Protocol 준수.
"""

from dataclasses import dataclass, field
from datetime import datetime

from adapters.models import ChargeRequest, ChargeResult
from core.domain.errors import CollaboratorUnavailableError, PaymentDeclinedError
from core.utils.timezone import now_utc


@dataclass
class ChargeRecord:
    """청구 요청 기록"""

    request: ChargeRequest
    timestamp: datetime
    succeeded: bool


@dataclass
class MockPaymentGateway:
    """Mock 결제 게이트웨이

    Attributes:
        should_fail: True면 모든 청구 거절
        fail_times: 처음 N번의 청구만 거절 (이후 성공)
        unavailable: True면 연결 실패
    """

    should_fail: bool = False
    fail_times: int = 0
    unavailable: bool = False
    charges: list[ChargeRecord] = field(default_factory=list)
    closed: bool = False

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        declined = self.should_fail or self.fail_times > 0
        if self.fail_times > 0:
            self.fail_times -= 1

        self.charges.append(
            ChargeRecord(
                request=request,
                timestamp=now_utc(),
                succeeded=not (declined or self.unavailable),
            )
        )

        if self.unavailable:
            raise CollaboratorUnavailableError("mock payments unavailable")
        if declined:
            raise PaymentDeclinedError("card_declined")

        return ChargeResult(
            charge_id=f"mock-charge-{len(self.charges)}",
            amount=request.amount,
            payment_method=request.payment_method_id,
        )

    @property
    def idempotency_keys(self) -> list[str]:
        return [c.request.idempotency_key for c in self.charges]

    async def close(self) -> None:
        self.closed = True
