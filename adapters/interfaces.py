"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from typing import Protocol, runtime_checkable

from adapters.models import ChargeRequest, ChargeResult, ExecutionResult
from core.domain.models import MarketQueueItem


@runtime_checkable
class IMarketExecutor(Protocol):
    """마켓 주문 실행기 인터페이스

    큐 항목 하나를 브로커에 주문으로 전달한다.
    금액은 반드시 Decimal 타입 사용.

    오류 규약:
    - MarketExecutionError: 브로커가 주문을 거부 (확정 실패)
    - CollaboratorUnavailableError: 연결 실패/타임아웃 (결과 불명)
    """

    async def execute(
        self,
        item: MarketQueueItem,
        idempotency_key: str,
    ) -> ExecutionResult:
        """주문 실행

        Args:
            item: processing 상태로 claim된 큐 항목
            idempotency_key: 동일 항목 재전송 시 중복 주문 방지 키

        Returns:
            체결 결과
        """
        ...

    async def close(self) -> None:
        """연결 종료"""
        ...


@runtime_checkable
class IPaymentGateway(Protocol):
    """결제 게이트웨이 인터페이스

    오류 규약:
    - PaymentDeclinedError: 결제 거절 (갱신 실패로 기록)
    - CollaboratorUnavailableError: 연결 실패 (결과 불명, 리스 만료 후 같은 키로 재시도)
    """

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        """구독 갱신 금액 청구"""
        ...

    async def close(self) -> None:
        """연결 종료"""
        ...
