"""
Mock 마켓 실행기

테스트용 Mock Broker.
IMarketExecutor Protocol 준수.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from adapters.models import ExecutionResult
from core.domain.errors import CollaboratorUnavailableError, MarketExecutionError
from core.domain.models import MarketQueueItem
from core.utils.timezone import now_utc


@dataclass
class ExecutionRecord:
    """실행 요청 기록"""

    queue_item_id: int | None
    ticker: str
    amount: Decimal
    idempotency_key: str
    timestamp: datetime
    succeeded: bool


class MockMarketExecutor:
    """Mock 마켓 실행기

    모든 실행 요청을 기록하여 테스트에서 검증 가능.
    같은 idempotency_key로 재요청하면 기존 주문 참조를 그대로 반환한다.

    사용 예시:
    ```python
    executor = MockMarketExecutor(fail_tickers={"BAD"})

    result = await executor.execute(item, "rq-1")

    assert executor.calls[0].ticker == item.ticker
    ```
    """

    def __init__(
        self,
        should_fail: bool = False,
        fail_tickers: set[str] | None = None,
        unavailable: bool = False,
        delay: float = 0.0,
    ):
        """
        Args:
            should_fail: True면 모든 주문 거부
            fail_tickers: 거부할 종목 집합
            unavailable: True면 연결 실패 (결과 불명 시나리오)
            delay: 응답 지연 (초, 타임아웃 시나리오용)
        """
        self.should_fail = should_fail
        self.fail_tickers = set(fail_tickers or ())
        self.unavailable = unavailable
        self.delay = delay
        self.calls: list[ExecutionRecord] = []
        self._orders: dict[str, ExecutionResult] = {}
        self._order_seq = 0
        self.closed = False

    async def execute(
        self,
        item: MarketQueueItem,
        idempotency_key: str,
    ) -> ExecutionResult:
        if self.delay:
            await asyncio.sleep(self.delay)

        rejected = self.should_fail or item.ticker in self.fail_tickers
        self.calls.append(
            ExecutionRecord(
                queue_item_id=item.id,
                ticker=item.ticker,
                amount=item.amount,
                idempotency_key=idempotency_key,
                timestamp=now_utc(),
                succeeded=not (rejected or self.unavailable),
            )
        )

        if self.unavailable:
            raise CollaboratorUnavailableError("mock broker unavailable")
        if rejected:
            raise MarketExecutionError(f"mock rejection: {item.ticker}")

        if idempotency_key in self._orders:
            return self._orders[idempotency_key]

        self._order_seq += 1
        result = ExecutionResult(
            order_ref=f"mock-order-{self._order_seq}",
            ticker=item.ticker,
            amount=item.amount,
            executed_at=now_utc(),
        )
        self._orders[idempotency_key] = result
        return result

    @property
    def executed_item_ids(self) -> list[int | None]:
        """성공한 실행의 큐 항목 ID 목록"""
        return [c.queue_item_id for c in self.calls if c.succeeded]

    async def close(self) -> None:
        self.closed = True
