"""
Queue Stager

종목이 매핑된 pending 거래를 마켓 큐 항목으로 스테이징.

흐름:
1. 스테이징 대상 거래 조회 (created_at, id 순)
2. 라운드업 미기록 거래는 원장 항목부터 기록
3. 큐 항목 삽입 + 거래 mapped + 원장 allocated (단일 트랜잭션)

같은 거래의 미종료 큐 항목이 이미 있으면 DUPLICATE_STAGING 항목 오류로 보고한다.
"""

import asyncio
import logging

from core.constants import Defaults
from core.domain.errors import (
    DuplicateStaging,
    InvalidAmount,
    RoundupError,
    TransientStoreError,
)
from core.domain.models import BatchResult, Transaction
from core.ledger.entry_builder import RoundupEntryBuilder
from core.storage.queue_store import MarketQueueStore
from core.storage.transaction_store import TransactionStore
from core.types import ItemErrorCode
from core.utils.retry import with_store_retry

logger = logging.getLogger(__name__)


class QueueStager:
    """거래 → 큐 스테이징

    Args:
        transaction_store: 거래 저장소
        queue_store: 마켓 큐 저장소
        entry_builder: 라운드업 원장 기록기
        batch_timeout: 배치 제한 시간 (초, None이면 무제한)

    사용 예시:
    ```python
    stager = QueueStager(txn_store, queue_store, builder)
    result = await stager.stage_eligible()
    print(result.queued, [e.code for e in result.errors])
    ```
    """

    def __init__(
        self,
        transaction_store: TransactionStore,
        queue_store: MarketQueueStore,
        entry_builder: RoundupEntryBuilder,
        batch_timeout: float | None = Defaults.BATCH_TIMEOUT_SEC,
    ):
        self.transaction_store = transaction_store
        self.queue_store = queue_store
        self.entry_builder = entry_builder
        self.batch_timeout = batch_timeout

    async def stage_eligible(self, limit: int | None = None) -> BatchResult:
        """스테이징 대상 거래 전체 처리"""
        transactions = await with_store_retry(
            lambda: self.transaction_store.list_stageable(limit),
            name="list_stageable",
        )
        return await self.stage_transactions(transactions)

    async def stage_transactions(self, transactions: list[Transaction]) -> BatchResult:
        """주어진 거래 목록 스테이징

        항목별 실패는 errors에 모으고 나머지 거래는 계속 처리한다.
        제한 시간이 지나면 남은 거래는 건드리지 않고 timed_out으로 반환.
        """
        result = BatchResult()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout if self.batch_timeout else None

        for index, transaction in enumerate(transactions):
            if deadline is not None and loop.time() >= deadline:
                result.timed_out = True
                logger.warning(
                    "스테이징 배치 제한 시간 초과",
                    extra={"queued": result.queued, "remaining": len(transactions) - index},
                )
                break

            try:
                await self._stage_one(transaction)
                result.queued += 1

            except DuplicateStaging as e:
                result.add_error(transaction.id, ItemErrorCode.DUPLICATE_STAGING, e.message)
                logger.warning(
                    "중복 스테이징 거부",
                    extra={"transaction_id": transaction.id},
                )

            except InvalidAmount as e:
                result.add_error(transaction.id, ItemErrorCode.INVALID_AMOUNT, e.message)
                logger.warning(
                    f"스테이징 금액 오류: {e.message}",
                    extra={"transaction_id": transaction.id},
                )

            except TransientStoreError as e:
                result.add_error(transaction.id, ItemErrorCode.STORE_ERROR, e.message)
                logger.warning(
                    f"스테이징 저장소 오류: {e.message}",
                    extra={"transaction_id": transaction.id},
                )

            except RoundupError as e:
                result.add_error(transaction.id, e.code, e.message)
                logger.warning(
                    f"스테이징 실패: {e}",
                    extra={"transaction_id": transaction.id},
                )

        if result.queued or result.errors:
            logger.info(
                "스테이징 완료",
                extra={
                    "queued": result.queued,
                    "failed": result.failed,
                    "timed_out": result.timed_out,
                },
            )
        return result

    async def _stage_one(self, transaction: Transaction) -> None:
        if transaction.round_up is None:
            await self.entry_builder.record_transaction(transaction)
            transaction = await self.transaction_store.require(transaction.id)

        await with_store_retry(
            lambda: self.queue_store.stage_transaction(transaction),
            name="stage_transaction",
        )
