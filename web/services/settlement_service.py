"""
정산 서비스

라운드업 원장 기록, 마켓 큐 스테이징/실행/재큐잉 및 조회
"""

import logging
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IMarketExecutor
from core.config.loader import Settings
from core.domain.errors import NotFound
from core.domain.models import BatchResult, MarketQueueItem, RoundupLedgerEntry
from core.ledger.entry_builder import RoundupEntryBuilder
from core.ledger.store import RoundupLedgerStore
from core.storage.queue_store import MarketQueueStore
from core.storage.transaction_store import TransactionStore
from core.types import LedgerStatus, QueueStatus
from worker.queue.executor import QueueExecutor
from worker.queue.stager import QueueStager

logger = logging.getLogger(__name__)


class SettlementService:
    """정산 서비스

    Args:
        db: SQLite 어댑터 (쓰기 작업은 쓰기 가능 연결 필요)
        settings: 애플리케이션 설정
        market_executor: 마켓 주문 협력자 (execute()에만 필요)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        settings: Settings,
        market_executor: IMarketExecutor | None = None,
    ):
        self.db = db
        self.settings = settings
        self.market_executor = market_executor

        self.transaction_store = TransactionStore(db)
        self.ledger_store = RoundupLedgerStore(db)
        self.queue_store = MarketQueueStore(db)
        self.builder = RoundupEntryBuilder(
            fee_schedule=settings.fee_schedule,
            whole_dollar_amount=settings.whole_dollar_round_up,
            ledger_store=self.ledger_store,
            transaction_store=self.transaction_store,
        )

    # -------------------------------------------------------------------------
    # 원장
    # -------------------------------------------------------------------------

    async def record_roundup(
        self,
        transaction_id: int,
        whole_dollar_amount: Decimal | None = None,
    ) -> RoundupLedgerEntry:
        """거래 하나의 라운드업 원장 항목 기록

        whole_dollar_amount는 사용자 본인의 라운드업 설정 (없으면 설정 파일 값)
        """
        entry = await self.builder.record(transaction_id, whole_dollar_amount)
        logger.info(
            "라운드업 기록",
            extra={
                "transaction_id": transaction_id,
                "entry_id": entry.id,
                "round_up": str(entry.round_up_amount),
            },
        )
        return entry

    async def adjust_entry(
        self,
        entry_id: int,
        round_up_amount: Decimal,
        fee_amount: Decimal,
    ) -> RoundupLedgerEntry:
        """운영자 원장 금액 정정 (swept 항목은 ImmutableEntryError)"""
        return await self.ledger_store.adjust_amounts(entry_id, round_up_amount, fee_amount)

    async def entry_for_transaction(self, transaction_id: int) -> RoundupLedgerEntry:
        entry = await self.ledger_store.get_by_transaction(transaction_id)
        if entry is None:
            raise NotFound("RoundupLedgerEntry", f"transaction={transaction_id}")
        return entry

    async def list_ledger(
        self,
        limit: int,
        offset: int = 0,
        status: LedgerStatus | None = None,
    ) -> tuple[list[RoundupLedgerEntry], int]:
        return await self.ledger_store.list_page(limit, offset, status)

    # -------------------------------------------------------------------------
    # 마켓 큐
    # -------------------------------------------------------------------------

    async def stage(self, limit: int | None = None) -> BatchResult:
        """스테이징 대상 거래 전체 큐잉"""
        stager = QueueStager(
            self.transaction_store,
            self.queue_store,
            self.builder,
            batch_timeout=self.settings.worker.batch_timeout_seconds,
        )
        return await stager.stage_eligible(limit)

    async def execute(self, limit: int | None = None) -> BatchResult:
        """pending 큐 항목 전체 실행"""
        if self.market_executor is None:
            raise RuntimeError("execute()에는 market_executor가 필요합니다")

        executor = QueueExecutor(
            self.queue_store,
            self.market_executor,
            execution_timeout=self.settings.worker.execution_timeout_seconds,
            batch_timeout=self.settings.worker.batch_timeout_seconds,
            batch_size=limit,
        )
        return await executor.execute_all()

    async def enqueue(
        self,
        user_id: int,
        ticker: str,
        amount: Decimal,
        transaction_id: int | None = None,
    ) -> MarketQueueItem:
        """운영자 수동 주문 큐잉 (거래 스테이징을 거치지 않음)"""
        if transaction_id is not None:
            await self.transaction_store.require(transaction_id)

        item = await self.queue_store.enqueue(user_id, ticker, amount, transaction_id)
        logger.info(
            "수동 큐잉",
            extra={
                "queue_item_id": item.id,
                "user_id": user_id,
                "ticker": ticker,
                "amount": str(amount),
            },
        )
        return item

    async def requeue(self, item_id: int) -> MarketQueueItem:
        """processing에 멈춘 항목을 pending으로 되돌림 (운영자)"""
        return await self.queue_store.requeue(item_id)

    async def list_queue(
        self,
        limit: int,
        offset: int = 0,
        status: QueueStatus | None = None,
    ) -> tuple[list[MarketQueueItem], int, dict[str, int]]:
        """큐 항목 페이지 + 상태별 개수"""
        items, total = await self.queue_store.list_page(limit, offset, status)
        counts = await self.queue_store.count_by_status()
        return items, total, counts
