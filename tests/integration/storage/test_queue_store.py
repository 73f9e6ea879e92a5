"""MarketQueueStore 통합 테스트"""

from decimal import Decimal

import aiosqlite
import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import AlreadyTerminal, DuplicateStaging, InvalidAmount, NotFound
from core.domain.state_machines import StateMachineError
from core.ledger.entry_builder import RoundupEntryBuilder
from core.ledger.store import RoundupLedgerStore
from core.storage.queue_store import MarketQueueStore
from core.storage.transaction_store import TransactionStore
from core.types import LedgerStatus, QueueStatus, TransactionStatus


@pytest.fixture
def recorded_transaction(make_transaction, entry_builder: RoundupEntryBuilder, transaction_store: TransactionStore):
    """원장 기록까지 끝난 거래 생성 헬퍼"""

    async def _make(amount: str = "4.35", ticker: str = "VTI"):
        txn = await make_transaction(amount, ticker=ticker)
        await entry_builder.record(txn.id)
        return await transaction_store.require(txn.id)

    return _make


class TestStageTransaction:
    """stage_transaction 테스트"""

    @pytest.mark.asyncio
    async def test_stage_moves_all_three(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
        transaction_store: TransactionStore,
        ledger_store: RoundupLedgerStore,
    ) -> None:
        """큐 항목 생성 + 거래 mapped + 원장 allocated"""
        txn = await recorded_transaction()

        item = await queue_store.stage_transaction(txn)

        assert item.status == QueueStatus.PENDING
        assert item.amount == Decimal("0.65")
        assert item.ticker == "VTI"
        assert item.processed_at is None
        assert (await transaction_store.require(txn.id)).status == TransactionStatus.MAPPED
        entry = await ledger_store.get_by_transaction(txn.id)
        assert entry.status == LedgerStatus.ALLOCATED

    @pytest.mark.asyncio
    async def test_duplicate_staging_rejected(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        """같은 거래를 다시 스테이징하면 DuplicateStaging, 항목은 1개"""
        txn = await recorded_transaction()
        await queue_store.stage_transaction(txn)

        with pytest.raises(DuplicateStaging):
            await queue_store.stage_transaction(txn)

        assert (await queue_store.list_page(100))[1] == 1

    @pytest.mark.asyncio
    async def test_missing_round_up_rejected(
        self,
        make_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        txn = await make_transaction("4.35")

        with pytest.raises(InvalidAmount):
            await queue_store.stage_transaction(txn)

    @pytest.mark.asyncio
    async def test_open_item_unique_index(
        self,
        db: SQLiteAdapter,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        """부분 유니크 인덱스: 거래당 미종료 항목 1개 (직접 INSERT도 차단)"""
        txn = await recorded_transaction()
        await queue_store.stage_transaction(txn)

        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute(
                """
                INSERT INTO market_queue (transaction_id, user_id, ticker, amount, status, created_at)
                VALUES (?, 1, 'VTI', '0.65', 'pending', '2026-01-01T00:00:00.000000+00:00')
                """,
                (txn.id,),
            )
        await db.rollback()


class TestClaimAndComplete:
    """클레임 / 완료 / 실패 테스트"""

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        """CAS 클레임은 한 번만 성공"""
        item = await queue_store.stage_transaction(await recorded_transaction())

        assert await queue_store.claim(item.id) is True
        assert await queue_store.claim(item.id) is False
        assert (await queue_store.require(item.id)).status == QueueStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_mark_completed_sweeps_ledger(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
        transaction_store: TransactionStore,
        ledger_store: RoundupLedgerStore,
    ) -> None:
        txn = await recorded_transaction()
        item = await queue_store.stage_transaction(txn)
        await queue_store.claim(item.id)

        done = await queue_store.mark_completed(item.id, order_ref="ord-1")

        assert done.status == QueueStatus.COMPLETED
        assert done.processed_at is not None
        assert done.order_ref == "ord-1"
        assert (await transaction_store.require(txn.id)).status == TransactionStatus.COMPLETED
        entry = await ledger_store.get_by_transaction(txn.id)
        assert entry.status == LedgerStatus.SWEPT
        assert entry.swept_at is not None

    @pytest.mark.asyncio
    async def test_mark_failed_records_reason(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
        transaction_store: TransactionStore,
        ledger_store: RoundupLedgerStore,
    ) -> None:
        txn = await recorded_transaction()
        item = await queue_store.stage_transaction(txn)
        await queue_store.claim(item.id)

        failed = await queue_store.mark_failed(item.id, "ticker halted")

        assert failed.status == QueueStatus.FAILED
        assert failed.error_reason == "ticker halted"
        assert failed.processed_at is not None
        assert (await transaction_store.require(txn.id)).status == TransactionStatus.FAILED
        assert (await ledger_store.get_by_transaction(txn.id)).status == LedgerStatus.FAILED

    @pytest.mark.asyncio
    async def test_mark_failed_requires_reason(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        item = await queue_store.stage_transaction(await recorded_transaction())
        await queue_store.claim(item.id)

        with pytest.raises(ValueError):
            await queue_store.mark_failed(item.id, "")

    @pytest.mark.asyncio
    async def test_complete_requires_processing(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        """pending 항목은 바로 완료할 수 없음"""
        item = await queue_store.stage_transaction(await recorded_transaction())

        with pytest.raises(StateMachineError):
            await queue_store.mark_completed(item.id)

    @pytest.mark.asyncio
    async def test_terminal_item_immutable(
        self,
        db: SQLiteAdapter,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        """completed 항목은 API/직접 UPDATE 모두 거부"""
        item = await queue_store.stage_transaction(await recorded_transaction())
        await queue_store.claim(item.id)
        await queue_store.mark_completed(item.id)

        with pytest.raises(AlreadyTerminal):
            await queue_store.mark_failed(item.id, "late rejection")

        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute("UPDATE market_queue SET amount = '9.99' WHERE id = ?", (item.id,))
        await db.rollback()

    @pytest.mark.asyncio
    async def test_restage_after_failure(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        """종료된 항목은 미종료 인덱스 대상이 아님 (수동 재주문 가능)"""
        txn = await recorded_transaction()
        item = await queue_store.stage_transaction(txn)
        await queue_store.claim(item.id)
        await queue_store.mark_failed(item.id, "rejected")

        retry = await queue_store.enqueue(
            user_id=txn.user_id, ticker="VTI", amount=Decimal("0.65"), transaction_id=txn.id
        )

        assert retry.id != item.id
        assert retry.status == QueueStatus.PENDING


class TestRequeue:
    """운영자 재큐잉 테스트"""

    @pytest.mark.asyncio
    async def test_requeue_processing(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        item = await queue_store.stage_transaction(await recorded_transaction())
        await queue_store.claim(item.id)

        requeued = await queue_store.requeue(item.id)

        assert requeued.status == QueueStatus.PENDING
        assert await queue_store.claim(item.id) is True

    @pytest.mark.asyncio
    async def test_requeue_pending_is_noop(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        item = await queue_store.stage_transaction(await recorded_transaction())

        assert (await queue_store.requeue(item.id)).status == QueueStatus.PENDING

    @pytest.mark.asyncio
    async def test_requeue_terminal_rejected(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        item = await queue_store.stage_transaction(await recorded_transaction())
        await queue_store.claim(item.id)
        await queue_store.mark_completed(item.id)

        with pytest.raises(AlreadyTerminal):
            await queue_store.requeue(item.id)

    @pytest.mark.asyncio
    async def test_requeue_unknown(self, queue_store: MarketQueueStore) -> None:
        with pytest.raises(NotFound):
            await queue_store.requeue(999)


class TestQueries:
    """조회 테스트"""

    @pytest.mark.asyncio
    async def test_page_and_counts(
        self,
        recorded_transaction,
        queue_store: MarketQueueStore,
    ) -> None:
        first = await queue_store.stage_transaction(await recorded_transaction("1.10"))
        await queue_store.stage_transaction(await recorded_transaction("2.20"))
        await queue_store.claim(first.id)

        items, total = await queue_store.list_page(limit=10, status=QueueStatus.PENDING)
        counts = await queue_store.count_by_status()

        assert total == 1
        assert len(items) == 1
        assert counts == {"pending": 1, "processing": 1, "completed": 0, "failed": 0}
