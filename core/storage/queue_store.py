"""
Market Queue Store

마켓 큐 항목 저장 및 상태 관리.

모든 상태 변경은 `WHERE id = ? AND status = ?` 형태의 CAS로 수행하며,
rowcount == 0이면 다른 세션이 먼저 전이한 것으로 본다.
스테이징/체결 결과 반영은 거래·원장 항목과 한 트랜잭션으로 묶는다.
"""

import logging
from decimal import Decimal

import aiosqlite

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import DuplicateStaging, InvalidAmount, NotFound
from core.domain.models import MarketQueueItem, Transaction
from core.domain.state_machines import MarketQueueStateMachine, TerminalStateError
from core.types import LedgerStatus, QueueStatus, TransactionStatus
from core.utils.timezone import isoformat_utc, now_utc

logger = logging.getLogger(__name__)

QUEUE_COLUMNS: tuple[str, ...] = (
    "id", "transaction_id", "user_id", "ticker", "amount", "status",
    "created_at", "processed_at", "error_reason", "order_ref",
)

_SELECT = f"SELECT {', '.join(QUEUE_COLUMNS)} FROM market_queue"


def row_to_item(row: tuple) -> MarketQueueItem:
    return MarketQueueItem.from_dict(dict(zip(QUEUE_COLUMNS, row)))


class MarketQueueStore:
    """마켓 큐 저장소

    Args:
        adapter: SQLite 어댑터

    사용 예시:
    ```python
    store = MarketQueueStore(adapter)

    item = await store.stage_transaction(txn)

    for item in await store.list_by_status(QueueStatus.PENDING):
        if await store.claim(item.id):
            # 실행...
            await store.mark_completed(item.id, order_ref="ord-1")
    ```
    """

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    # -------------------------------------------------------------------------
    # 스테이징
    # -------------------------------------------------------------------------

    async def stage_transaction(self, transaction: Transaction) -> MarketQueueItem:
        """거래를 마켓 큐에 스테이징

        한 트랜잭션 안에서:
        1. 큐 항목 삽입 (미종료 항목이 있으면 부분 유니크 인덱스로 무시)
        2. 거래 pending → mapped
        3. 원장 항목 pending → allocated (있는 경우)

        Raises:
            InvalidAmount: 거래의 round_up이 없거나 음수
            DuplicateStaging: 이미 미종료 큐 항목이 있거나 거래가 pending이 아님
        """
        if transaction.ticker is None:
            raise InvalidAmount(f"거래 {transaction.id}에 종목이 매핑되지 않았습니다")
        if transaction.round_up is None or transaction.round_up < 0:
            raise InvalidAmount(
                f"거래 {transaction.id}의 라운드업 금액이 유효하지 않습니다: {transaction.round_up}"
            )

        now = isoformat_utc(now_utc())

        async with self.adapter.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO market_queue (
                    transaction_id, user_id, ticker, amount, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    transaction.id,
                    transaction.user_id,
                    transaction.ticker,
                    str(transaction.round_up),
                    QueueStatus.PENDING.value,
                    now,
                ),
            )
            if cursor.rowcount == 0:
                raise DuplicateStaging(transaction.id)
            item_id = cursor.lastrowid

            cursor = await conn.execute(
                """
                UPDATE transactions SET status = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    TransactionStatus.MAPPED.value,
                    now,
                    transaction.id,
                    TransactionStatus.PENDING.value,
                ),
            )
            if cursor.rowcount == 0:
                # 다른 세션이 먼저 스테이징 → 삽입 롤백
                raise DuplicateStaging(transaction.id)

            await conn.execute(
                """
                UPDATE roundup_ledger SET status = ?
                WHERE transaction_id = ? AND status = ?
                """,
                (LedgerStatus.ALLOCATED.value, transaction.id, LedgerStatus.PENDING.value),
            )

        logger.info(
            "큐 스테이징",
            extra={
                "queue_item_id": item_id,
                "transaction_id": transaction.id,
                "ticker": transaction.ticker,
                "amount": str(transaction.round_up),
            },
        )
        return await self.require(item_id)

    async def enqueue(
        self,
        user_id: int,
        ticker: str,
        amount: Decimal,
        transaction_id: int | None = None,
    ) -> MarketQueueItem:
        """큐 항목 직접 삽입 (거래 없이 수동 주문 등)

        Raises:
            InvalidAmount: 음수 금액
            DuplicateStaging: 동일 거래의 미종료 항목 존재
        """
        if amount < 0:
            raise InvalidAmount(f"큐 항목 금액은 음수일 수 없습니다: {amount}")

        try:
            cursor = await self.adapter.execute(
                """
                INSERT INTO market_queue (
                    transaction_id, user_id, ticker, amount, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    transaction_id,
                    user_id,
                    ticker,
                    str(amount),
                    QueueStatus.PENDING.value,
                    isoformat_utc(now_utc()),
                ),
            )
            await self.adapter.commit()
        except aiosqlite.IntegrityError as e:
            await self.adapter.rollback()
            raise DuplicateStaging(transaction_id or 0) from e

        return await self.require(cursor.lastrowid)

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get(self, item_id: int) -> MarketQueueItem | None:
        row = await self.adapter.fetchone(f"{_SELECT} WHERE id = ?", (item_id,))
        return row_to_item(row) if row else None

    async def require(self, item_id: int) -> MarketQueueItem:
        item = await self.get(item_id)
        if item is None:
            raise NotFound("MarketQueueItem", item_id)
        return item

    async def list_by_status(
        self,
        status: QueueStatus,
        limit: int | None = None,
    ) -> list[MarketQueueItem]:
        """상태별 조회 (created_at, id 순)"""
        sql = f"{_SELECT} WHERE status = ? ORDER BY created_at ASC, id ASC"
        params: tuple = (status.value,)
        if limit is not None:
            sql += " LIMIT ?"
            params = params + (limit,)

        rows = await self.adapter.fetchall(sql, params)
        return [row_to_item(row) for row in rows]

    async def list_page(
        self,
        limit: int,
        offset: int = 0,
        status: QueueStatus | None = None,
    ) -> tuple[list[MarketQueueItem], int]:
        """큐 항목 페이지 조회

        Returns:
            (항목 목록, 전체 개수)
        """
        where = ""
        params: tuple = ()
        if status is not None:
            where = " WHERE status = ?"
            params = (status.value,)

        total_row = await self.adapter.fetchone(
            f"SELECT COUNT(*) FROM market_queue{where}", params
        )
        rows = await self.adapter.fetchall(
            f"{_SELECT}{where} ORDER BY created_at ASC, id ASC LIMIT ? OFFSET ?",
            params + (limit, offset),
        )
        return [row_to_item(row) for row in rows], total_row[0] if total_row else 0

    async def count_by_status(self) -> dict[str, int]:
        """상태별 개수"""
        rows = await self.adapter.fetchall(
            "SELECT status, COUNT(*) FROM market_queue GROUP BY status"
        )
        counts = {status.value: 0 for status in QueueStatus}
        counts.update({row[0]: row[1] for row in rows})
        return counts

    # -------------------------------------------------------------------------
    # 상태 전이 (CAS)
    # -------------------------------------------------------------------------

    async def claim(self, item_id: int) -> bool:
        """pending → processing 클레임

        Returns:
            True: 이 세션이 클레임함
            False: 다른 세션이 먼저 클레임했거나 이미 처리됨
        """
        cursor = await self.adapter.execute(
            "UPDATE market_queue SET status = ? WHERE id = ? AND status = ?",
            (QueueStatus.PROCESSING.value, item_id, QueueStatus.PENDING.value),
        )
        await self.adapter.commit()

        claimed = cursor.rowcount > 0
        if not claimed:
            logger.debug(f"큐 항목 클레임 실패 (선점됨): {item_id}")
        return claimed

    async def mark_completed(self, item_id: int, order_ref: str | None = None) -> MarketQueueItem:
        """processing → completed

        거래 mapped → completed, 원장 항목 allocated → swept를 함께 반영.

        Raises:
            TerminalStateError: 이미 종료된 항목
            StateMachineError: processing이 아닌 항목
        """
        now = isoformat_utc(now_utc())

        async with self.adapter.transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE market_queue
                SET status = ?, processed_at = ?, order_ref = ?
                WHERE id = ? AND status = ?
                """,
                (QueueStatus.COMPLETED.value, now, order_ref, item_id, QueueStatus.PROCESSING.value),
            )
            if cursor.rowcount == 0:
                await self._raise_transition_error(conn, item_id, QueueStatus.COMPLETED)

            transaction_id = await self._transaction_id(conn, item_id)
            if transaction_id is not None:
                await conn.execute(
                    "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                    (
                        TransactionStatus.COMPLETED.value,
                        now,
                        transaction_id,
                        TransactionStatus.MAPPED.value,
                    ),
                )
                await conn.execute(
                    """
                    UPDATE roundup_ledger SET status = ?, swept_at = ?
                    WHERE transaction_id = ? AND status = ?
                    """,
                    (LedgerStatus.SWEPT.value, now, transaction_id, LedgerStatus.ALLOCATED.value),
                )

        return await self.require(item_id)

    async def mark_failed(self, item_id: int, reason: str) -> MarketQueueItem:
        """processing → failed (사유 필수)

        거래 mapped → failed, 원장 항목 allocated → failed를 함께 반영.

        Raises:
            TerminalStateError: 이미 종료된 항목
            StateMachineError: processing이 아닌 항목
        """
        if not reason:
            raise ValueError("실패 사유(error_reason)는 필수입니다")

        now = isoformat_utc(now_utc())

        async with self.adapter.transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE market_queue
                SET status = ?, processed_at = ?, error_reason = ?
                WHERE id = ? AND status = ?
                """,
                (QueueStatus.FAILED.value, now, reason, item_id, QueueStatus.PROCESSING.value),
            )
            if cursor.rowcount == 0:
                await self._raise_transition_error(conn, item_id, QueueStatus.FAILED)

            transaction_id = await self._transaction_id(conn, item_id)
            if transaction_id is not None:
                await conn.execute(
                    "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                    (
                        TransactionStatus.FAILED.value,
                        now,
                        transaction_id,
                        TransactionStatus.MAPPED.value,
                    ),
                )
                await conn.execute(
                    "UPDATE roundup_ledger SET status = ? WHERE transaction_id = ? AND status = ?",
                    (LedgerStatus.FAILED.value, transaction_id, LedgerStatus.ALLOCATED.value),
                )

        return await self.require(item_id)

    async def requeue(self, item_id: int) -> MarketQueueItem:
        """운영자 재큐잉: processing → pending

        크래시 등으로 processing에 멈춘 항목을 명시적으로 되돌린다.
        이미 pending이면 그대로 반환 (멱등).

        Raises:
            NotFound: 항목 없음
            TerminalStateError: completed/failed 항목
        """
        cursor = await self.adapter.execute(
            "UPDATE market_queue SET status = ? WHERE id = ? AND status = ?",
            (QueueStatus.PENDING.value, item_id, QueueStatus.PROCESSING.value),
        )
        await self.adapter.commit()

        item = await self.require(item_id)

        if cursor.rowcount > 0:
            logger.warning(
                "큐 항목 재큐잉 (운영자)",
                extra={"queue_item_id": item_id, "transaction_id": item.transaction_id},
            )
            return item

        if item.is_terminal:
            raise TerminalStateError(
                f"큐 항목 {item_id}는 이미 {item.status.value} 상태입니다"
            )
        return item

    async def _transaction_id(self, conn: aiosqlite.Connection, item_id: int) -> int | None:
        cursor = await conn.execute(
            "SELECT transaction_id FROM market_queue WHERE id = ?", (item_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def _raise_transition_error(
        self,
        conn: aiosqlite.Connection,
        item_id: int,
        target: QueueStatus,
    ) -> None:
        cursor = await conn.execute("SELECT status FROM market_queue WHERE id = ?", (item_id,))
        row = await cursor.fetchone()
        if row is None:
            raise NotFound("MarketQueueItem", item_id)

        # 현재 상태 기준으로 전이 검증 → 예외 발생
        MarketQueueStateMachine.check(row[0], target)
        raise TerminalStateError(f"큐 항목 {item_id}: {row[0]} → {target.value} 경합")
