"""
Transaction Store

구매 거래 조회 및 상태 관리.
거래 생성(수집)은 외부 영역이며, 여기서는 테스트/운영 도구용 insert만 제공.
"""

import logging
from datetime import datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import NotFound
from core.domain.models import Transaction
from core.domain.state_machines import TransactionStateMachine
from core.types import TransactionStatus
from core.utils.timezone import isoformat_utc, now_utc

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS: tuple[str, ...] = (
    "id", "user_id", "merchant", "amount", "round_up", "fee",
    "ticker", "status", "created_at", "updated_at",
)

_SELECT = f"SELECT {', '.join(TRANSACTION_COLUMNS)} FROM transactions"


def row_to_transaction(row: tuple) -> Transaction:
    return Transaction.from_dict(dict(zip(TRANSACTION_COLUMNS, row)))


class TransactionStore:
    """구매 거래 저장소

    Args:
        adapter: SQLite 어댑터

    사용 예시:
    ```python
    store = TransactionStore(adapter)
    txn = await store.insert(user_id=1, merchant="Cafe", amount=Decimal("4.35"), ticker="VTI")
    stageable = await store.list_stageable()
    ```
    """

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    async def insert(
        self,
        user_id: int,
        merchant: str,
        amount: Decimal | None,
        ticker: str | None = None,
        status: TransactionStatus = TransactionStatus.PENDING,
        round_up: Decimal | None = None,
        fee: Decimal | None = None,
        created_at: datetime | None = None,
    ) -> Transaction:
        """거래 저장

        Returns:
            id가 채워진 Transaction
        """
        ts = isoformat_utc(created_at or now_utc())

        cursor = await self.adapter.execute(
            """
            INSERT INTO transactions (
                user_id, merchant, amount, round_up, fee, ticker, status,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                merchant,
                str(amount) if amount is not None else None,
                str(round_up) if round_up is not None else None,
                str(fee) if fee is not None else None,
                ticker,
                status.value,
                ts,
                ts,
            ),
        )
        await self.adapter.commit()

        transaction_id = cursor.lastrowid
        logger.debug(
            "Transaction inserted",
            extra={"transaction_id": transaction_id, "user_id": user_id},
        )
        return await self.require(transaction_id)

    async def get(self, transaction_id: int) -> Transaction | None:
        """ID로 거래 조회"""
        row = await self.adapter.fetchone(f"{_SELECT} WHERE id = ?", (transaction_id,))
        return row_to_transaction(row) if row else None

    async def require(self, transaction_id: int) -> Transaction:
        """ID로 거래 조회 (없으면 NotFound)"""
        transaction = await self.get(transaction_id)
        if transaction is None:
            raise NotFound("Transaction", transaction_id)
        return transaction

    async def list_stageable(self, limit: int | None = None) -> list[Transaction]:
        """스테이징 대상 거래 조회 (종목 매핑 + pending)

        생성 시각, id 순으로 정렬하여 처리 순서를 결정적으로 유지.
        """
        sql = f"""
            {_SELECT}
            WHERE ticker IS NOT NULL AND status = ?
            ORDER BY created_at ASC, id ASC
        """
        params: tuple = (TransactionStatus.PENDING.value,)
        if limit is not None:
            sql += " LIMIT ?"
            params = params + (limit,)

        rows = await self.adapter.fetchall(sql, params)
        return [row_to_transaction(row) for row in rows]

    async def transition(
        self,
        transaction_id: int,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
    ) -> bool:
        """상태 전이 (CAS)

        Returns:
            True: 전이됨, False: 현재 상태가 from_status가 아님

        Raises:
            StateMachineError: 허용되지 않은 전이
        """
        TransactionStateMachine.check(from_status, to_status)

        cursor = await self.adapter.execute(
            """
            UPDATE transactions SET status = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (to_status.value, isoformat_utc(now_utc()), transaction_id, from_status.value),
        )
        await self.adapter.commit()
        return cursor.rowcount > 0

    async def list_fees(self) -> list[tuple[int, Decimal]]:
        """(user_id, fee) 목록 (수수료가 기록된 거래만)"""
        rows = await self.adapter.fetchall(
            "SELECT user_id, fee FROM transactions WHERE fee IS NOT NULL ORDER BY id"
        )
        return [(row[0], Decimal(row[1])) for row in rows]
