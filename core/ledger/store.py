"""
라운드업 원장 저장소

RoundupLedgerEntry 기록/조회 및 운영자 금액 정정.
상태 전이(allocated/swept/failed)는 마켓 큐 저장소가 큐 항목과 같은 트랜잭션에서 수행한다.
swept 항목은 DB 트리거로 수정/삭제가 차단되며 ImmutableEntryError로 변환된다.
"""

import logging
from decimal import Decimal

import aiosqlite

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import DuplicateEntry, ImmutableEntryError, NotFound
from core.domain.models import RoundupLedgerEntry, Transaction
from core.ledger.roundup import RoundupQuote
from core.types import LedgerStatus
from core.utils.timezone import isoformat_utc, now_utc

logger = logging.getLogger(__name__)

LEDGER_COLUMNS: tuple[str, ...] = (
    "id", "transaction_id", "user_id", "round_up_amount", "fee_amount",
    "status", "swept_at", "created_at",
)

_SELECT = f"SELECT {', '.join(LEDGER_COLUMNS)} FROM roundup_ledger"


def row_to_entry(row: tuple) -> RoundupLedgerEntry:
    return RoundupLedgerEntry.from_dict(dict(zip(LEDGER_COLUMNS, row)))


def _is_immutable_violation(error: Exception) -> bool:
    return "immutable" in str(error)


class RoundupLedgerStore:
    """라운드업 원장 저장소

    Args:
        adapter: SQLite 어댑터

    사용 예시:
    ```python
    store = RoundupLedgerStore(adapter)
    entry = await store.record_for_transaction(txn, quote)
    page = await store.list_page(limit=50, offset=0)
    ```
    """

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    async def record_for_transaction(
        self,
        transaction: Transaction,
        quote: RoundupQuote,
    ) -> RoundupLedgerEntry:
        """거래에 대한 원장 항목 기록

        한 트랜잭션 안에서 거래의 round_up/fee를 갱신하고
        pending 원장 항목을 생성한다.

        Raises:
            DuplicateEntry: 해당 거래의 원장 항목이 이미 존재
        """
        now = isoformat_utc(now_utc())

        try:
            async with self.adapter.transaction() as conn:
                await conn.execute(
                    """
                    UPDATE transactions SET round_up = ?, fee = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (str(quote.round_up_amount), str(quote.fee_amount), now, transaction.id),
                )
                cursor = await conn.execute(
                    """
                    INSERT INTO roundup_ledger (
                        transaction_id, user_id, round_up_amount, fee_amount,
                        status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        transaction.id,
                        transaction.user_id,
                        str(quote.round_up_amount),
                        str(quote.fee_amount),
                        LedgerStatus.PENDING.value,
                        now,
                    ),
                )
                entry_id = cursor.lastrowid
        except aiosqlite.IntegrityError as e:
            raise DuplicateEntry(transaction.id) from e

        logger.info(
            "라운드업 원장 기록",
            extra={
                "entry_id": entry_id,
                "transaction_id": transaction.id,
                "round_up_amount": str(quote.round_up_amount),
                "fee_amount": str(quote.fee_amount),
            },
        )
        return await self.require(entry_id)

    async def get(self, entry_id: int) -> RoundupLedgerEntry | None:
        row = await self.adapter.fetchone(f"{_SELECT} WHERE id = ?", (entry_id,))
        return row_to_entry(row) if row else None

    async def require(self, entry_id: int) -> RoundupLedgerEntry:
        entry = await self.get(entry_id)
        if entry is None:
            raise NotFound("RoundupLedgerEntry", entry_id)
        return entry

    async def get_by_transaction(self, transaction_id: int) -> RoundupLedgerEntry | None:
        """거래 ID로 원장 항목 조회"""
        row = await self.adapter.fetchone(
            f"{_SELECT} WHERE transaction_id = ?", (transaction_id,)
        )
        return row_to_entry(row) if row else None

    async def list_page(
        self,
        limit: int,
        offset: int = 0,
        status: LedgerStatus | None = None,
    ) -> tuple[list[RoundupLedgerEntry], int]:
        """원장 항목 페이지 조회

        Returns:
            (항목 목록, 전체 개수)
        """
        where = ""
        params: tuple = ()
        if status is not None:
            where = " WHERE status = ?"
            params = (status.value,)

        total_row = await self.adapter.fetchone(
            f"SELECT COUNT(*) FROM roundup_ledger{where}", params
        )
        rows = await self.adapter.fetchall(
            f"{_SELECT}{where} ORDER BY id ASC LIMIT ? OFFSET ?",
            params + (limit, offset),
        )
        return [row_to_entry(row) for row in rows], total_row[0] if total_row else 0

    async def adjust_amounts(
        self,
        entry_id: int,
        round_up_amount: Decimal,
        fee_amount: Decimal,
    ) -> RoundupLedgerEntry:
        """운영자 금액 정정 (swept 이전 항목만)

        Raises:
            NotFound: 항목 없음
            InvalidAmount: 음수 금액
            ImmutableEntryError: swept 항목
        """
        current = await self.require(entry_id)
        if current.is_swept:
            raise ImmutableEntryError(f"원장 항목 {entry_id}는 swept 상태라 변경할 수 없습니다")

        # 음수 검증은 레코드 생성 규칙을 재사용
        RoundupLedgerEntry(
            id=current.id,
            transaction_id=current.transaction_id,
            user_id=current.user_id,
            round_up_amount=round_up_amount,
            fee_amount=fee_amount,
        )

        try:
            await self.adapter.execute(
                "UPDATE roundup_ledger SET round_up_amount = ?, fee_amount = ? WHERE id = ?",
                (str(round_up_amount), str(fee_amount), entry_id),
            )
            await self.adapter.commit()
        except aiosqlite.IntegrityError as e:
            await self.adapter.rollback()
            if _is_immutable_violation(e):
                raise ImmutableEntryError(
                    f"원장 항목 {entry_id}는 swept 상태라 변경할 수 없습니다"
                ) from e
            raise

        logger.warning(
            "원장 금액 정정",
            extra={
                "entry_id": entry_id,
                "round_up_amount": str(round_up_amount),
                "fee_amount": str(fee_amount),
            },
        )
        return await self.require(entry_id)

    async def list_fees(self) -> list[tuple[int, Decimal]]:
        """(user_id, fee_amount) 목록"""
        rows = await self.adapter.fetchall(
            "SELECT user_id, fee_amount FROM roundup_ledger ORDER BY id"
        )
        return [(row[0], Decimal(row[1])) for row in rows]
