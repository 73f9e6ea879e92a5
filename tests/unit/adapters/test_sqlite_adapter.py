"""
SQLiteAdapter 트랜잭션 테스트

취소/예외 시 롤백, 일시 오류 변환
"""

import asyncio

import aiosqlite
import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import TransientStoreError


INSERT_QUEUE_ROW = """
    INSERT INTO market_queue (user_id, ticker, amount, status, created_at)
    VALUES (1, 'VTI', '0.65', 'pending', '2026-02-01T09:00:00.000000+00:00')
"""


async def count_queue_rows(db: SQLiteAdapter) -> int:
    row = await db.fetchone("SELECT COUNT(*) FROM market_queue")
    return row[0]


class TestTransactionRollback:
    """transaction() 롤백"""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, db: SQLiteAdapter) -> None:
        async with db.transaction() as conn:
            await conn.execute(INSERT_QUEUE_ROW)

        assert await count_queue_rows(db) == 1

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, db: SQLiteAdapter) -> None:
        with pytest.raises(RuntimeError):
            async with db.transaction() as conn:
                await conn.execute(INSERT_QUEUE_ROW)
                raise RuntimeError("boom")

        await db.commit()
        assert await count_queue_rows(db) == 0

    @pytest.mark.asyncio
    async def test_rollback_on_cancel(self, db: SQLiteAdapter) -> None:
        """CancelledError도 롤백 → 이후 commit()이 절반 쓴 행을 저장하지 않음"""
        with pytest.raises(asyncio.CancelledError):
            async with db.transaction() as conn:
                await conn.execute(INSERT_QUEUE_ROW)
                raise asyncio.CancelledError()

        assert not db.in_transaction

        await db.commit()
        assert await count_queue_rows(db) == 0

    @pytest.mark.asyncio
    async def test_rollback_when_task_cancelled_mid_transaction(
        self, db: SQLiteAdapter
    ) -> None:
        """트랜잭션 도중 태스크가 취소되어도 삽입이 남지 않음"""
        inserted = asyncio.Event()

        async def write_then_block() -> None:
            async with db.transaction() as conn:
                await conn.execute(INSERT_QUEUE_ROW)
                inserted.set()
                await asyncio.Event().wait()

        task = asyncio.create_task(write_then_block())
        await inserted.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        await db.commit()
        assert await count_queue_rows(db) == 0

    @pytest.mark.asyncio
    async def test_rollback_on_wait_for_timeout(self, db: SQLiteAdapter) -> None:
        """wait_for 타임아웃으로 끊긴 트랜잭션도 롤백"""

        async def slow_write() -> None:
            async with db.transaction() as conn:
                await conn.execute(INSERT_QUEUE_ROW)
                await asyncio.sleep(10)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(slow_write(), timeout=0.05)

        await db.commit()
        assert await count_queue_rows(db) == 0


class TestTransientErrors:
    """일시 오류 변환"""

    @pytest.mark.asyncio
    async def test_locked_error_becomes_transient(self, db: SQLiteAdapter) -> None:
        with pytest.raises(TransientStoreError):
            async with db.transaction() as conn:
                await conn.execute(INSERT_QUEUE_ROW)
                raise aiosqlite.OperationalError("database is locked")

        await db.commit()
        assert await count_queue_rows(db) == 0
