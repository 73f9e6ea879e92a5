"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
Worker와 Web이 동시에 접근 가능하도록 설정.

주의: SQLite alias로 time, count 사용 금지 (예약어)
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from core.constants import Paths
from core.domain.errors import TransientStoreError
from core.types import RunMode

logger = logging.getLogger(__name__)

# 재시도로 해소될 수 있는 OperationalError 메시지
TRANSIENT_MARKERS: tuple[str, ...] = (
    "database is locked",
    "database is busy",
    "disk i/o error",
    "unable to open database",
)


def is_transient(error: Exception) -> bool:
    """일시 오류 여부 (락/비지/I/O)"""
    if not isinstance(error, aiosqlite.OperationalError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def get_db_path(mode: RunMode | str) -> Path:
    """모드에 따른 DB 경로 반환

    Args:
        mode: 실행 모드 (PRODUCTION/SANDBOX)

    Returns:
        DB 파일 경로 (Path 타입)
    """
    if isinstance(mode, str):
        mode = RunMode(mode.lower())

    if mode == RunMode.PRODUCTION:
        return Paths.PROD_DB
    return Paths.SANDBOX_DB


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로 (":memory:" 허용)
        readonly: 읽기 전용 여부

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    if db_path_str != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)

    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션/스냅샷 컨텍스트 매니저 제공.
    일시적 OperationalError는 TransientStoreError로 변환한다.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (Web 조회용)

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction() as conn:
        await conn.execute("INSERT INTO ...")

    await adapter.close()
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """열린 트랜잭션 존재 여부"""
        return self._conn is not None and self._conn.in_transaction

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await create_connection(self.db_path, self.readonly)

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        return self._conn

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        conn = self._require_conn()

        try:
            if parameters:
                return await conn.execute(sql, parameters)
            return await conn.execute(sql)
        except aiosqlite.OperationalError as e:
            if is_transient(e):
                raise TransientStoreError(f"SQLite 일시 오류: {e}") from e
            raise

    async def executemany(
        self,
        sql: str,
        parameters: list[tuple[Any, ...]],
    ) -> aiosqlite.Cursor:
        """SQL 다중 실행"""
        conn = self._require_conn()
        return await conn.executemany(sql, parameters)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        cursor = await self.execute(sql, parameters)
        return list(await cursor.fetchall())

    async def commit(self) -> None:
        """커밋"""
        if self._conn is not None:
            await self._conn.commit()

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.
        태스크 취소(CancelledError)나 wait_for 타임아웃도 롤백한다.
        롤백 없이 빠져나가면 다음 commit()이 절반만 쓴 행을 저장한다.

        사용 예시:
        ```python
        async with adapter.transaction() as conn:
            await conn.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```
        """
        conn = self._require_conn()

        try:
            yield conn
            await conn.commit()
        except BaseException as e:
            await conn.rollback()
            if isinstance(e, Exception) and is_transient(e):
                raise TransientStoreError(f"SQLite 일시 오류: {e}") from e
            raise

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator["SQLiteAdapter"]:
        """읽기 스냅샷 컨텍스트 매니저

        하나의 읽기 트랜잭션 안에서 여러 SELECT를 실행하여
        부분 읽기 사이의 불일치를 방지한다 (WAL 스냅샷 격리).
        """
        conn = self._require_conn()

        if conn.in_transaction:
            await conn.commit()

        await self.execute("BEGIN")
        try:
            yield self
        finally:
            await conn.commit()

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블/인덱스/트리거 생성)

    금액은 TEXT(Decimal 문자열), 시각은 ISO-8601 UTC 문자열로 저장.

    Args:
        adapter: 연결된 SQLiteAdapter
    """
    # transactions
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS transactions (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id      INTEGER NOT NULL,
            merchant     TEXT NOT NULL DEFAULT '',
            amount       TEXT,
            round_up     TEXT,
            fee          TEXT,
            ticker       TEXT,
            status       TEXT NOT NULL DEFAULT 'pending'
                         CHECK (status IN ('pending', 'mapped', 'completed', 'failed')),
            created_at   TEXT NOT NULL,
            updated_at   TEXT NOT NULL
        )
    """)

    # roundup_ledger
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS roundup_ledger (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id   INTEGER UNIQUE REFERENCES transactions(id) ON DELETE SET NULL,
            user_id          INTEGER NOT NULL,
            round_up_amount  TEXT NOT NULL,
            fee_amount       TEXT NOT NULL,
            status           TEXT NOT NULL DEFAULT 'pending'
                             CHECK (status IN ('pending', 'allocated', 'swept', 'failed')),
            swept_at         TEXT,
            created_at       TEXT NOT NULL
        )
    """)

    # market_queue
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS market_queue (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id  INTEGER REFERENCES transactions(id) ON DELETE SET NULL,
            user_id         INTEGER NOT NULL,
            ticker          TEXT NOT NULL,
            amount          TEXT NOT NULL,
            status          TEXT NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
            created_at      TEXT NOT NULL,
            processed_at    TEXT,
            error_reason    TEXT,
            order_ref       TEXT,
            CHECK ((status IN ('completed', 'failed')) = (processed_at IS NOT NULL))
        )
    """)

    # user_subscriptions
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS user_subscriptions (
            id                    INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id               INTEGER NOT NULL,
            plan_id               TEXT NOT NULL,
            amount                TEXT NOT NULL,
            billing_cycle         TEXT NOT NULL DEFAULT 'monthly'
                                  CHECK (billing_cycle IN ('monthly', 'yearly')),
            status                TEXT NOT NULL DEFAULT 'active'
                                  CHECK (status IN ('active', 'past_due', 'cancelled')),
            current_period_start  TEXT,
            current_period_end    TEXT,
            next_billing_date     TEXT,
            auto_renewal          INTEGER NOT NULL DEFAULT 1,
            renewal_attempts      INTEGER NOT NULL DEFAULT 0,
            last_renewal_attempt  TEXT,
            payment_method_id     TEXT,
            created_at            TEXT NOT NULL
        )
    """)

    # renewal_queue
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS renewal_queue (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            subscription_id  INTEGER NOT NULL REFERENCES user_subscriptions(id) ON DELETE CASCADE,
            scheduled_date   TEXT NOT NULL,
            status           TEXT NOT NULL DEFAULT 'scheduled'
                             CHECK (status IN ('scheduled', 'retrying', 'succeeded', 'exhausted')),
            attempt_count    INTEGER NOT NULL DEFAULT 0 CHECK (attempt_count >= 0),
            error_message    TEXT,
            next_attempt_at  TEXT,
            claimed_at       TEXT,
            created_at       TEXT NOT NULL
        )
    """)

    # renewal_history
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS renewal_history (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            subscription_id  INTEGER NOT NULL,
            renewal_date     TEXT NOT NULL,
            amount           TEXT NOT NULL,
            status           TEXT NOT NULL CHECK (status IN ('success', 'failed')),
            payment_method   TEXT,
            error_message    TEXT,
            created_at       TEXT NOT NULL
        )
    """)

    # api_usage
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS api_usage (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id     INTEGER,
            service     TEXT NOT NULL,
            endpoint    TEXT,
            cost        TEXT NOT NULL DEFAULT '0',
            success     INTEGER NOT NULL DEFAULT 1,
            created_at  TEXT NOT NULL
        )
    """)

    # -------------------------------------------------------------------------
    # 인덱스
    # -------------------------------------------------------------------------

    await adapter.execute(
        "CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions(status, id)"
    )
    await adapter.execute(
        "CREATE INDEX IF NOT EXISTS idx_market_queue_status "
        "ON market_queue(status, created_at, id)"
    )
    # 거래당 미종료 큐 항목 최대 1개
    await adapter.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_market_queue_open_transaction
        ON market_queue(transaction_id)
        WHERE status IN ('pending', 'processing') AND transaction_id IS NOT NULL
    """)
    # 구독당 미종료 갱신 항목 최대 1개
    await adapter.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_renewal_queue_open_subscription
        ON renewal_queue(subscription_id)
        WHERE status IN ('scheduled', 'retrying')
    """)
    await adapter.execute(
        "CREATE INDEX IF NOT EXISTS idx_renewal_queue_due "
        "ON renewal_queue(status, scheduled_date, id)"
    )
    await adapter.execute(
        "CREATE INDEX IF NOT EXISTS idx_renewal_history_date "
        "ON renewal_history(renewal_date)"
    )

    # -------------------------------------------------------------------------
    # 트리거 (불변성 / 단조성)
    # -------------------------------------------------------------------------

    await adapter.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_roundup_ledger_swept_immutable
        BEFORE UPDATE ON roundup_ledger
        WHEN OLD.status = 'swept'
        BEGIN
            SELECT RAISE(ABORT, 'roundup_ledger entry is swept and immutable');
        END
    """)
    await adapter.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_roundup_ledger_swept_no_delete
        BEFORE DELETE ON roundup_ledger
        WHEN OLD.status = 'swept'
        BEGIN
            SELECT RAISE(ABORT, 'roundup_ledger entry is swept and immutable');
        END
    """)
    await adapter.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_market_queue_terminal
        BEFORE UPDATE ON market_queue
        WHEN OLD.status IN ('completed', 'failed')
        BEGIN
            SELECT RAISE(ABORT, 'market_queue item is terminal');
        END
    """)
    await adapter.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_renewal_queue_attempts_monotonic
        BEFORE UPDATE ON renewal_queue
        WHEN NEW.attempt_count < OLD.attempt_count
        BEGIN
            SELECT RAISE(ABORT, 'renewal_queue attempt_count must not decrease');
        END
    """)
    await adapter.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_renewal_history_append_only
        BEFORE UPDATE ON renewal_history
        BEGIN
            SELECT RAISE(ABORT, 'renewal_history is append-only');
        END
    """)
    await adapter.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_renewal_history_no_delete
        BEFORE DELETE ON renewal_history
        BEGIN
            SELECT RAISE(ABORT, 'renewal_history is append-only');
        END
    """)

    await adapter.commit()

    logger.info("스키마 초기화 완료")
