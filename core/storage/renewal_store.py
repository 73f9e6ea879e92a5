"""
Renewal Store

갱신 큐(renewal_queue)와 갱신 이력(renewal_history) 관리.

- 큐 항목 클레임은 claimed_at 리스(lease) CAS로 수행
- 성공/실패 반영은 이력 추가·구독 갱신과 한 트랜잭션
- 이력은 append-only (DB 트리거로 UPDATE/DELETE 차단)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

import aiosqlite

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import NotFound
from core.domain.models import RenewalHistoryItem, RenewalQueueItem, Subscription
from core.domain.state_machines import RenewalStateMachine, StateMachineError
from core.storage.subscription_store import advance_period
from core.types import RenewalResult, RenewalStatus, SubscriptionStatus
from core.utils.timezone import isoformat_utc, now_utc

logger = logging.getLogger(__name__)

RENEWAL_COLUMNS: tuple[str, ...] = (
    "id", "subscription_id", "scheduled_date", "status", "attempt_count",
    "error_message", "next_attempt_at", "claimed_at", "created_at",
)

HISTORY_COLUMNS: tuple[str, ...] = (
    "id", "subscription_id", "renewal_date", "amount", "status",
    "payment_method", "error_message", "created_at",
)

_SELECT = f"SELECT {', '.join(RENEWAL_COLUMNS)} FROM renewal_queue"
_SELECT_HISTORY = f"SELECT {', '.join(HISTORY_COLUMNS)} FROM renewal_history"

OPEN_STATUSES: tuple[str, ...] = (RenewalStatus.SCHEDULED.value, RenewalStatus.RETRYING.value)


def row_to_renewal(row: tuple) -> RenewalQueueItem:
    return RenewalQueueItem.from_dict(dict(zip(RENEWAL_COLUMNS, row)))


def row_to_history(row: tuple) -> RenewalHistoryItem:
    return RenewalHistoryItem.from_dict(dict(zip(HISTORY_COLUMNS, row)))


@dataclass(frozen=True)
class RenewalSuccess:
    """성공 반영 결과"""

    history_id: int
    next_billing_date: date
    next_item_id: int | None


class RenewalStore:
    """갱신 큐/이력 저장소

    Args:
        adapter: SQLite 어댑터

    사용 예시:
    ```python
    store = RenewalStore(adapter)
    item = await store.schedule(subscription.id, subscription.next_billing_date)

    for due in await store.list_due(now_utc()):
        claimed = await store.claim(due.id, now_utc(), lease_seconds=300)
        if claimed:
            ...
    ```
    """

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    # -------------------------------------------------------------------------
    # 큐
    # -------------------------------------------------------------------------

    async def schedule(self, subscription_id: int, scheduled_date: date) -> RenewalQueueItem:
        """갱신 예약 (구독당 미종료 항목 1개, 멱등)

        이미 미종료 항목이 있으면 그 항목을 반환한다.
        """
        cursor = await self.adapter.execute(
            """
            INSERT OR IGNORE INTO renewal_queue (
                subscription_id, scheduled_date, status, attempt_count, created_at
            ) VALUES (?, ?, ?, 0, ?)
            """,
            (
                subscription_id,
                scheduled_date.isoformat(),
                RenewalStatus.SCHEDULED.value,
                isoformat_utc(now_utc()),
            ),
        )
        await self.adapter.commit()

        if cursor.rowcount > 0:
            logger.info(
                "갱신 예약",
                extra={"subscription_id": subscription_id, "scheduled_date": str(scheduled_date)},
            )
            return await self.require(cursor.lastrowid)

        existing = await self.get_open_for_subscription(subscription_id)
        if existing is None:
            raise NotFound("RenewalQueueItem", subscription_id)
        return existing

    async def get(self, item_id: int) -> RenewalQueueItem | None:
        row = await self.adapter.fetchone(f"{_SELECT} WHERE id = ?", (item_id,))
        return row_to_renewal(row) if row else None

    async def require(self, item_id: int) -> RenewalQueueItem:
        item = await self.get(item_id)
        if item is None:
            raise NotFound("RenewalQueueItem", item_id)
        return item

    async def get_open_for_subscription(self, subscription_id: int) -> RenewalQueueItem | None:
        """구독의 미종료(scheduled/retrying) 항목"""
        row = await self.adapter.fetchone(
            f"{_SELECT} WHERE subscription_id = ? AND status IN (?, ?)",
            (subscription_id, *OPEN_STATUSES),
        )
        return row_to_renewal(row) if row else None

    async def get_latest_for_subscription(self, subscription_id: int) -> RenewalQueueItem | None:
        """구독의 가장 최근 큐 항목 (상태 무관)"""
        row = await self.adapter.fetchone(
            f"{_SELECT} WHERE subscription_id = ? ORDER BY id DESC LIMIT 1",
            (subscription_id,),
        )
        return row_to_renewal(row) if row else None

    async def list_due(self, now: datetime, limit: int | None = None) -> list[RenewalQueueItem]:
        """실행 시점이 된 항목 조회

        조건: 미종료 + scheduled_date <= 오늘 + (next_attempt_at 없음 또는 <= now)
        """
        sql = f"""
            {_SELECT}
            WHERE status IN (?, ?)
              AND scheduled_date <= ?
              AND (next_attempt_at IS NULL OR next_attempt_at <= ?)
            ORDER BY scheduled_date ASC, id ASC
        """
        params: tuple = (*OPEN_STATUSES, now.date().isoformat(), isoformat_utc(now))
        if limit is not None:
            sql += " LIMIT ?"
            params = params + (limit,)

        rows = await self.adapter.fetchall(sql, params)
        return [row_to_renewal(row) for row in rows]

    async def list_open(self) -> list[RenewalQueueItem]:
        rows = await self.adapter.fetchall(
            f"{_SELECT} WHERE status IN (?, ?) ORDER BY id ASC", OPEN_STATUSES
        )
        return [row_to_renewal(row) for row in rows]

    async def claim(
        self,
        item_id: int,
        now: datetime,
        lease_seconds: int,
    ) -> RenewalQueueItem | None:
        """리스 기반 클레임 (CAS)

        claimed_at이 비어 있거나 리스가 만료된 미종료 항목만 클레임.

        Returns:
            클레임된 항목 (claimed_at 포함) 또는 None (선점됨/종료됨)
        """
        claimed_at = isoformat_utc(now)
        expired_before = isoformat_utc(now - timedelta(seconds=lease_seconds))

        cursor = await self.adapter.execute(
            """
            UPDATE renewal_queue SET claimed_at = ?
            WHERE id = ? AND status IN (?, ?)
              AND (claimed_at IS NULL OR claimed_at < ?)
            """,
            (claimed_at, item_id, *OPEN_STATUSES, expired_before),
        )
        await self.adapter.commit()

        if cursor.rowcount == 0:
            return None
        return await self.require(item_id)

    async def record_success(
        self,
        item: RenewalQueueItem,
        subscription: Subscription,
        now: datetime,
    ) -> RenewalSuccess:
        """결제 성공 반영

        한 트랜잭션 안에서:
        1. success 이력 추가
        2. 구독 기간 1주기 전진, renewal_attempts 초기화
        3. 큐 항목 삭제 (클레임 보유 시에만)
        4. auto_renewal이면 다음 주기 예약

        Raises:
            TerminalStateError: 이미 종료된 항목
            StateMachineError: 클레임을 잃은 경우
        """
        RenewalStateMachine.check(item.status, RenewalStatus.SUCCEEDED)

        period_start = subscription.current_period_end or item.scheduled_date
        period_end = advance_period(period_start, subscription.billing_cycle)
        ts = isoformat_utc(now)
        next_item_id: int | None = None

        async with self.adapter.transaction() as conn:
            cursor = await conn.execute(
                """
                DELETE FROM renewal_queue
                WHERE id = ? AND attempt_count = ? AND claimed_at IS ?
                """,
                (item.id, item.attempt_count, isoformat_utc(item.claimed_at)),
            )
            if cursor.rowcount == 0:
                raise StateMachineError(f"갱신 항목 {item.id}의 클레임을 잃었습니다")

            history_id = await self._insert_history(
                conn,
                subscription_id=subscription.id,
                renewal_date=now.date(),
                amount=subscription.amount,
                status=RenewalResult.SUCCESS,
                payment_method=subscription.payment_method_id,
                error_message=None,
                created_at=ts,
            )

            await conn.execute(
                """
                UPDATE user_subscriptions
                SET current_period_start = ?, current_period_end = ?, next_billing_date = ?,
                    renewal_attempts = 0, last_renewal_attempt = ?, status = ?
                WHERE id = ?
                """,
                (
                    period_start.isoformat(),
                    period_end.isoformat(),
                    period_end.isoformat(),
                    ts,
                    SubscriptionStatus.ACTIVE.value,
                    subscription.id,
                ),
            )

            if subscription.auto_renewal:
                cursor = await conn.execute(
                    """
                    INSERT INTO renewal_queue (
                        subscription_id, scheduled_date, status, attempt_count, created_at
                    ) VALUES (?, ?, ?, 0, ?)
                    """,
                    (subscription.id, period_end.isoformat(), RenewalStatus.SCHEDULED.value, ts),
                )
                next_item_id = cursor.lastrowid

        return RenewalSuccess(
            history_id=history_id,
            next_billing_date=period_end,
            next_item_id=next_item_id,
        )

    async def record_failure(
        self,
        item: RenewalQueueItem,
        subscription: Subscription,
        error_message: str,
        exhausted: bool,
        next_attempt_at: datetime | None,
        now: datetime,
    ) -> tuple[RenewalQueueItem, int]:
        """결제 실패 반영

        attempt_count += 1, error_message 기록, 리스 해제.
        exhausted이면 상태를 exhausted로, 구독을 past_due로 변경.
        매 실패마다 failed 이력을 추가한다.

        Returns:
            (갱신된 큐 항목, 이력 ID)

        Raises:
            TerminalStateError: 이미 종료된 항목
            StateMachineError: 클레임을 잃은 경우
        """
        target = RenewalStatus.EXHAUSTED if exhausted else RenewalStatus.RETRYING
        RenewalStateMachine.check(item.status, target)

        attempts = item.attempt_count + 1
        ts = isoformat_utc(now)

        async with self.adapter.transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE renewal_queue
                SET status = ?, attempt_count = ?, error_message = ?,
                    next_attempt_at = ?, claimed_at = NULL
                WHERE id = ? AND attempt_count = ? AND claimed_at IS ?
                """,
                (
                    target.value,
                    attempts,
                    error_message,
                    None if exhausted else isoformat_utc(next_attempt_at),
                    item.id,
                    item.attempt_count,
                    isoformat_utc(item.claimed_at),
                ),
            )
            if cursor.rowcount == 0:
                raise StateMachineError(f"갱신 항목 {item.id}의 클레임을 잃었습니다")

            history_id = await self._insert_history(
                conn,
                subscription_id=subscription.id,
                renewal_date=now.date(),
                amount=subscription.amount,
                status=RenewalResult.FAILED,
                payment_method=subscription.payment_method_id,
                error_message=error_message,
                created_at=ts,
            )

            await conn.execute(
                """
                UPDATE user_subscriptions
                SET renewal_attempts = ?, last_renewal_attempt = ?,
                    status = CASE WHEN ? THEN ? ELSE status END
                WHERE id = ?
                """,
                (
                    attempts,
                    ts,
                    1 if exhausted else 0,
                    SubscriptionStatus.PAST_DUE.value,
                    subscription.id,
                ),
            )

        return await self.require(item.id), history_id

    # -------------------------------------------------------------------------
    # 이력
    # -------------------------------------------------------------------------

    async def _insert_history(
        self,
        conn: aiosqlite.Connection,
        subscription_id: int,
        renewal_date: date,
        amount: Decimal,
        status: RenewalResult,
        payment_method: str | None,
        error_message: str | None,
        created_at: str,
    ) -> int:
        cursor = await conn.execute(
            """
            INSERT INTO renewal_history (
                subscription_id, renewal_date, amount, status,
                payment_method, error_message, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                subscription_id,
                renewal_date.isoformat(),
                str(amount),
                status.value,
                payment_method,
                error_message,
                created_at,
            ),
        )
        return cursor.lastrowid

    async def list_history(
        self,
        subscription_id: int | None = None,
        status: RenewalResult | None = None,
    ) -> list[RenewalHistoryItem]:
        """이력 조회 (id 순)"""
        clauses: list[str] = []
        params: list = []
        if subscription_id is not None:
            clauses.append("subscription_id = ?")
            params.append(subscription_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)

        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self.adapter.fetchall(
            f"{_SELECT_HISTORY}{where} ORDER BY id ASC", tuple(params)
        )
        return [row_to_history(row) for row in rows]

    async def list_history_page(
        self,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[RenewalHistoryItem], int]:
        """이력 페이지 조회 (최신순)"""
        total_row = await self.adapter.fetchone("SELECT COUNT(*) FROM renewal_history")
        rows = await self.adapter.fetchall(
            f"{_SELECT_HISTORY} ORDER BY id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [row_to_history(row) for row in rows], total_row[0] if total_row else 0
