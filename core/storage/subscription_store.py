"""
Subscription Store

사용자 구독 조회/저장. 기간 갱신은 RenewalStore가 갱신 이력과 한 트랜잭션으로 처리.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import NotFound
from core.domain.models import Subscription
from core.types import BillingCycle, SubscriptionStatus
from core.utils.timezone import add_months, isoformat_utc, now_utc

logger = logging.getLogger(__name__)

SUBSCRIPTION_COLUMNS: tuple[str, ...] = (
    "id", "user_id", "plan_id", "amount", "billing_cycle", "status",
    "current_period_start", "current_period_end", "next_billing_date",
    "auto_renewal", "renewal_attempts", "last_renewal_attempt",
    "payment_method_id", "created_at",
)

_SELECT = f"SELECT {', '.join(SUBSCRIPTION_COLUMNS)} FROM user_subscriptions"


def row_to_subscription(row: tuple) -> Subscription:
    return Subscription.from_dict(dict(zip(SUBSCRIPTION_COLUMNS, row)))


def advance_period(day: date, cycle: BillingCycle) -> date:
    """결제 주기만큼 날짜 이동 (월 1개월 / 연 12개월)"""
    months = 12 if cycle == BillingCycle.YEARLY else 1
    return add_months(day, months)


class SubscriptionStore:
    """구독 저장소

    Args:
        adapter: SQLite 어댑터
    """

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    async def insert(
        self,
        user_id: int,
        plan_id: str,
        amount: Decimal,
        period_start: date,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        auto_renewal: bool = True,
        payment_method_id: str | None = None,
        created_at: datetime | None = None,
    ) -> Subscription:
        """구독 생성

        current_period_end와 next_billing_date는 period_start + 1주기.
        """
        period_end = advance_period(period_start, billing_cycle)

        cursor = await self.adapter.execute(
            """
            INSERT INTO user_subscriptions (
                user_id, plan_id, amount, billing_cycle, status,
                current_period_start, current_period_end, next_billing_date,
                auto_renewal, payment_method_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                plan_id,
                str(amount),
                billing_cycle.value,
                status.value,
                period_start.isoformat(),
                period_end.isoformat(),
                period_end.isoformat(),
                1 if auto_renewal else 0,
                payment_method_id,
                isoformat_utc(created_at or now_utc()),
            ),
        )
        await self.adapter.commit()
        return await self.require(cursor.lastrowid)

    async def get(self, subscription_id: int) -> Subscription | None:
        row = await self.adapter.fetchone(f"{_SELECT} WHERE id = ?", (subscription_id,))
        return row_to_subscription(row) if row else None

    async def require(self, subscription_id: int) -> Subscription:
        subscription = await self.get(subscription_id)
        if subscription is None:
            raise NotFound("Subscription", subscription_id)
        return subscription

    async def list_by_status(self, status: SubscriptionStatus) -> list[Subscription]:
        rows = await self.adapter.fetchall(
            f"{_SELECT} WHERE status = ? ORDER BY id ASC", (status.value,)
        )
        return [row_to_subscription(row) for row in rows]

    async def set_status(self, subscription_id: int, status: SubscriptionStatus) -> bool:
        cursor = await self.adapter.execute(
            "UPDATE user_subscriptions SET status = ? WHERE id = ?",
            (status.value, subscription_id),
        )
        await self.adapter.commit()
        return cursor.rowcount > 0
