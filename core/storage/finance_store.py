"""
Finance Store

API 사용 비용 기록과 재무 집계용 스냅샷 로드.
"""

import logging
from datetime import datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.models import ApiUsageRecord
from core.finance.aggregator import FinancialSnapshot
from core.ledger.store import LEDGER_COLUMNS, row_to_entry
from core.storage.queue_store import QUEUE_COLUMNS, row_to_item
from core.storage.renewal_store import (
    HISTORY_COLUMNS,
    OPEN_STATUSES,
    RENEWAL_COLUMNS,
    row_to_history,
    row_to_renewal,
)
from core.storage.subscription_store import SUBSCRIPTION_COLUMNS, row_to_subscription
from core.storage.transaction_store import TRANSACTION_COLUMNS, row_to_transaction
from core.utils.timezone import isoformat_utc, now_utc

logger = logging.getLogger(__name__)

API_USAGE_COLUMNS: tuple[str, ...] = (
    "id", "service", "cost", "endpoint", "user_id", "success", "created_at",
)


def row_to_api_usage(row: tuple) -> ApiUsageRecord:
    return ApiUsageRecord.from_dict(dict(zip(API_USAGE_COLUMNS, row)))


def _cols(columns: tuple[str, ...]) -> str:
    return ", ".join(columns)


class FinanceStore:
    """재무 집계 저장소

    Args:
        adapter: SQLite 어댑터
    """

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    async def record_api_usage(
        self,
        service: str,
        cost: Decimal,
        endpoint: str | None = None,
        user_id: int | None = None,
        success: bool = True,
        created_at: datetime | None = None,
    ) -> ApiUsageRecord:
        """API 사용 비용 기록"""
        cursor = await self.adapter.execute(
            """
            INSERT INTO api_usage (service, cost, endpoint, user_id, success, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                service,
                str(cost),
                endpoint,
                user_id,
                1 if success else 0,
                isoformat_utc(created_at or now_utc()),
            ),
        )
        await self.adapter.commit()

        row = await self.adapter.fetchone(
            f"SELECT {_cols(API_USAGE_COLUMNS)} FROM api_usage WHERE id = ?",
            (cursor.lastrowid,),
        )
        return row_to_api_usage(row)

    async def load_snapshot(self) -> FinancialSnapshot:
        """집계 입력 전체를 하나의 읽기 트랜잭션에서 로드"""
        async with self.adapter.snapshot():
            subscriptions = await self.adapter.fetchall(
                f"SELECT {_cols(SUBSCRIPTION_COLUMNS)} FROM user_subscriptions ORDER BY id"
            )
            history = await self.adapter.fetchall(
                f"SELECT {_cols(HISTORY_COLUMNS)} FROM renewal_history ORDER BY id"
            )
            open_renewals = await self.adapter.fetchall(
                f"SELECT {_cols(RENEWAL_COLUMNS)} FROM renewal_queue "
                "WHERE status IN (?, ?) ORDER BY id",
                OPEN_STATUSES,
            )
            ledger = await self.adapter.fetchall(
                f"SELECT {_cols(LEDGER_COLUMNS)} FROM roundup_ledger ORDER BY id"
            )
            api_usage = await self.adapter.fetchall(
                f"SELECT {_cols(API_USAGE_COLUMNS)} FROM api_usage ORDER BY id"
            )
            queue = await self.adapter.fetchall(
                f"SELECT {_cols(QUEUE_COLUMNS)} FROM market_queue ORDER BY id"
            )
            fee_transactions = await self.adapter.fetchall(
                f"SELECT {_cols(TRANSACTION_COLUMNS)} FROM transactions "
                "WHERE fee IS NOT NULL ORDER BY id"
            )

        snapshot = FinancialSnapshot(
            subscriptions=[row_to_subscription(r) for r in subscriptions],
            renewal_history=[row_to_history(r) for r in history],
            open_renewals=[row_to_renewal(r) for r in open_renewals],
            ledger_entries=[row_to_entry(r) for r in ledger],
            api_usage=[row_to_api_usage(r) for r in api_usage],
            queue_items=[row_to_item(r) for r in queue],
            fee_transactions=[row_to_transaction(r) for r in fee_transactions],
            taken_at=now_utc(),
        )

        logger.debug(
            "재무 스냅샷 로드",
            extra={
                "subscriptions": len(snapshot.subscriptions),
                "renewal_history": len(snapshot.renewal_history),
                "ledger_entries": len(snapshot.ledger_entries),
                "queue_items": len(snapshot.queue_items),
                "fee_transactions": len(snapshot.fee_transactions),
            },
        )
        return snapshot
