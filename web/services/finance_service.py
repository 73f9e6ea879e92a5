"""
재무 서비스

단일 읽기 스냅샷으로 재무제표와 요약 지표 계산, 수수료 대사, API 비용 기록
"""

import logging
from datetime import datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.models import ApiUsageRecord
from core.finance.aggregator import (
    BalanceSheet,
    CashFlowPoint,
    FeePoint,
    FinanceSummary,
    FinancialSnapshot,
    PnLPoint,
    RevenuePoint,
    RoundUpPoint,
    balance_sheet,
    cash_flow_view,
    fee_view,
    finance_summary,
    pnl_view,
    revenue_view,
    roundup_view,
)
from core.finance.reconciliation import FeeReconciler, ReconciliationReport
from core.ledger.store import RoundupLedgerStore
from core.storage.finance_store import FinanceStore
from core.storage.transaction_store import TransactionStore

logger = logging.getLogger(__name__)


class FinanceService:
    """재무 서비스

    요청마다 스냅샷을 새로 읽어 계산한다 (집계 결과는 저장하지 않음).

    Args:
        db: SQLite 어댑터 (읽기 전용 가능)
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db
        self.finance_store = FinanceStore(db)

    async def snapshot(self) -> FinancialSnapshot:
        return await self.finance_store.load_snapshot()

    async def revenue(self) -> list[RevenuePoint]:
        return revenue_view(await self.snapshot())

    async def pnl(self) -> list[PnLPoint]:
        return pnl_view(await self.snapshot())

    async def cash_flow(self) -> list[CashFlowPoint]:
        return cash_flow_view(await self.snapshot())

    async def balance_sheet(self) -> tuple[BalanceSheet, FinancialSnapshot]:
        """대차대조표와 기준 스냅샷"""
        snapshot = await self.snapshot()
        return balance_sheet(snapshot), snapshot

    async def fees(self) -> list[FeePoint]:
        return fee_view(await self.snapshot())

    async def roundups(self) -> list[RoundUpPoint]:
        return roundup_view(await self.snapshot())

    async def summary(self, now: datetime | None = None) -> FinanceSummary:
        """요약 지표 (기준 월 기본값: 스냅샷 시각의 월)"""
        return finance_summary(await self.snapshot(), now)

    async def record_api_usage(
        self,
        service: str,
        cost: Decimal,
        endpoint: str | None = None,
        user_id: int | None = None,
        success: bool = True,
    ) -> ApiUsageRecord:
        """외부 API 비용 기록 (쓰기 가능 연결 필요)"""
        record = await self.finance_store.record_api_usage(
            service, cost, endpoint=endpoint, user_id=user_id, success=success
        )
        logger.info(
            "API 비용 기록",
            extra={"service": service, "cost": str(cost), "success": success},
        )
        return record

    async def reconciliation(self) -> ReconciliationReport:
        reconciler = FeeReconciler(TransactionStore(self.db), RoundupLedgerStore(self.db))
        return await reconciler.check()
