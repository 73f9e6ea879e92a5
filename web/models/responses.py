"""
응답 스키마 (Pydantic)

Web API 응답 데이터 직렬화.
금액은 모두 Decimal 문자열로 직렬화한다.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from core.domain.models import (
    ApiUsageRecord,
    BatchResult,
    MarketQueueItem,
    RenewalHistoryItem,
    RenewalOutcome,
    RenewalQueueItem,
    RoundupLedgerEntry,
    Subscription,
)
from core.finance.aggregator import (
    BalanceSheet,
    CashFlowPoint,
    FeePoint,
    FinanceSummary,
    PnLPoint,
    RevenuePoint,
    RoundUpPoint,
)
from core.finance.reconciliation import ReconciliationReport


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


class HealthResponse(BaseModel):
    """헬스 체크 응답"""

    status: str = Field(default="ok", description="서비스 상태")
    mode: str = Field(..., description="실행 모드 (production/sandbox)")
    version: str = Field(..., description="앱 버전")
    timestamp: datetime = Field(..., description="응답 시간 (UTC)")


# =========================================================================
# 배치
# =========================================================================


class ItemErrorResponse(BaseModel):
    """배치 항목 오류"""

    ref_id: int | None = Field(default=None, description="대상 ID")
    code: str = Field(..., description="오류 코드")
    message: str = Field(..., description="오류 메시지")


class BatchResultResponse(BaseModel):
    """배치 작업 결과 (부분 성공 포함)"""

    queued: int = Field(..., description="큐잉/대상 수")
    processed: int = Field(..., description="처리 완료 수")
    failed: int = Field(..., description="항목 오류 수")
    timed_out: bool = Field(default=False, description="제한 시간 초과 여부")
    errors: list[ItemErrorResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: BatchResult) -> "BatchResultResponse":
        return cls(
            queued=result.queued,
            processed=result.processed,
            failed=result.failed,
            timed_out=result.timed_out,
            errors=[ItemErrorResponse(**e.to_dict()) for e in result.errors],
        )


# =========================================================================
# 원장 / 큐
# =========================================================================


class LedgerEntryResponse(BaseModel):
    """라운드업 원장 항목"""

    id: int
    transaction_id: int | None = None
    user_id: int
    round_up_amount: str
    fee_amount: str
    status: str
    swept_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: RoundupLedgerEntry) -> "LedgerEntryResponse":
        return cls(
            id=entry.id,
            transaction_id=entry.transaction_id,
            user_id=entry.user_id,
            round_up_amount=str(entry.round_up_amount),
            fee_amount=str(entry.fee_amount),
            status=entry.status.value,
            swept_at=entry.swept_at,
            created_at=entry.created_at,
        )


class LedgerListResponse(BaseModel):
    """원장 항목 목록"""

    items: list[LedgerEntryResponse]
    total: int
    limit: int
    offset: int


class QueueItemResponse(BaseModel):
    """마켓 큐 항목"""

    id: int
    transaction_id: int | None = None
    user_id: int
    ticker: str
    amount: str
    status: str
    created_at: datetime | None = None
    processed_at: datetime | None = None
    error_reason: str | None = None
    order_ref: str | None = None

    @classmethod
    def from_item(cls, item: MarketQueueItem) -> "QueueItemResponse":
        return cls(
            id=item.id,
            transaction_id=item.transaction_id,
            user_id=item.user_id,
            ticker=item.ticker,
            amount=str(item.amount),
            status=item.status.value,
            created_at=item.created_at,
            processed_at=item.processed_at,
            error_reason=item.error_reason,
            order_ref=item.order_ref,
        )


class QueueListResponse(BaseModel):
    """마켓 큐 목록"""

    items: list[QueueItemResponse]
    total: int
    limit: int
    offset: int
    counts: dict[str, int] = Field(default_factory=dict, description="상태별 개수")


# =========================================================================
# 갱신
# =========================================================================


class RenewalOutcomeResponse(BaseModel):
    """갱신 시도 결과"""

    subscription_id: int
    status: str
    succeeded: bool
    attempt_count: int
    history_id: int | None = None
    error_message: str | None = None
    next_attempt_at: datetime | None = None
    next_billing_date: date | None = None

    @classmethod
    def from_outcome(cls, outcome: RenewalOutcome) -> "RenewalOutcomeResponse":
        return cls(
            subscription_id=outcome.subscription_id,
            status=outcome.status.value,
            succeeded=outcome.succeeded,
            attempt_count=outcome.attempt_count,
            history_id=outcome.history_id,
            error_message=outcome.error_message,
            next_attempt_at=outcome.next_attempt_at,
            next_billing_date=outcome.next_billing_date,
        )


class SubscriptionResponse(BaseModel):
    """구독 상태"""

    id: int
    user_id: int
    plan_id: str
    amount: str
    billing_cycle: str
    status: str
    next_billing_date: date | None = None
    auto_renewal: bool

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            user_id=subscription.user_id,
            plan_id=subscription.plan_id,
            amount=str(subscription.amount),
            billing_cycle=subscription.billing_cycle.value,
            status=subscription.status.value,
            next_billing_date=subscription.next_billing_date,
            auto_renewal=subscription.auto_renewal,
        )


class RenewalQueueItemResponse(BaseModel):
    """미종료 갱신 큐 항목 (scheduled/retrying)"""

    id: int
    subscription_id: int
    scheduled_date: date
    status: str
    attempt_count: int
    error_message: str | None = None
    next_attempt_at: datetime | None = None
    claimed_at: datetime | None = Field(default=None, description="리스 보유 중이면 클레임 시각")

    @classmethod
    def from_item(cls, item: RenewalQueueItem) -> "RenewalQueueItemResponse":
        return cls(
            id=item.id,
            subscription_id=item.subscription_id,
            scheduled_date=item.scheduled_date,
            status=item.status.value,
            attempt_count=item.attempt_count,
            error_message=item.error_message,
            next_attempt_at=item.next_attempt_at,
            claimed_at=item.claimed_at,
        )


class RenewalQueueListResponse(BaseModel):
    """미종료 갱신 큐 (id 순)"""

    items: list[RenewalQueueItemResponse]
    total: int


class RenewalHistoryResponse(BaseModel):
    """갱신 이력"""

    id: int
    subscription_id: int
    renewal_date: date
    amount: str
    status: str
    payment_method: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_history(cls, item: RenewalHistoryItem) -> "RenewalHistoryResponse":
        return cls(
            id=item.id,
            subscription_id=item.subscription_id,
            renewal_date=item.renewal_date,
            amount=str(item.amount),
            status=item.status.value,
            payment_method=item.payment_method,
            error_message=item.error_message,
            created_at=item.created_at,
        )


class RenewalHistoryListResponse(BaseModel):
    """갱신 이력 목록 (최신순)"""

    items: list[RenewalHistoryResponse]
    total: int
    limit: int
    offset: int


# =========================================================================
# 재무
# =========================================================================


class RevenuePointResponse(BaseModel):
    period: str = Field(..., description="월 키 (YYYY-MM)")
    revenue: str

    @classmethod
    def from_point(cls, point: RevenuePoint) -> "RevenuePointResponse":
        return cls(period=point.period.key, revenue=str(point.revenue))


class RevenueResponse(BaseModel):
    """월별 구독 갱신 매출"""

    periods: list[RevenuePointResponse]
    total: str


class PnLPointResponse(BaseModel):
    period: str
    renewal_revenue: str
    fee_revenue: str
    total_revenue: str
    operating_cost: str
    net_income: str

    @classmethod
    def from_point(cls, point: PnLPoint) -> "PnLPointResponse":
        return cls(
            period=point.period.key,
            renewal_revenue=str(point.renewal_revenue),
            fee_revenue=str(point.fee_revenue),
            total_revenue=str(point.total_revenue),
            operating_cost=str(point.operating_cost),
            net_income=str(point.net_income),
        )


class PnLResponse(BaseModel):
    """월별 손익"""

    periods: list[PnLPointResponse]


class CashFlowPointResponse(BaseModel):
    period: str
    inflows: str
    outflows: str
    net: str

    @classmethod
    def from_point(cls, point: CashFlowPoint) -> "CashFlowPointResponse":
        return cls(
            period=point.period.key,
            inflows=str(point.inflows),
            outflows=str(point.outflows),
            net=str(point.net),
        )


class CashFlowResponse(BaseModel):
    """월별 현금흐름"""

    periods: list[CashFlowPointResponse]


class BalanceSheetResponse(BaseModel):
    """시점 대차대조표"""

    active_subscription_revenue: str
    pending_renewal_receivables: str
    roundup_deposits: str
    pending_market_orders: str
    total_assets: str
    total_liabilities: str
    equity: str
    current_ratio: str | None = Field(default=None, description="부채가 0이면 null")
    as_of: datetime | None = None

    @classmethod
    def from_sheet(
        cls,
        sheet: BalanceSheet,
        as_of: datetime | None = None,
    ) -> "BalanceSheetResponse":
        return cls(
            active_subscription_revenue=str(sheet.active_subscription_revenue),
            pending_renewal_receivables=str(sheet.pending_renewal_receivables),
            roundup_deposits=str(sheet.roundup_deposits),
            pending_market_orders=str(sheet.pending_market_orders),
            total_assets=str(sheet.total_assets),
            total_liabilities=str(sheet.total_liabilities),
            equity=str(sheet.equity),
            current_ratio=_money(sheet.current_ratio),
            as_of=as_of,
        )


class FeePointResponse(BaseModel):
    period: str
    fees: str
    transaction_count: int

    @classmethod
    def from_point(cls, point: FeePoint) -> "FeePointResponse":
        return cls(
            period=point.period.key,
            fees=str(point.fees),
            transaction_count=point.transaction_count,
        )


class FeesResponse(BaseModel):
    """월별 거래 수수료"""

    periods: list[FeePointResponse]
    total: str


class RoundUpPointResponse(BaseModel):
    period: str
    amount: str
    count: int

    @classmethod
    def from_point(cls, point: RoundUpPoint) -> "RoundUpPointResponse":
        return cls(period=point.period.key, amount=str(point.amount), count=point.count)


class RoundUpsResponse(BaseModel):
    """월별 라운드업"""

    periods: list[RoundUpPointResponse]
    total_amount: str
    total_count: int


class FinanceSummaryResponse(BaseModel):
    """운영 요약 지표 (평균값은 센트 단위, 분모가 0이면 0)"""

    period: str = Field(..., description="current_month_revenue의 기준 월 (YYYY-MM)")
    total_revenue: str
    current_month_revenue: str
    active_subscriptions: int
    avg_revenue_per_active_subscription: str
    total_fees: str
    fee_transaction_count: int
    avg_fee_per_transaction: str
    roundup_count: int
    roundup_total: str

    @classmethod
    def from_summary(cls, summary: FinanceSummary) -> "FinanceSummaryResponse":
        return cls(
            period=summary.period.key,
            total_revenue=str(summary.total_revenue),
            current_month_revenue=str(summary.current_month_revenue),
            active_subscriptions=summary.active_subscriptions,
            avg_revenue_per_active_subscription=str(summary.avg_revenue_per_active_subscription),
            total_fees=str(summary.total_fees),
            fee_transaction_count=summary.fee_transaction_count,
            avg_fee_per_transaction=str(summary.avg_fee_per_transaction),
            roundup_count=summary.roundup_count,
            roundup_total=str(summary.roundup_total),
        )


class ApiUsageResponse(BaseModel):
    """기록된 API 사용 비용"""

    id: int
    service: str
    cost: str
    endpoint: str | None = None
    user_id: int | None = None
    success: bool
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ApiUsageRecord) -> "ApiUsageResponse":
        return cls(
            id=record.id,
            service=record.service,
            cost=str(record.cost),
            endpoint=record.endpoint,
            user_id=record.user_id,
            success=record.success,
            created_at=record.created_at,
        )


class UserDriftResponse(BaseModel):
    user_id: int
    transaction_fees: str
    ledger_fees: str
    drift: str


class ReconciliationResponse(BaseModel):
    """수수료 대사 결과"""

    transaction_fees: str
    ledger_fees: str
    drift: str
    tolerance: str
    reconciled: bool
    user_drifts: list[UserDriftResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ReconciliationResponse":
        return cls(**report.to_dict())
