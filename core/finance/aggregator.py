"""
재무 집계기

하나의 읽기 스냅샷(FinancialSnapshot)을 입력으로 받아
월별 Revenue / P&L / Cash-Flow 뷰와 시점 Balance Sheet를 계산하는 순수 함수 모음.

소스별 기준 날짜 컬럼 (소스마다 다름):
- 구독 갱신 매출: renewal_history.renewal_date (status=success)
- 라운드업 입금 / 수수료 매출: roundup_ledger.created_at
- API 운영 비용: api_usage.created_at
- 마켓 체결 유출: market_queue.processed_at (status=completed)
- 거래 수수료 (요약/수수료 추이): transactions.created_at (fee > 0)

모든 소스의 월 키 합집합이 기간 축이 되며, 소스에 없는 월은 0으로 취급한다.
정렬은 키 문자열이 아닌 (year, month) 기준 시간순.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable, TypeVar

from core.constants import CENT
from core.domain.models import (
    ApiUsageRecord,
    MarketQueueItem,
    RenewalHistoryItem,
    RenewalQueueItem,
    RoundupLedgerEntry,
    Subscription,
    Transaction,
)
from core.types import QueueStatus, RenewalResult, RenewalStatus, SubscriptionStatus
from core.utils.timezone import now_utc, parse_timestamp

ZERO = Decimal("0")

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class Period:
    """월 기간 키 (year, month 순 정렬 = 시간순)"""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month는 1~12 범위여야 합니다: {self.month}")

    @property
    def key(self) -> str:
        """표준 월 키 ("2026-03")"""
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def parse(cls, key: str) -> "Period":
        """YYYY-MM 형식 키 파싱"""
        year_str, month_str = key.split("-", 1)
        return cls(int(year_str), int(month_str))

    def __str__(self) -> str:
        return self.key


def month_of(value: str | date | datetime) -> Period:
    """날짜/시각 값의 월 키 (UTC 기준)"""
    ts = parse_timestamp(value)
    return Period(ts.year, ts.month)


def group_by_month(
    rows: Iterable[T],
    date_of: Callable[[T], Any],
    amount_of: Callable[[T], Decimal],
) -> dict[Period, Decimal]:
    """행을 월별로 묶어 금액 합산"""
    buckets: dict[Period, Decimal] = {}
    for row in rows:
        period = month_of(date_of(row))
        buckets[period] = buckets.get(period, ZERO) + amount_of(row)
    return buckets


# -------------------------------------------------------------------------
# 입력 스냅샷
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class FinancialSnapshot:
    """집계 입력 (단일 읽기 트랜잭션에서 로드)"""

    subscriptions: list[Subscription] = field(default_factory=list)
    renewal_history: list[RenewalHistoryItem] = field(default_factory=list)
    open_renewals: list[RenewalQueueItem] = field(default_factory=list)
    ledger_entries: list[RoundupLedgerEntry] = field(default_factory=list)
    api_usage: list[ApiUsageRecord] = field(default_factory=list)
    queue_items: list[MarketQueueItem] = field(default_factory=list)
    fee_transactions: list[Transaction] = field(default_factory=list)
    taken_at: datetime | None = None

    @property
    def successful_renewals(self) -> list[RenewalHistoryItem]:
        return [h for h in self.renewal_history if h.status == RenewalResult.SUCCESS]

    @property
    def completed_executions(self) -> list[MarketQueueItem]:
        return [q for q in self.queue_items if q.status == QueueStatus.COMPLETED]

    @property
    def charged_transactions(self) -> list[Transaction]:
        """수수료가 부과된 거래 (fee > 0)"""
        return [t for t in self.fee_transactions if t.fee is not None and t.fee > 0]

    @property
    def active_subscriptions(self) -> list[Subscription]:
        return [s for s in self.subscriptions if s.status == SubscriptionStatus.ACTIVE]


# -------------------------------------------------------------------------
# 월별 집계
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class PeriodAggregate:
    """월별 소스 합계 (파생값, 저장하지 않음)"""

    period: Period
    subscription_revenue: Decimal = ZERO
    roundup_revenue: Decimal = ZERO
    fee_revenue: Decimal = ZERO
    api_cost: Decimal = ZERO
    market_outflow: Decimal = ZERO


def aggregate_periods(snapshot: FinancialSnapshot) -> list[PeriodAggregate]:
    """소스별 월 합계를 기간 축(합집합)으로 정렬하여 반환"""
    subscription = group_by_month(
        snapshot.successful_renewals, lambda h: h.renewal_date, lambda h: h.amount
    )
    roundup = group_by_month(
        snapshot.ledger_entries, lambda e: e.created_at, lambda e: e.round_up_amount
    )
    fees = group_by_month(
        snapshot.ledger_entries, lambda e: e.created_at, lambda e: e.fee_amount
    )
    api = group_by_month(snapshot.api_usage, lambda r: r.created_at, lambda r: r.cost)
    market = group_by_month(
        snapshot.completed_executions, lambda q: q.processed_at, lambda q: q.amount
    )

    axis = sorted(set(subscription) | set(roundup) | set(fees) | set(api) | set(market))

    return [
        PeriodAggregate(
            period=period,
            subscription_revenue=subscription.get(period, ZERO),
            roundup_revenue=roundup.get(period, ZERO),
            fee_revenue=fees.get(period, ZERO),
            api_cost=api.get(period, ZERO),
            market_outflow=market.get(period, ZERO),
        )
        for period in axis
    ]


@dataclass(frozen=True)
class RevenuePoint:
    period: Period
    revenue: Decimal


@dataclass(frozen=True)
class PnLPoint:
    period: Period
    renewal_revenue: Decimal
    fee_revenue: Decimal
    operating_cost: Decimal

    @property
    def total_revenue(self) -> Decimal:
        return self.renewal_revenue + self.fee_revenue

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.operating_cost


@dataclass(frozen=True)
class CashFlowPoint:
    period: Period
    inflows: Decimal
    outflows: Decimal

    @property
    def net(self) -> Decimal:
        return self.inflows - self.outflows


def revenue_view(snapshot: FinancialSnapshot) -> list[RevenuePoint]:
    """월별 구독 갱신 매출"""
    return [
        RevenuePoint(period=agg.period, revenue=agg.subscription_revenue)
        for agg in aggregate_periods(snapshot)
    ]


def pnl_view(snapshot: FinancialSnapshot) -> list[PnLPoint]:
    """월별 손익: (갱신 매출 + 라운드업 수수료) - API 운영 비용"""
    return [
        PnLPoint(
            period=agg.period,
            renewal_revenue=agg.subscription_revenue,
            fee_revenue=agg.fee_revenue,
            operating_cost=agg.api_cost,
        )
        for agg in aggregate_periods(snapshot)
    ]


def cash_flow_view(snapshot: FinancialSnapshot) -> list[CashFlowPoint]:
    """월별 현금흐름: (갱신 + 라운드업 입금) - (API 비용 + 체결 유출)"""
    return [
        CashFlowPoint(
            period=agg.period,
            inflows=agg.subscription_revenue + agg.roundup_revenue,
            outflows=agg.api_cost + agg.market_outflow,
        )
        for agg in aggregate_periods(snapshot)
    ]


# -------------------------------------------------------------------------
# 수수료 / 라운드업 추이
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class FeePoint:
    period: Period
    fees: Decimal
    transaction_count: int


@dataclass(frozen=True)
class RoundUpPoint:
    period: Period
    amount: Decimal
    count: int


def fee_view(snapshot: FinancialSnapshot) -> list[FeePoint]:
    """월별 거래 수수료 (transactions.fee, 거래 생성 월 기준)

    원장 fee_amount가 아닌 거래 측 수수료. 두 값의 차이는 수수료 대사에서 본다.
    """
    charged = snapshot.charged_transactions
    fees = group_by_month(charged, lambda t: t.created_at, lambda t: t.fee)
    counts = group_by_month(charged, lambda t: t.created_at, lambda t: 1)

    return [
        FeePoint(period=period, fees=fees[period], transaction_count=int(counts[period]))
        for period in sorted(fees)
    ]


def roundup_view(snapshot: FinancialSnapshot) -> list[RoundUpPoint]:
    """월별 라운드업 건수/금액 (roundup_ledger.created_at 기준)"""
    entries = snapshot.ledger_entries
    amounts = group_by_month(entries, lambda e: e.created_at, lambda e: e.round_up_amount)
    counts = group_by_month(entries, lambda e: e.created_at, lambda e: 1)

    return [
        RoundUpPoint(period=period, amount=amounts[period], count=int(counts[period]))
        for period in sorted(amounts)
    ]


# -------------------------------------------------------------------------
# 대차대조표 (시점)
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceSheet:
    """시점 대차대조표

    equity = total_assets - total_liabilities (정의상 항등식 성립)
    current_ratio는 부채가 0이면 None.
    """

    active_subscription_revenue: Decimal
    pending_renewal_receivables: Decimal
    roundup_deposits: Decimal
    pending_market_orders: Decimal

    @property
    def total_assets(self) -> Decimal:
        return (
            self.active_subscription_revenue
            + self.pending_renewal_receivables
            + self.roundup_deposits
        )

    @property
    def total_liabilities(self) -> Decimal:
        return self.pending_market_orders

    @property
    def equity(self) -> Decimal:
        return self.total_assets - self.total_liabilities

    @property
    def current_ratio(self) -> Decimal | None:
        if self.total_liabilities == 0:
            return None
        return self.total_assets / self.total_liabilities


def balance_sheet(snapshot: FinancialSnapshot) -> BalanceSheet:
    """스냅샷 시점의 대차대조표"""
    amounts_by_subscription = {s.id: s.amount for s in snapshot.subscriptions}

    active_revenue = sum((s.amount for s in snapshot.active_subscriptions), ZERO)
    receivables = sum(
        (
            amounts_by_subscription.get(r.subscription_id, ZERO)
            for r in snapshot.open_renewals
            if r.status in (RenewalStatus.SCHEDULED, RenewalStatus.RETRYING)
        ),
        ZERO,
    )
    deposits = sum((e.round_up_amount for e in snapshot.ledger_entries), ZERO)
    pending_orders = sum(
        (q.amount for q in snapshot.queue_items if q.status == QueueStatus.PENDING),
        ZERO,
    )

    return BalanceSheet(
        active_subscription_revenue=active_revenue,
        pending_renewal_receivables=receivables,
        roundup_deposits=deposits,
        pending_market_orders=pending_orders,
    )


# -------------------------------------------------------------------------
# 요약 지표
# -------------------------------------------------------------------------


def _average(total: Decimal, count: int) -> Decimal:
    """센트 단위 평균 (count가 0이면 0)"""
    if count == 0:
        return ZERO
    return (total / count).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FinanceSummary:
    """운영 요약 지표

    Attributes:
        period: 기준 월 (current_month_revenue의 월)
        total_revenue: 누적 구독 갱신 매출
        current_month_revenue: 기준 월의 갱신 매출
        active_subscriptions: active 구독 수
        avg_revenue_per_active_subscription: 누적 매출 / active 구독 수
        total_fees: 누적 거래 수수료 (fee > 0 거래)
        fee_transaction_count: 수수료가 부과된 거래 수
        avg_fee_per_transaction: 누적 수수료 / 수수료 거래 수
        roundup_count: 라운드업 원장 항목 수
        roundup_total: 라운드업 누적 금액
    """

    period: Period
    total_revenue: Decimal
    current_month_revenue: Decimal
    active_subscriptions: int
    avg_revenue_per_active_subscription: Decimal
    total_fees: Decimal
    fee_transaction_count: int
    avg_fee_per_transaction: Decimal
    roundup_count: int
    roundup_total: Decimal


def finance_summary(snapshot: FinancialSnapshot, now: datetime | None = None) -> FinanceSummary:
    """스냅샷의 요약 지표

    기준 월은 now (없으면 스냅샷 시각, 그것도 없으면 현재 시각)의 UTC 월.
    평균값은 센트 단위 반올림, 분모가 0이면 0.
    """
    period = month_of(now or snapshot.taken_at or now_utc())

    renewals = snapshot.successful_renewals
    total_revenue = sum((h.amount for h in renewals), ZERO)
    current_month_revenue = sum(
        (h.amount for h in renewals if month_of(h.renewal_date) == period),
        ZERO,
    )
    active_count = len(snapshot.active_subscriptions)

    charged = snapshot.charged_transactions
    total_fees = sum((t.fee for t in charged), ZERO)

    return FinanceSummary(
        period=period,
        total_revenue=total_revenue,
        current_month_revenue=current_month_revenue,
        active_subscriptions=active_count,
        avg_revenue_per_active_subscription=_average(total_revenue, active_count),
        total_fees=total_fees,
        fee_transaction_count=len(charged),
        avg_fee_per_transaction=_average(total_fees, len(charged)),
        roundup_count=len(snapshot.ledger_entries),
        roundup_total=sum((e.round_up_amount for e in snapshot.ledger_entries), ZERO),
    )


@dataclass(frozen=True)
class FinancialStatements:
    """전체 재무제표 묶음"""

    periods: list[PeriodAggregate]
    revenue: list[RevenuePoint]
    pnl: list[PnLPoint]
    cash_flow: list[CashFlowPoint]
    balance_sheet: BalanceSheet
    fees: list[FeePoint]
    roundups: list[RoundUpPoint]
    summary: FinanceSummary


def build_statements(
    snapshot: FinancialSnapshot,
    now: datetime | None = None,
) -> FinancialStatements:
    """스냅샷 하나로 모든 재무제표 생성"""
    return FinancialStatements(
        periods=aggregate_periods(snapshot),
        revenue=revenue_view(snapshot),
        pnl=pnl_view(snapshot),
        cash_flow=cash_flow_view(snapshot),
        balance_sheet=balance_sheet(snapshot),
        fees=fee_view(snapshot),
        roundups=roundup_view(snapshot),
        summary=finance_summary(snapshot, now),
    )
