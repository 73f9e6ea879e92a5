"""
재무 API 라우트

월별 재무 뷰 (매출, 손익, 현금흐름, 수수료, 라운드업), 시점 Balance Sheet, 요약 지표, 수수료 대사,
API 사용 비용 기록
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from adapters.db.sqlite_adapter import SQLiteAdapter
from web.dependencies import get_db, get_db_write
from web.models.requests import ApiUsageRequest
from web.models.responses import (
    ApiUsageResponse,
    BalanceSheetResponse,
    CashFlowPointResponse,
    CashFlowResponse,
    FeePointResponse,
    FeesResponse,
    FinanceSummaryResponse,
    PnLPointResponse,
    PnLResponse,
    ReconciliationResponse,
    RevenuePointResponse,
    RevenueResponse,
    RoundUpPointResponse,
    RoundUpsResponse,
)
from web.services.finance_service import FinanceService

router = APIRouter(prefix="/api/finance", tags=["Finance"])


@router.get("/revenue", response_model=RevenueResponse)
async def get_revenue(db: SQLiteAdapter = Depends(get_db)) -> RevenueResponse:
    """월별 구독 갱신 매출 (시간순)"""
    points = await FinanceService(db).revenue()
    return RevenueResponse(
        periods=[RevenuePointResponse.from_point(p) for p in points],
        total=str(sum((p.revenue for p in points), Decimal("0"))),
    )


@router.get("/pnl", response_model=PnLResponse)
async def get_pnl(db: SQLiteAdapter = Depends(get_db)) -> PnLResponse:
    """월별 손익"""
    points = await FinanceService(db).pnl()
    return PnLResponse(periods=[PnLPointResponse.from_point(p) for p in points])


@router.get("/cash-flow", response_model=CashFlowResponse)
async def get_cash_flow(db: SQLiteAdapter = Depends(get_db)) -> CashFlowResponse:
    """월별 현금흐름"""
    points = await FinanceService(db).cash_flow()
    return CashFlowResponse(periods=[CashFlowPointResponse.from_point(p) for p in points])


@router.get("/balance-sheet", response_model=BalanceSheetResponse)
async def get_balance_sheet(db: SQLiteAdapter = Depends(get_db)) -> BalanceSheetResponse:
    """시점 대차대조표"""
    sheet, snapshot = await FinanceService(db).balance_sheet()
    return BalanceSheetResponse.from_sheet(sheet, as_of=snapshot.taken_at)


@router.get("/fees", response_model=FeesResponse)
async def get_fees(db: SQLiteAdapter = Depends(get_db)) -> FeesResponse:
    """월별 거래 수수료 (transactions.fee > 0, 거래 생성 월 기준)"""
    points = await FinanceService(db).fees()
    return FeesResponse(
        periods=[FeePointResponse.from_point(p) for p in points],
        total=str(sum((p.fees for p in points), Decimal("0"))),
    )


@router.get("/roundups", response_model=RoundUpsResponse)
async def get_roundups(db: SQLiteAdapter = Depends(get_db)) -> RoundUpsResponse:
    """월별 라운드업 건수/금액"""
    points = await FinanceService(db).roundups()
    return RoundUpsResponse(
        periods=[RoundUpPointResponse.from_point(p) for p in points],
        total_amount=str(sum((p.amount for p in points), Decimal("0"))),
        total_count=sum(p.count for p in points),
    )


@router.get("/summary", response_model=FinanceSummaryResponse)
async def get_summary(
    as_of: date | None = Query(default=None, description="기준일 (없으면 오늘, UTC)"),
    db: SQLiteAdapter = Depends(get_db),
) -> FinanceSummaryResponse:
    """요약 지표

    이번 달 매출, active 구독당 평균 매출, 거래당 평균 수수료, 라운드업 건수/금액
    """
    now = datetime.combine(as_of, time.min, tzinfo=timezone.utc) if as_of else None
    summary = await FinanceService(db).summary(now)
    return FinanceSummaryResponse.from_summary(summary)


@router.get("/reconciliation", response_model=ReconciliationResponse)
async def get_reconciliation(db: SQLiteAdapter = Depends(get_db)) -> ReconciliationResponse:
    """수수료 대사 (읽기 전용 진단)"""
    report = await FinanceService(db).reconciliation()
    return ReconciliationResponse.from_report(report)


@router.post("/api-usage", response_model=ApiUsageResponse, status_code=201)
async def record_api_usage(
    request: ApiUsageRequest,
    db: SQLiteAdapter = Depends(get_db_write),
) -> ApiUsageResponse:
    """외부 API 사용 비용 기록 (손익의 운영 비용에 반영)"""
    record = await FinanceService(db).record_api_usage(
        request.service,
        request.cost,
        endpoint=request.endpoint,
        user_id=request.user_id,
        success=request.success,
    )
    return ApiUsageResponse.from_record(record)
