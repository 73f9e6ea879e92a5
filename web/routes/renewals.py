"""
구독 갱신 API 라우트

POST /api/renewals/{subscription_id}/attempt - 갱신 즉시 시도
POST /api/renewals/{subscription_id}/cancel  - 구독 해지
POST /api/renewals/run-due                   - 실행 시점이 된 갱신 일괄 처리
GET  /api/renewals/queue                     - 미종료 갱신 큐 (scheduled/retrying)
GET  /api/renewals/history                   - 갱신 이력 (최신순)
"""

from fastapi import APIRouter, Depends, Path, Query

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IPaymentGateway
from core.config.loader import Settings
from core.constants import Defaults
from web.dependencies import get_app_settings, get_db, get_db_write, get_payment_gateway
from web.models.requests import BatchRequest
from web.models.responses import (
    BatchResultResponse,
    RenewalHistoryListResponse,
    RenewalHistoryResponse,
    RenewalOutcomeResponse,
    RenewalQueueItemResponse,
    RenewalQueueListResponse,
    SubscriptionResponse,
)
from web.services.renewal_service import RenewalService

router = APIRouter(prefix="/api/renewals", tags=["Renewals"])


@router.post("/run-due", response_model=BatchResultResponse)
async def run_due_renewals(
    request: BatchRequest | None = None,
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    payment_gateway: IPaymentGateway = Depends(get_payment_gateway),
) -> BatchResultResponse:
    """실행 시점이 된 갱신 일괄 처리"""
    service = RenewalService(db, settings, payment_gateway)
    result = await service.run_due(request.limit if request else None)
    return BatchResultResponse.from_result(result)


@router.post("/{subscription_id}/attempt", response_model=RenewalOutcomeResponse)
async def attempt_renewal(
    subscription_id: int = Path(..., ge=1),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    payment_gateway: IPaymentGateway = Depends(get_payment_gateway),
) -> RenewalOutcomeResponse:
    """구독 갱신 즉시 시도

    결제 거절은 200 + succeeded=false로 반환한다.

    - 404: 구독 없음
    - 409: 해지된 구독, 재시도 소진, 다른 세션이 처리 중
    """
    service = RenewalService(db, settings, payment_gateway)
    outcome = await service.attempt(subscription_id)
    return RenewalOutcomeResponse.from_outcome(outcome)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: int = Path(..., ge=1),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> SubscriptionResponse:
    """구독 해지 (멱등)

    - 404: 구독 없음
    """
    service = RenewalService(db, settings)
    subscription = await service.cancel(subscription_id)
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/queue", response_model=RenewalQueueListResponse)
async def list_open_renewals(
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> RenewalQueueListResponse:
    """미종료 갱신 큐

    재시도 대기(retrying)와 리스 보유(claimed_at) 항목을 운영자가 확인한다.
    """
    service = RenewalService(db, settings)
    items = await service.list_open()
    return RenewalQueueListResponse(
        items=[RenewalQueueItemResponse.from_item(i) for i in items],
        total=len(items),
    )


@router.get("/history", response_model=RenewalHistoryListResponse)
async def list_renewal_history(
    limit: int = Query(default=Defaults.PAGE_LIMIT, ge=1, le=Defaults.PAGE_LIMIT_MAX),
    offset: int = Query(default=0, ge=0),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> RenewalHistoryListResponse:
    """갱신 이력"""
    service = RenewalService(db, settings)
    items, total = await service.list_history(limit, offset)
    return RenewalHistoryListResponse(
        items=[RenewalHistoryResponse.from_history(h) for h in items],
        total=total,
        limit=limit,
        offset=offset,
    )
