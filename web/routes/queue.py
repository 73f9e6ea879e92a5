"""
마켓 큐 API 라우트

스테이징/실행 배치, 운영자 수동 큐잉/재큐잉, 큐 조회
"""

from fastapi import APIRouter, Depends, Path, Query

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IMarketExecutor
from core.config.loader import Settings
from core.constants import Defaults
from core.types import QueueStatus
from web.dependencies import get_app_settings, get_db, get_db_write, get_market_executor
from web.models.requests import BatchRequest, EnqueueRequest
from web.models.responses import BatchResultResponse, QueueItemResponse, QueueListResponse
from web.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/queue", tags=["Queue"])


@router.post("/stage", response_model=BatchResultResponse)
async def stage_transactions(
    request: BatchRequest | None = None,
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> BatchResultResponse:
    """스테이징

    종목이 매핑된 pending 거래를 큐 항목으로 만든다.
    거래별 결과를 errors에 담아 부분 성공으로 반환한다.
    """
    service = SettlementService(db, settings)
    result = await service.stage(request.limit if request else None)
    return BatchResultResponse.from_result(result)


@router.post("/execute", response_model=BatchResultResponse)
async def execute_queue(
    request: BatchRequest | None = None,
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    market_executor: IMarketExecutor = Depends(get_market_executor),
) -> BatchResultResponse:
    """pending 큐 항목 실행

    여러 운영자가 동시에 호출해도 항목별 CAS 클레임으로 중복 실행되지 않는다.
    """
    service = SettlementService(db, settings, market_executor)
    result = await service.execute(request.limit if request else None)
    return BatchResultResponse.from_result(result)


@router.post("", response_model=QueueItemResponse, status_code=201)
async def enqueue_item(
    request: EnqueueRequest,
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> QueueItemResponse:
    """수동 주문 큐잉

    거래 스테이징 없이 pending 항목을 만든다 (종목 배분 주문 등).

    - 404: transaction_id의 거래 없음
    - 409: 같은 거래의 미종료 항목 존재
    """
    service = SettlementService(db, settings)
    item = await service.enqueue(
        request.user_id, request.ticker, request.amount, request.transaction_id
    )
    return QueueItemResponse.from_item(item)


@router.post("/{item_id}/requeue", response_model=QueueItemResponse)
async def requeue_item(
    item_id: int = Path(..., ge=1),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> QueueItemResponse:
    """processing 항목 재큐잉

    - 404: 항목 없음
    - 409: 이미 completed/failed
    """
    service = SettlementService(db, settings)
    item = await service.requeue(item_id)
    return QueueItemResponse.from_item(item)


@router.get("", response_model=QueueListResponse)
async def list_queue(
    status: QueueStatus | None = Query(default=None),
    limit: int = Query(default=Defaults.PAGE_LIMIT, ge=1, le=Defaults.PAGE_LIMIT_MAX),
    offset: int = Query(default=0, ge=0),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> QueueListResponse:
    """큐 항목 목록"""
    service = SettlementService(db, settings)
    items, total, counts = await service.list_queue(limit, offset, status)
    return QueueListResponse(
        items=[QueueItemResponse.from_item(i) for i in items],
        total=total,
        limit=limit,
        offset=offset,
        counts=counts,
    )
