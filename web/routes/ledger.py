"""
라운드업 원장 API 라우트

POST  /api/ledger/record/{transaction_id}      - 거래의 라운드업 원장 항목 기록
GET   /api/ledger/transaction/{transaction_id} - 거래별 원장 항목 조회
PATCH /api/ledger/{entry_id}                   - 운영자 금액 정정 (swept 이전만)
GET   /api/ledger                              - 원장 항목 페이지 조회
"""

from fastapi import APIRouter, Depends, Path, Query

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import Settings
from core.constants import Defaults
from core.types import LedgerStatus
from web.dependencies import get_app_settings, get_db, get_db_write
from web.models.requests import AdjustLedgerRequest, RecordRoundupRequest
from web.models.responses import LedgerEntryResponse, LedgerListResponse
from web.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/ledger", tags=["Ledger"])


@router.post("/record/{transaction_id}", response_model=LedgerEntryResponse, status_code=201)
async def record_roundup(
    transaction_id: int = Path(..., ge=1),
    request: RecordRoundupRequest | None = None,
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> LedgerEntryResponse:
    """라운드업 기록

    거래 금액으로 라운드업/수수료를 계산해 pending 원장 항목을 만든다.
    정수 금액 거래는 본문의 whole_dollar_amount(사용자 설정)를 라운드업으로 쓴다.

    - 404: 거래 없음
    - 400: 금액 누락/0 이하
    - 409: 이미 기록된 거래
    """
    service = SettlementService(db, settings)
    entry = await service.record_roundup(
        transaction_id, request.whole_dollar_amount if request else None
    )
    return LedgerEntryResponse.from_entry(entry)


@router.get("/transaction/{transaction_id}", response_model=LedgerEntryResponse)
async def get_entry_for_transaction(
    transaction_id: int = Path(..., ge=1),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> LedgerEntryResponse:
    """거래에 연결된 원장 항목 (404: 아직 기록 안 됨)"""
    service = SettlementService(db, settings)
    entry = await service.entry_for_transaction(transaction_id)
    return LedgerEntryResponse.from_entry(entry)


@router.patch("/{entry_id}", response_model=LedgerEntryResponse)
async def adjust_entry(
    request: AdjustLedgerRequest,
    entry_id: int = Path(..., ge=1),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
) -> LedgerEntryResponse:
    """원장 금액 정정

    - 404: 항목 없음
    - 400: 음수 금액
    - 409: swept 항목 (불변)
    """
    service = SettlementService(db, settings)
    entry = await service.adjust_entry(entry_id, request.round_up_amount, request.fee_amount)
    return LedgerEntryResponse.from_entry(entry)


@router.get("", response_model=LedgerListResponse)
async def list_ledger(
    status: LedgerStatus | None = Query(default=None),
    limit: int = Query(default=Defaults.PAGE_LIMIT, ge=1, le=Defaults.PAGE_LIMIT_MAX),
    offset: int = Query(default=0, ge=0),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> LedgerListResponse:
    """원장 항목 목록 (id 순)"""
    service = SettlementService(db, settings)
    entries, total = await service.list_ledger(limit, offset, status)
    return LedgerListResponse(
        items=[LedgerEntryResponse.from_entry(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )
