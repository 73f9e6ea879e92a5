"""
요청 스키마 (Pydantic)

Web API 요청 데이터 검증
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from core.constants import Defaults


class BatchRequest(BaseModel):
    """배치 실행 요청 (스테이징/실행/갱신 공통)"""

    limit: int | None = Field(
        default=None,
        ge=1,
        le=Defaults.PAGE_LIMIT_MAX,
        description="한 번에 처리할 최대 항목 수 (없으면 전체)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"limit": 100},
            ]
        }
    }


class RecordRoundupRequest(BaseModel):
    """라운드업 기록 요청 (본문 생략 가능)"""

    whole_dollar_amount: Decimal | None = Field(
        default=None,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="사용자 본인의 정수 금액 라운드업 설정 (없으면 설정 파일 기본값)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"whole_dollar_amount": "2.00"},
            ]
        }
    }


class AdjustLedgerRequest(BaseModel):
    """원장 금액 정정 요청 (swept 이전 항목만)"""

    round_up_amount: Decimal = Field(..., decimal_places=2, description="정정할 라운드업 금액")
    fee_amount: Decimal = Field(..., decimal_places=2, description="정정할 수수료")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"round_up_amount": "0.65", "fee_amount": "0.02"},
            ]
        }
    }


class EnqueueRequest(BaseModel):
    """수동 마켓 주문 큐잉 요청 (배분 주문 등)"""

    user_id: int = Field(..., ge=1)
    ticker: str = Field(..., min_length=1, max_length=12, description="투자 종목")
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="주문 금액")
    transaction_id: int | None = Field(default=None, ge=1, description="연결할 거래 (선택)")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"user_id": 3, "ticker": "VTI", "amount": "0.40", "transaction_id": 42},
            ]
        }
    }


class ApiUsageRequest(BaseModel):
    """외부 API 사용 비용 보고 (운영 비용으로 집계)"""

    service: str = Field(..., min_length=1, max_length=64, description="외부 서비스 이름")
    cost: Decimal = Field(..., ge=0, decimal_places=6, description="호출 비용 (USD)")
    endpoint: str | None = Field(default=None, max_length=256)
    user_id: int | None = Field(default=None, ge=1)
    success: bool = True

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"service": "ocr", "cost": "0.0015", "endpoint": "/v1/receipts", "user_id": 3},
            ]
        }
    }
