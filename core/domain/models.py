"""
도메인 레코드

Transaction, RoundupLedgerEntry, MarketQueueItem, RenewalQueueItem,
RenewalHistoryItem, Subscription, ApiUsageRecord 및 배치 결과 타입.

모든 레코드는 불변(frozen) dataclass이며 to_dict()/from_dict()로
손실 없이 직렬화된다 (Decimal → str, datetime/date → ISO 문자열).
SQLite 행 역시 같은 표현으로 저장되므로 from_dict()로 바로 복원한다.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from core.domain.errors import InvalidAmount
from core.types import (
    BillingCycle,
    LedgerStatus,
    QueueStatus,
    RenewalResult,
    RenewalStatus,
    SubscriptionStatus,
    TransactionStatus,
)


def _to_primitive(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class Record:
    """직렬화 믹스인

    하위 클래스는 변환이 필요한 필드를 클래스 속성으로 선언한다.
    """

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ()
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ()
    DATE_FIELDS: ClassVar[tuple[str, ...]] = ()
    BOOL_FIELDS: ClassVar[tuple[str, ...]] = ()
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {}

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (직렬화용)"""
        return {f.name: _to_primitive(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        """딕셔너리에서 생성 (역직렬화용)

        알 수 없는 키는 무시한다.
        """
        names = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}

        for key, raw in data.items():
            if key not in names:
                continue
            if raw is None:
                values[key] = None
            elif key in cls.DECIMAL_FIELDS:
                values[key] = Decimal(str(raw))
            elif key in cls.DATETIME_FIELDS:
                values[key] = raw if isinstance(raw, datetime) else datetime.fromisoformat(raw)
            elif key in cls.DATE_FIELDS:
                values[key] = raw if isinstance(raw, date) else date.fromisoformat(raw)
            elif key in cls.BOOL_FIELDS:
                values[key] = bool(raw)
            elif key in cls.ENUM_FIELDS:
                values[key] = cls.ENUM_FIELDS[key](raw)
            else:
                values[key] = raw

        return cls(**values)


# -------------------------------------------------------------------------
# 정산 파이프라인
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class Transaction(Record):
    """구매 거래

    Args:
        id: 거래 ID
        user_id: 소유 사용자 ID
        merchant: 가맹점
        amount: 결제 금액 (소수 2자리)
        round_up: 계산된 라운드업 금액
        fee: 라운드업 수수료
        ticker: 매핑된 투자 종목 (없으면 스테이징 대상 아님)
        status: 거래 상태
    """

    id: int
    user_id: int
    merchant: str
    amount: Decimal | None
    round_up: Decimal | None = None
    fee: Decimal | None = None
    ticker: str | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount", "round_up", "fee")
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("created_at", "updated_at")
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {"status": TransactionStatus}

    @property
    def is_stageable(self) -> bool:
        """스테이징 대상 여부 (종목 매핑 + pending)"""
        return self.ticker is not None and self.status == TransactionStatus.PENDING


@dataclass(frozen=True)
class RoundupLedgerEntry(Record):
    """라운드업 원장 항목

    거래당 하나. transaction_id가 없는 고아 항목도 허용.
    swept 상태가 되면 어떤 필드도 변경할 수 없다 (저장소 트리거로 강제).
    """

    id: int | None
    transaction_id: int | None
    user_id: int
    round_up_amount: Decimal
    fee_amount: Decimal
    status: LedgerStatus = LedgerStatus.PENDING
    swept_at: datetime | None = None
    created_at: datetime | None = None

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("round_up_amount", "fee_amount")
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("swept_at", "created_at")
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {"status": LedgerStatus}

    def __post_init__(self) -> None:
        if self.round_up_amount < 0:
            raise InvalidAmount(f"round_up_amount는 음수일 수 없습니다: {self.round_up_amount}")
        if self.fee_amount < 0:
            raise InvalidAmount(f"fee_amount는 음수일 수 없습니다: {self.fee_amount}")

    @property
    def is_swept(self) -> bool:
        return self.status == LedgerStatus.SWEPT


@dataclass(frozen=True)
class MarketQueueItem(Record):
    """마켓 큐 항목 (스테이징된 투자 주문)

    processed_at은 status가 completed/failed일 때만 설정된다.
    """

    id: int | None
    transaction_id: int | None
    user_id: int
    ticker: str
    amount: Decimal
    status: QueueStatus = QueueStatus.PENDING
    created_at: datetime | None = None
    processed_at: datetime | None = None
    error_reason: str | None = None
    order_ref: str | None = None

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount",)
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("created_at", "processed_at")
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {"status": QueueStatus}

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise InvalidAmount(f"큐 항목 금액은 음수일 수 없습니다: {self.amount}")
        if self.is_terminal != (self.processed_at is not None):
            raise ValueError(
                f"processed_at은 종료 상태에서만 설정됩니다 "
                f"(status={self.status.value}, processed_at={self.processed_at})"
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueueStatus.COMPLETED, QueueStatus.FAILED)


# -------------------------------------------------------------------------
# 구독 갱신
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class Subscription(Record):
    """사용자 구독"""

    id: int
    user_id: int
    plan_id: str
    amount: Decimal
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    current_period_start: date | None = None
    current_period_end: date | None = None
    next_billing_date: date | None = None
    auto_renewal: bool = True
    renewal_attempts: int = 0
    last_renewal_attempt: datetime | None = None
    payment_method_id: str | None = None
    created_at: datetime | None = None

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount",)
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("last_renewal_attempt", "created_at")
    DATE_FIELDS: ClassVar[tuple[str, ...]] = (
        "current_period_start",
        "current_period_end",
        "next_billing_date",
    )
    BOOL_FIELDS: ClassVar[tuple[str, ...]] = ("auto_renewal",)
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {
        "billing_cycle": BillingCycle,
        "status": SubscriptionStatus,
    }


@dataclass(frozen=True)
class RenewalQueueItem(Record):
    """갱신 큐 항목 (예정된 구독 결제)

    attempt_count는 단조 증가, error_message는 이전 시도가 실패했을 때만 설정.
    """

    id: int | None
    subscription_id: int
    scheduled_date: date
    status: RenewalStatus = RenewalStatus.SCHEDULED
    attempt_count: int = 0
    error_message: str | None = None
    next_attempt_at: datetime | None = None
    claimed_at: datetime | None = None
    created_at: datetime | None = None

    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("next_attempt_at", "claimed_at", "created_at")
    DATE_FIELDS: ClassVar[tuple[str, ...]] = ("scheduled_date",)
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {"status": RenewalStatus}


@dataclass(frozen=True)
class RenewalHistoryItem(Record):
    """갱신 이력 (append-only)"""

    id: int | None
    subscription_id: int
    renewal_date: date
    amount: Decimal
    status: RenewalResult
    payment_method: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount",)
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("created_at",)
    DATE_FIELDS: ClassVar[tuple[str, ...]] = ("renewal_date",)
    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {"status": RenewalResult}


@dataclass(frozen=True)
class ApiUsageRecord(Record):
    """외부 API 사용 비용 기록"""

    id: int | None
    service: str
    cost: Decimal
    endpoint: str | None = None
    user_id: int | None = None
    success: bool = True
    created_at: datetime | None = None

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("cost",)
    DATETIME_FIELDS: ClassVar[tuple[str, ...]] = ("created_at",)
    BOOL_FIELDS: ClassVar[tuple[str, ...]] = ("success",)


# -------------------------------------------------------------------------
# 배치 결과
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemError:
    """배치 항목별 오류

    Args:
        ref_id: 대상 ID (거래 ID 또는 큐 항목 ID)
        code: 오류 코드
        message: 오류 메시지
    """

    ref_id: int | None
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"ref_id": self.ref_id, "code": self.code, "message": self.message}


@dataclass
class BatchResult:
    """배치 작업 결과

    항목별 실패는 errors에 모으며 형제 항목 처리를 중단하지 않는다.
    timed_out이면 부분 완료 상태이며 재실행해도 안전하다.
    """

    queued: int = 0
    processed: int = 0
    errors: list[ItemError] = field(default_factory=list)
    timed_out: bool = False

    def add_error(self, ref_id: int | None, code: str | Enum, message: str) -> None:
        self.errors.append(ItemError(ref_id=ref_id, code=_to_primitive(code), message=message))

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queued": self.queued,
            "processed": self.processed,
            "errors": [e.to_dict() for e in self.errors],
            "timed_out": self.timed_out,
        }


@dataclass(frozen=True)
class RenewalOutcome:
    """단일 갱신 시도 결과"""

    subscription_id: int
    status: RenewalStatus
    attempt_count: int
    history_id: int | None = None
    error_message: str | None = None
    next_attempt_at: datetime | None = None
    next_billing_date: date | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RenewalStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "history_id": self.history_id,
            "error_message": self.error_message,
            "next_attempt_at": _to_primitive(self.next_attempt_at),
            "next_billing_date": _to_primitive(self.next_billing_date),
        }


def with_status(record: Any, status: Enum, **changes: Any) -> Any:
    """상태가 변경된 복사본 반환"""
    return replace(record, status=status, **changes)
