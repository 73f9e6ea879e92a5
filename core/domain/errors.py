"""
도메인 예외 정의

모든 예외는 code 속성을 가지며 HTTP/배치 결과에서 그대로 노출된다.

- InvalidAmount: 잘못된/음수 금액 (쓰기 전에 거부, 재시도 안 함)
- NotFound: 참조 대상 없음
- TransientStoreError: 저장소 I/O 실패 (백오프 재시도 대상)
- AlreadyTerminal: 종료 상태 항목에 대한 전이 시도 (재시도 안 함)
- ReconciliationDrift: 대사 불일치 (진단용, 흐름을 막지 않음)
"""

from decimal import Decimal


class RoundupError(Exception):
    """도메인 예외 베이스

    Args:
        code: 오류 코드
        message: 오류 메시지
    """

    code: str = "ROUNDUP_ERROR"

    def __init__(self, message: str, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class InvalidAmount(RoundupError):
    """잘못된 금액 입력"""

    code = "INVALID_AMOUNT"


class NotFound(RoundupError):
    """참조 대상 없음"""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id}을(를) 찾을 수 없습니다")


class TransientStoreError(RoundupError):
    """저장소 일시 오류 (재시도 가능)"""

    code = "TRANSIENT_STORE_ERROR"


class AlreadyTerminal(RoundupError):
    """종료 상태 항목에 대한 전이 시도"""

    code = "ALREADY_TERMINAL"


class ImmutableEntryError(AlreadyTerminal):
    """swept 원장 항목 수정 시도"""

    code = "IMMUTABLE_ENTRY"


class DuplicateStaging(RoundupError):
    """동일 거래의 미종료 큐 항목이 이미 존재"""

    code = "DUPLICATE_STAGING"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"거래 {transaction_id}는 이미 큐에 스테이징되어 있습니다")


class DuplicateEntry(RoundupError):
    """동일 거래의 원장 항목이 이미 존재"""

    code = "DUPLICATE_ENTRY"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"거래 {transaction_id}의 라운드업 원장 항목이 이미 존재합니다")


class ReconciliationDrift(RoundupError):
    """수수료 대사 불일치 (진단값, 예외로 던지지 않음)"""

    code = "RECONCILIATION_DRIFT"

    def __init__(self, transaction_fees: Decimal, ledger_fees: Decimal):
        self.transaction_fees = transaction_fees
        self.ledger_fees = ledger_fees
        self.drift = abs(transaction_fees - ledger_fees)
        super().__init__(
            f"수수료 불일치: transactions={transaction_fees}, "
            f"ledger={ledger_fees}, drift={self.drift}"
        )


# -------------------------------------------------------------------------
# 외부 협력자 오류
# -------------------------------------------------------------------------


class MarketExecutionError(RoundupError):
    """주문 거부 (확정 실패)"""

    code = "EXECUTION_REJECTED"


class PaymentDeclinedError(RoundupError):
    """결제 거절"""

    code = "PAYMENT_DECLINED"


class CollaboratorUnavailableError(RoundupError):
    """외부 협력자 연결 실패 (결과 불명)"""

    code = "COLLABORATOR_UNAVAILABLE"


class AlreadyClaimed(RoundupError):
    """다른 세션이 이미 클레임한 항목"""

    code = "ALREADY_CLAIMED"
