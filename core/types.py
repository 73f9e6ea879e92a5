"""
타입 정의 모듈

Enum 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


class RunMode(str, Enum):
    """실행 모드 (실서비스 / 샌드박스)"""

    PRODUCTION = "production"
    SANDBOX = "sandbox"


class TransactionStatus(str, Enum):
    """구매 거래 상태

    mapped: 마켓 큐에 스테이징됨 (실행 대기)
    """

    PENDING = "pending"
    MAPPED = "mapped"
    COMPLETED = "completed"
    FAILED = "failed"


class LedgerStatus(str, Enum):
    """라운드업 원장 항목 상태"""

    PENDING = "pending"
    ALLOCATED = "allocated"
    SWEPT = "swept"  # 불변
    FAILED = "failed"


class QueueStatus(str, Enum):
    """마켓 큐 항목 상태"""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RenewalStatus(str, Enum):
    """갱신 큐 항목 상태

    succeeded 항목은 큐에서 삭제되고 이력으로만 남음.
    """

    SCHEDULED = "scheduled"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class RenewalResult(str, Enum):
    """갱신 이력 결과"""

    SUCCESS = "success"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    """구독 상태"""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class BillingCycle(str, Enum):
    """결제 주기"""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class FeeMode(str, Enum):
    """수수료 방식"""

    PERCENTAGE = "percentage"
    FLAT = "flat"


class ItemErrorCode(str, Enum):
    """배치 처리 항목별 오류 코드"""

    DUPLICATE_STAGING = "DUPLICATE_STAGING"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    STORE_ERROR = "STORE_ERROR"
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    EXECUTION_REJECTED = "EXECUTION_REJECTED"
    EXECUTION_UNCERTAIN = "EXECUTION_UNCERTAIN"
    RENEWAL_FAILED = "RENEWAL_FAILED"
