"""
스토리지 모듈

거래, 마켓 큐, 구독/갱신, 재무 스냅샷 저장소 제공
"""

from core.storage.finance_store import FinanceStore
from core.storage.queue_store import MarketQueueStore
from core.storage.renewal_store import RenewalStore
from core.storage.subscription_store import SubscriptionStore
from core.storage.transaction_store import TransactionStore

__all__ = [
    "FinanceStore",
    "MarketQueueStore",
    "RenewalStore",
    "SubscriptionStore",
    "TransactionStore",
]
