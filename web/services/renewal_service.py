"""
갱신 서비스

구독 갱신 시도/배치 실행, 구독 해지, 갱신 큐와 이력 조회
"""

import logging

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IPaymentGateway
from core.config.loader import Settings
from core.domain.models import (
    BatchResult,
    RenewalHistoryItem,
    RenewalOutcome,
    RenewalQueueItem,
    Subscription,
)
from core.storage.renewal_store import RenewalStore
from core.storage.subscription_store import SubscriptionStore
from core.types import SubscriptionStatus
from worker.renewal.scheduler import RenewalScheduler

logger = logging.getLogger(__name__)


class RenewalService:
    """갱신 서비스

    Args:
        db: SQLite 어댑터
        settings: 애플리케이션 설정
        payment_gateway: 결제 협력자 (조회만 할 때는 None)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        settings: Settings,
        payment_gateway: IPaymentGateway | None = None,
    ):
        self.db = db
        self.settings = settings
        self.renewal_store = RenewalStore(db)
        self.subscription_store = SubscriptionStore(db)
        self.payment_gateway = payment_gateway

    def _scheduler(self) -> RenewalScheduler:
        if self.payment_gateway is None:
            raise RuntimeError("갱신 실행에는 payment_gateway가 필요합니다")

        worker = self.settings.worker
        return RenewalScheduler(
            self.subscription_store,
            self.renewal_store,
            self.payment_gateway,
            policy=self.settings.renewal_policy,
            lease_seconds=worker.claim_lease_seconds,
            charge_timeout=worker.execution_timeout_seconds,
            batch_timeout=worker.batch_timeout_seconds,
        )

    async def attempt(self, subscription_id: int) -> RenewalOutcome:
        return await self._scheduler().attempt_renewal(subscription_id)

    async def run_due(self, limit: int | None = None) -> BatchResult:
        return await self._scheduler().run_due(limit=limit)

    async def list_open(self) -> list[RenewalQueueItem]:
        """미종료 갱신 큐 항목 (운영자 확인용)"""
        return await self.renewal_store.list_open()

    async def list_history(
        self,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[RenewalHistoryItem], int]:
        return await self.renewal_store.list_history_page(limit, offset)

    async def cancel(self, subscription_id: int) -> Subscription:
        """구독 해지

        이후 갱신 시도는 해지된 구독으로 거부된다. 이미 해지된 구독은 그대로 반환.

        Raises:
            NotFound: 구독 없음
        """
        subscription = await self.subscription_store.require(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED:
            return subscription

        await self.subscription_store.set_status(subscription_id, SubscriptionStatus.CANCELLED)
        logger.info(
            "구독 해지",
            extra={"subscription_id": subscription_id, "from_status": subscription.status.value},
        )
        return await self.subscription_store.require(subscription_id)
