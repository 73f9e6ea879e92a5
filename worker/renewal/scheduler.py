"""
Renewal Scheduler

구독 갱신 큐 항목을 리스로 클레임하고 결제 게이트웨이에 청구.

결과별 처리:
- 결제 성공: success 이력 + 구독 기간 전진 + 큐 항목 삭제 (+ 다음 주기 예약)
- 결제 거절: attempt_count 증가 + failed 이력, 상한 도달 시 exhausted / past_due
- 타임아웃/연결 실패: 결과 불명. 기록하지 않고 리스 만료 후 같은 멱등 키로 재시도
- 그 밖의 예상 밖 예외: 결과 불명과 같이 처리, 배치는 계속
"""

import asyncio
import logging
from datetime import datetime

from adapters.interfaces import IPaymentGateway
from adapters.models import ChargeRequest
from core.constants import Defaults
from core.domain.errors import (
    AlreadyClaimed,
    AlreadyTerminal,
    CollaboratorUnavailableError,
    PaymentDeclinedError,
    RoundupError,
    TransientStoreError,
)
from core.domain.models import BatchResult, RenewalOutcome, RenewalQueueItem, Subscription
from core.domain.state_machines import StateMachineError
from core.storage.renewal_store import RenewalStore
from core.storage.subscription_store import SubscriptionStore
from core.types import ItemErrorCode, RenewalStatus, SubscriptionStatus
from core.utils.idempotency import make_charge_key
from core.utils.retry import RetryPolicy, with_store_retry
from core.utils.timezone import now_utc

logger = logging.getLogger(__name__)


class RenewalScheduler:
    """구독 갱신 스케줄러

    Args:
        subscription_store: 구독 저장소
        renewal_store: 갱신 큐/이력 저장소
        payment_gateway: 결제 협력자
        policy: 재시도 정책 (최대 시도 횟수, 백오프)
        lease_seconds: 클레임 리스 (초)
        charge_timeout: 청구 1건 제한 시간 (초)
        batch_timeout: run_due 배치 제한 시간 (초, None이면 무제한)

    사용 예시:
    ```python
    scheduler = RenewalScheduler(subs, renewals, gateway, RetryPolicy(max_attempts=3))

    outcome = await scheduler.attempt_renewal(subscription_id=7)
    if not outcome.succeeded:
        print(outcome.status, outcome.next_attempt_at)

    result = await scheduler.run_due()
    ```
    """

    def __init__(
        self,
        subscription_store: SubscriptionStore,
        renewal_store: RenewalStore,
        payment_gateway: IPaymentGateway,
        policy: RetryPolicy | None = None,
        lease_seconds: int = Defaults.RENEWAL_CLAIM_LEASE_SEC,
        charge_timeout: float = Defaults.EXECUTION_TIMEOUT_SEC,
        batch_timeout: float | None = Defaults.BATCH_TIMEOUT_SEC,
    ):
        self.subscription_store = subscription_store
        self.renewal_store = renewal_store
        self.payment_gateway = payment_gateway
        self.policy = policy or RetryPolicy()
        self.lease_seconds = lease_seconds
        self.charge_timeout = charge_timeout
        self.batch_timeout = batch_timeout

    async def schedule_renewal(self, subscription_id: int) -> RenewalQueueItem:
        """구독의 다음 결제일로 갱신 예약 (멱등)

        Raises:
            NotFound: 구독 없음
            AlreadyTerminal: 해지된 구독
        """
        subscription = await self.subscription_store.require(subscription_id)
        self._ensure_renewable(subscription)

        scheduled_date = subscription.next_billing_date or now_utc().date()
        return await self.renewal_store.schedule(subscription.id, scheduled_date)

    async def attempt_renewal(
        self,
        subscription_id: int,
        now: datetime | None = None,
    ) -> RenewalOutcome:
        """구독 하나의 갱신 즉시 시도 (운영자 호출)

        미종료 큐 항목이 없으면 먼저 예약한다.
        결제일 도래 여부와 백오프 대기는 확인하지 않는다.

        Raises:
            NotFound: 구독 없음
            AlreadyTerminal: 해지된 구독 또는 재시도가 소진된 갱신
            AlreadyClaimed: 다른 세션이 처리 중
        """
        now = now or now_utc()
        subscription = await self.subscription_store.require(subscription_id)
        self._ensure_renewable(subscription)

        item = await self.renewal_store.get_open_for_subscription(subscription.id)
        if item is None:
            latest = await self.renewal_store.get_latest_for_subscription(subscription.id)
            if latest is not None and latest.status == RenewalStatus.EXHAUSTED:
                raise AlreadyTerminal(
                    f"구독 {subscription.id}의 갱신 재시도가 소진되었습니다 "
                    f"({latest.attempt_count}회)"
                )
            item = await self.renewal_store.schedule(
                subscription.id,
                subscription.next_billing_date or now.date(),
            )

        return await self._attempt(item, subscription, now)

    async def run_due(
        self,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> BatchResult:
        """실행 시점이 된 갱신 항목 전체 처리

        Returns:
            queued: 대상 항목 수
            processed: 결제 성공 수
            errors: 항목별 실패 (ref_id = 갱신 큐 항목 ID)
        """
        now = now or now_utc()
        due = await with_store_retry(
            lambda: self.renewal_store.list_due(now, limit),
            name="list_due",
        )

        result = BatchResult(queued=len(due))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout if self.batch_timeout else None

        for item in due:
            if deadline is not None and loop.time() >= deadline:
                result.timed_out = True
                logger.warning(
                    "갱신 배치 제한 시간 초과",
                    extra={"processed": result.processed, "next_item_id": item.id},
                )
                break

            try:
                subscription = await self.subscription_store.require(item.subscription_id)
                self._ensure_renewable(subscription)
                outcome = await self._attempt(item, subscription, now)

            except AlreadyTerminal as e:
                result.add_error(item.id, e.code, e.message)
                continue
            except (AlreadyClaimed, StateMachineError) as e:
                result.add_error(item.id, ItemErrorCode.ALREADY_CLAIMED, e.message)
                continue
            except TransientStoreError as e:
                result.add_error(item.id, ItemErrorCode.STORE_ERROR, e.message)
                logger.warning(
                    f"갱신 저장소 오류: {e.message}",
                    extra={"renewal_item_id": item.id},
                )
                continue
            except RoundupError as e:
                result.add_error(item.id, e.code, e.message)
                logger.warning(
                    f"갱신 처리 실패: {e}",
                    extra={"renewal_item_id": item.id},
                )
                continue
            except Exception as e:
                result.add_error(
                    item.id,
                    ItemErrorCode.EXECUTION_UNCERTAIN,
                    f"{type(e).__name__}: {e}",
                )
                logger.error(
                    "갱신 처리 중 예상 밖 오류",
                    extra={"renewal_item_id": item.id},
                    exc_info=True,
                )
                continue

            if outcome.succeeded:
                result.processed += 1
            elif outcome.status in (RenewalStatus.RETRYING, RenewalStatus.EXHAUSTED):
                result.add_error(
                    item.id, ItemErrorCode.RENEWAL_FAILED, outcome.error_message or ""
                )
            else:
                result.add_error(
                    item.id, ItemErrorCode.EXECUTION_UNCERTAIN, outcome.error_message or ""
                )

        if due:
            logger.info(
                "갱신 배치 완료",
                extra={
                    "queued": result.queued,
                    "processed": result.processed,
                    "failed": result.failed,
                    "timed_out": result.timed_out,
                },
            )
        return result

    # -------------------------------------------------------------------------
    # 내부
    # -------------------------------------------------------------------------

    def _ensure_renewable(self, subscription: Subscription) -> None:
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise AlreadyTerminal(f"구독 {subscription.id}은(는) 해지되었습니다")

    async def _attempt(
        self,
        item: RenewalQueueItem,
        subscription: Subscription,
        now: datetime,
    ) -> RenewalOutcome:
        claimed = await self.renewal_store.claim(item.id, now, self.lease_seconds)
        if claimed is None:
            raise AlreadyClaimed(f"갱신 항목 {item.id}은(는) 다른 세션이 처리 중입니다")

        attempt = claimed.attempt_count + 1
        request = ChargeRequest(
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            amount=subscription.amount,
            payment_method_id=subscription.payment_method_id,
            idempotency_key=make_charge_key(claimed.id, attempt),
            metadata={"plan_id": subscription.plan_id, "attempt": attempt},
        )

        try:
            await asyncio.wait_for(
                self.payment_gateway.charge(request),
                timeout=self.charge_timeout,
            )

        except PaymentDeclinedError as e:
            return await self._record_failure(claimed, subscription, e.message, now)

        except (asyncio.TimeoutError, CollaboratorUnavailableError) as e:
            message = str(e) or f"결제 제한 시간 {self.charge_timeout}초 초과"
            return self._uncertain(claimed, subscription, request, message)

        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            return self._uncertain(claimed, subscription, request, message, exc_info=True)

        success = await self.renewal_store.record_success(claimed, subscription, now)

        logger.info(
            "구독 갱신 성공",
            extra={
                "subscription_id": subscription.id,
                "amount": str(subscription.amount),
                "attempt": attempt,
                "next_billing_date": success.next_billing_date.isoformat(),
            },
        )
        return RenewalOutcome(
            subscription_id=subscription.id,
            status=RenewalStatus.SUCCEEDED,
            attempt_count=attempt,
            history_id=success.history_id,
            next_billing_date=success.next_billing_date,
        )

    def _uncertain(
        self,
        claimed: RenewalQueueItem,
        subscription: Subscription,
        request: ChargeRequest,
        message: str,
        exc_info: bool = False,
    ) -> RenewalOutcome:
        """결제 결과 불명: 아무것도 기록하지 않음 (리스 만료 후 같은 키로 재시도)"""
        logger.error(
            "갱신 결제 결과 불명, 리스 만료 후 재시도",
            extra={
                "subscription_id": subscription.id,
                "renewal_item_id": claimed.id,
                "idempotency_key": request.idempotency_key,
                "error": message,
            },
            exc_info=exc_info,
        )
        return RenewalOutcome(
            subscription_id=subscription.id,
            status=claimed.status,
            attempt_count=claimed.attempt_count,
            error_message=message,
        )

    async def _record_failure(
        self,
        item: RenewalQueueItem,
        subscription: Subscription,
        error_message: str,
        now: datetime,
    ) -> RenewalOutcome:
        attempt = item.attempt_count + 1
        exhausted = self.policy.is_exhausted(attempt)
        next_attempt_at = None if exhausted else self.policy.next_attempt_at(attempt, now)

        updated, history_id = await self.renewal_store.record_failure(
            item,
            subscription,
            error_message=error_message,
            exhausted=exhausted,
            next_attempt_at=next_attempt_at,
            now=now,
        )

        if exhausted:
            logger.warning(
                "구독 갱신 재시도 소진, past_due 전환",
                extra={
                    "subscription_id": subscription.id,
                    "attempts": updated.attempt_count,
                    "error": error_message,
                },
            )
        else:
            logger.warning(
                f"구독 갱신 실패 ({attempt}/{self.policy.max_attempts}): {error_message}",
                extra={
                    "subscription_id": subscription.id,
                    "next_attempt_at": next_attempt_at.isoformat() if next_attempt_at else None,
                },
            )

        return RenewalOutcome(
            subscription_id=subscription.id,
            status=updated.status,
            attempt_count=updated.attempt_count,
            history_id=history_id,
            error_message=error_message,
            next_attempt_at=updated.next_attempt_at,
        )
