"""
Queue Executor

pending 큐 항목을 CAS로 클레임한 뒤 마켓 실행기에 전달.

결과별 처리:
- 체결: completed + processed_at + order_ref (거래 completed, 원장 swept)
- 거부 (MarketExecutionError): failed + error_reason (거래/원장 failed)
- 타임아웃/연결 실패: 결과 불명, processing 유지 (EXECUTION_UNCERTAIN)
- 그 밖의 예상 밖 예외: 결과 불명과 같이 처리, 배치는 계속

processing 항목은 다시 선택되지 않는다. 운영자 requeue로만 pending에 복귀.
"""

import asyncio
import logging

from adapters.interfaces import IMarketExecutor
from core.constants import Defaults
from core.domain.errors import (
    CollaboratorUnavailableError,
    MarketExecutionError,
    RoundupError,
    TransientStoreError,
)
from core.domain.models import BatchResult, MarketQueueItem, with_status
from core.storage.queue_store import MarketQueueStore
from core.types import ItemErrorCode, QueueStatus
from core.utils.idempotency import make_order_key
from core.utils.retry import with_store_retry

logger = logging.getLogger(__name__)


class QueueExecutor:
    """마켓 큐 실행기

    여러 세션이 동시에 execute_all()을 호출해도 항목별 CAS 클레임 덕분에
    각 항목은 한 번만 실행기로 전달된다.

    Args:
        queue_store: 마켓 큐 저장소
        market_executor: 주문 실행 협력자
        execution_timeout: 주문 1건 제한 시간 (초)
        batch_timeout: 배치 제한 시간 (초, None이면 무제한)
        batch_size: 한 번에 조회할 최대 항목 수
    """

    def __init__(
        self,
        queue_store: MarketQueueStore,
        market_executor: IMarketExecutor,
        execution_timeout: float = Defaults.EXECUTION_TIMEOUT_SEC,
        batch_timeout: float | None = Defaults.BATCH_TIMEOUT_SEC,
        batch_size: int | None = None,
    ):
        self.queue_store = queue_store
        self.market_executor = market_executor
        self.execution_timeout = execution_timeout
        self.batch_timeout = batch_timeout
        self.batch_size = batch_size

        # 통계
        self._executed_count = 0
        self._rejected_count = 0
        self._uncertain_count = 0

    async def execute_all(self) -> BatchResult:
        """pending 항목 전체 실행 (id 순)

        Returns:
            queued: 조회된 pending 항목 수
            processed: 체결 완료 수
            errors: 항목별 실패 (거부/불명/선점/저장소 오류)
        """
        items = await with_store_retry(
            lambda: self.queue_store.list_by_status(QueueStatus.PENDING, self.batch_size),
            name="list_pending",
        )

        result = BatchResult(queued=len(items))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout if self.batch_timeout else None

        for item in items:
            if deadline is not None and loop.time() >= deadline:
                result.timed_out = True
                logger.warning(
                    "실행 배치 제한 시간 초과",
                    extra={"processed": result.processed, "next_item_id": item.id},
                )
                break

            try:
                await self._execute_one(item, result)
            except TransientStoreError as e:
                result.add_error(item.id, ItemErrorCode.STORE_ERROR, e.message)
                logger.warning(
                    f"큐 항목 저장소 오류: {e.message}",
                    extra={"queue_item_id": item.id},
                )
            except RoundupError as e:
                result.add_error(item.id, e.code, e.message)
                logger.warning(
                    f"큐 항목 처리 실패: {e}",
                    extra={"queue_item_id": item.id},
                )
            except Exception as e:
                # 클레임 이후 저장 단계 오류: 항목 상태 불명
                result.add_error(
                    item.id,
                    ItemErrorCode.EXECUTION_UNCERTAIN,
                    f"{type(e).__name__}: {e}",
                )
                logger.error(
                    "큐 항목 처리 중 예상 밖 오류",
                    extra={"queue_item_id": item.id},
                    exc_info=True,
                )

        if items:
            logger.info(
                "큐 실행 완료",
                extra={
                    "queued": result.queued,
                    "processed": result.processed,
                    "failed": result.failed,
                    "timed_out": result.timed_out,
                },
            )
        return result

    async def _execute_one(self, item: MarketQueueItem, result: BatchResult) -> None:
        claimed = await with_store_retry(
            lambda: self.queue_store.claim(item.id),
            name="claim",
        )
        if not claimed:
            result.add_error(
                item.id,
                ItemErrorCode.ALREADY_CLAIMED,
                f"큐 항목 {item.id}은(는) 다른 세션이 이미 클레임했습니다",
            )
            return

        processing = with_status(item, QueueStatus.PROCESSING)
        key = make_order_key(item.id)

        try:
            execution = await asyncio.wait_for(
                self.market_executor.execute(processing, key),
                timeout=self.execution_timeout,
            )

        except MarketExecutionError as e:
            self._rejected_count += 1
            await with_store_retry(
                lambda: self.queue_store.mark_failed(item.id, e.message),
                name="mark_failed",
            )
            result.add_error(item.id, ItemErrorCode.EXECUTION_REJECTED, e.message)
            logger.warning(
                f"주문 거부: {e.message}",
                extra={"queue_item_id": item.id, "ticker": item.ticker},
            )
            return

        except (asyncio.TimeoutError, CollaboratorUnavailableError) as e:
            message = str(e) or f"실행 제한 시간 {self.execution_timeout}초 초과"
            self._report_uncertain(item, result, message)
            return

        except Exception as e:
            # 예상 밖 오류도 주문 전달 여부를 알 수 없음
            self._report_uncertain(item, result, f"{type(e).__name__}: {e}", exc_info=True)
            return

        await with_store_retry(
            lambda: self.queue_store.mark_completed(item.id, execution.order_ref),
            name="mark_completed",
        )
        self._executed_count += 1
        result.processed += 1

        logger.debug(
            "큐 항목 완료",
            extra={"queue_item_id": item.id, "order_ref": execution.order_ref},
        )

    def _report_uncertain(
        self,
        item: MarketQueueItem,
        result: BatchResult,
        message: str,
        exc_info: bool = False,
    ) -> None:
        self._uncertain_count += 1
        result.add_error(item.id, ItemErrorCode.EXECUTION_UNCERTAIN, message)
        logger.error(
            "주문 결과 불명, processing 유지 (운영자 확인 필요)",
            extra={"queue_item_id": item.id, "ticker": item.ticker, "error": message},
            exc_info=exc_info,
        )

    def get_stats(self) -> dict[str, int]:
        """실행 통계"""
        return {
            "executed": self._executed_count,
            "rejected": self._rejected_count,
            "uncertain": self._uncertain_count,
        }
