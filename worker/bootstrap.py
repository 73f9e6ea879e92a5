"""
Worker Bootstrap

설정 로드, 의존성 주입, 메인 루프 관리.

Job:
- QueueExecutionJob: 거래 스테이징 → 마켓 큐 실행
- RenewalJob: 구독 갱신 결제
"""

import asyncio
import logging
import signal
import sys
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.factory import create_market_executor, create_payment_gateway
from adapters.interfaces import IMarketExecutor, IPaymentGateway
from core.config.loader import Settings, get_settings
from core.ledger.entry_builder import RoundupEntryBuilder
from core.ledger.store import RoundupLedgerStore
from core.logging import setup_logging
from core.storage.queue_store import MarketQueueStore
from core.storage.renewal_store import RenewalStore
from core.storage.subscription_store import SubscriptionStore
from core.storage.transaction_store import TransactionStore
from worker.jobs.base import BaseJob
from worker.jobs.queue_job import QueueExecutionJob
from worker.jobs.renewal_job import RenewalJob
from worker.queue.executor import QueueExecutor
from worker.queue.stager import QueueStager
from worker.renewal.scheduler import RenewalScheduler

logger = logging.getLogger("worker")


class WorkerEngine:
    """Worker 엔진

    Args:
        settings: 애플리케이션 설정
        db: SQLite 어댑터 (스키마 초기화 완료)
        market_executor: 마켓 주문 협력자
        payment_gateway: 결제 협력자
        tick_interval: 메인 루프 tick 간격 (초)
    """

    def __init__(
        self,
        settings: Settings,
        db: SQLiteAdapter,
        market_executor: IMarketExecutor,
        payment_gateway: IPaymentGateway,
        tick_interval: float = 1.0,
    ):
        self.settings = settings
        self.db = db
        self.market_executor = market_executor
        self.payment_gateway = payment_gateway
        self.tick_interval = tick_interval
        self._tick_count = 0

        worker_cfg = settings.worker

        transaction_store = TransactionStore(db)
        ledger_store = RoundupLedgerStore(db)
        queue_store = MarketQueueStore(db)

        builder = RoundupEntryBuilder(
            fee_schedule=settings.fee_schedule,
            whole_dollar_amount=settings.whole_dollar_round_up,
            ledger_store=ledger_store,
            transaction_store=transaction_store,
        )
        stager = QueueStager(
            transaction_store,
            queue_store,
            builder,
            batch_timeout=worker_cfg.batch_timeout_seconds,
        )
        executor = QueueExecutor(
            queue_store,
            market_executor,
            execution_timeout=worker_cfg.execution_timeout_seconds,
            batch_timeout=worker_cfg.batch_timeout_seconds,
        )
        scheduler = RenewalScheduler(
            SubscriptionStore(db),
            RenewalStore(db),
            payment_gateway,
            policy=settings.renewal_policy,
            lease_seconds=worker_cfg.claim_lease_seconds,
            charge_timeout=worker_cfg.execution_timeout_seconds,
            batch_timeout=worker_cfg.batch_timeout_seconds,
        )

        # 배치 내부 deadline이 먼저 동작하도록 Job 제한 시간은 여유를 둔다
        job_timeout = worker_cfg.batch_timeout_seconds * 2

        self.jobs: list[BaseJob] = [
            QueueExecutionJob(
                stager,
                executor,
                interval_seconds=worker_cfg.queue_interval_seconds,
                timeout_seconds=job_timeout,
            ),
            RenewalJob(
                scheduler,
                interval_seconds=worker_cfg.renewal_interval_seconds,
                timeout_seconds=job_timeout,
            ),
        ]

    async def tick(self) -> list[dict[str, Any]]:
        """실행 시점이 된 Job 실행"""
        results = []
        for job in self.jobs:
            if job.should_run():
                results.append(await job.run())
        return results

    async def run_main_loop(self, shutdown_event: asyncio.Event) -> None:
        """메인 루프

        매 tick마다 실행 간격이 지난 Job을 순서대로 실행.
        """
        logger.info("메인 루프 시작")

        while not shutdown_event.is_set():
            self._tick_count += 1

            try:
                await self.tick()

                # Heartbeat 로그 (약 5분마다)
                if self._tick_count % 300 == 0:
                    self._log_heartbeat()

            except Exception as e:
                logger.error(f"메인 루프 에러: {e}", exc_info=True)

            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.tick_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("메인 루프 종료")

    async def stop(self) -> None:
        """협력자 연결 종료"""
        await self.market_executor.close()
        await self.payment_gateway.close()

    def _log_heartbeat(self) -> None:
        logger.info(
            "Worker heartbeat",
            extra={
                "tick": self._tick_count,
                "jobs": [job.get_stats() for job in self.jobs],
            },
        )


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            # Windows 이벤트 루프는 미지원
            pass


async def main() -> None:
    """Worker 메인 함수"""
    setup_logging("worker")

    logger.info("=" * 60)
    logger.info("RoundupEngine Worker 시작")
    logger.info("=" * 60)

    # 1. 설정 로드
    try:
        settings = get_settings()
    except Exception as e:
        logger.error(f"설정 로드 실패: {e}")
        sys.exit(1)

    logger.info(f"Mode: {settings.mode.value}")
    logger.info(f"DB: {settings.db_path}")

    # 2. DB 연결 및 스키마 초기화
    async with SQLiteAdapter(settings.db_path) as db:
        await init_schema(db)

        # 3. 협력자 생성
        market_executor = create_market_executor(settings.config)
        payment_gateway = create_payment_gateway(settings.config)

        engine = WorkerEngine(settings, db, market_executor, payment_gateway)

        # 4. 종료 이벤트 설정
        shutdown_event = asyncio.Event()
        _install_signal_handlers(shutdown_event)

        logger.info("Worker 메인 루프 시작 (종료: Ctrl+C)")

        try:
            await engine.run_main_loop(shutdown_event)
        except asyncio.CancelledError:
            logger.info("메인 루프 취소됨")
        finally:
            await engine.stop()

    logger.info("=" * 60)
    logger.info("RoundupEngine Worker 정상 종료")
    logger.info("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
