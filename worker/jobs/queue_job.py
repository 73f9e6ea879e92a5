"""
Queue Execution Job

스테이징 후 큐 실행을 한 번에 수행.
"""

from core.domain.models import BatchResult
from worker.jobs.base import BaseJob
from worker.queue.executor import QueueExecutor
from worker.queue.stager import QueueStager


class QueueExecutionJob(BaseJob):
    """스테이징 → 실행 Job

    결과의 queued는 스테이징 수, processed는 체결 완료 수.
    errors에는 두 단계의 항목 오류가 모두 담긴다.
    """

    def __init__(
        self,
        stager: QueueStager,
        executor: QueueExecutor,
        interval_seconds: float,
        timeout_seconds: float | None = None,
    ):
        super().__init__(interval_seconds, timeout_seconds)
        self.stager = stager
        self.executor = executor

    @property
    def job_name(self) -> str:
        return "QueueExecution"

    async def _do_run(self) -> BatchResult:
        staged = await self.stager.stage_eligible()
        executed = await self.executor.execute_all()

        return BatchResult(
            queued=staged.queued,
            processed=executed.processed,
            errors=staged.errors + executed.errors,
            timed_out=staged.timed_out or executed.timed_out,
        )
