"""
Renewal Job

실행 시점이 된 구독 갱신 처리.
"""

from core.domain.models import BatchResult
from worker.jobs.base import BaseJob
from worker.renewal.scheduler import RenewalScheduler


class RenewalJob(BaseJob):
    """구독 갱신 Job"""

    def __init__(
        self,
        scheduler: RenewalScheduler,
        interval_seconds: float,
        timeout_seconds: float | None = None,
    ):
        super().__init__(interval_seconds, timeout_seconds)
        self.scheduler = scheduler

    @property
    def job_name(self) -> str:
        return "Renewal"

    async def _do_run(self) -> BatchResult:
        return await self.scheduler.run_due()
