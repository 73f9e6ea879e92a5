"""구독 갱신 스케줄러"""

from worker.renewal.scheduler import RenewalScheduler

__all__ = ["RenewalScheduler"]
