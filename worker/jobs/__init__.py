"""
Worker Jobs

주기적으로 실행되는 배치 작업.
"""

from worker.jobs.base import BaseJob
from worker.jobs.queue_job import QueueExecutionJob
from worker.jobs.renewal_job import RenewalJob

__all__ = [
    "BaseJob",
    "QueueExecutionJob",
    "RenewalJob",
]
