"""마켓 큐 스테이징/실행"""

from worker.queue.executor import QueueExecutor
from worker.queue.stager import QueueStager

__all__ = ["QueueExecutor", "QueueStager"]
