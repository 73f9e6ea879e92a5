"""
BaseJob

모든 Job의 베이스 클래스.
실행 간격 관리, 중복 실행 방지, 제한 시간, 통계 제공.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from core.domain.models import BatchResult
from core.utils.timezone import now_utc

logger = logging.getLogger(__name__)


class BaseJob(ABC):
    """Job 베이스 클래스

    Args:
        interval_seconds: 실행 간격 (초)
        timeout_seconds: 1회 실행 제한 시간 (초, None이면 무제한)
    """

    def __init__(
        self,
        interval_seconds: float,
        timeout_seconds: float | None = None,
    ):
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds

        self._last_run_time: datetime | None = None
        self._is_running: bool = False

        # 통계
        self._run_count = 0
        self._error_count = 0
        self._timeout_count = 0
        self._last_result: dict[str, Any] | None = None

    @property
    @abstractmethod
    def job_name(self) -> str:
        """Job 이름 (로깅용)"""
        ...

    def should_run(self, now: datetime | None = None) -> bool:
        """실행 필요 여부

        실행 중이 아니고 마지막 실행 이후 interval_seconds가 경과했으면 True.
        """
        if self._is_running:
            return False

        if self._last_run_time is None:
            return True

        now = now or now_utc()
        elapsed = (now - self._last_run_time).total_seconds()
        return elapsed >= self.interval_seconds

    async def run(self) -> dict[str, Any]:
        """Job 1회 실행

        Returns:
            실행 결과 dict (BatchResult.to_dict() + duration_ms)
            중복 실행이면 {"skipped": True}
        """
        if self._is_running:
            logger.warning(f"{self.job_name} Job이 이미 실행 중입니다")
            return {"skipped": True}

        self._is_running = True
        start_time = now_utc()
        self._run_count += 1

        try:
            if self.timeout_seconds:
                result = await asyncio.wait_for(self._do_run(), timeout=self.timeout_seconds)
            else:
                result = await self._do_run()

            summary = result.to_dict()
            summary["duration_ms"] = (now_utc() - start_time).total_seconds() * 1000

            if result.processed or result.queued or result.errors:
                logger.info(
                    f"{self.job_name} Job 완료",
                    extra={
                        "queued": result.queued,
                        "processed": result.processed,
                        "failed": result.failed,
                        "duration_ms": summary["duration_ms"],
                    },
                )
            else:
                logger.debug(f"{self.job_name} Job 완료: 처리 대상 없음")

            self._last_result = summary
            return summary

        except asyncio.TimeoutError:
            # 부분 완료, 다음 주기에 재실행
            self._timeout_count += 1
            logger.warning(
                f"{self.job_name} Job 제한 시간 초과 (부분 완료)",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            self._last_result = {"timed_out": True}
            return self._last_result

        except Exception as e:
            self._error_count += 1
            logger.error(
                f"{self.job_name} Job 실패",
                extra={"error": str(e)},
                exc_info=True,
            )
            self._last_result = {"error": str(e)}
            return self._last_result

        finally:
            self._last_run_time = start_time
            self._is_running = False

    @abstractmethod
    async def _do_run(self) -> BatchResult:
        """실제 작업 구현"""
        ...

    def get_stats(self) -> dict[str, Any]:
        """Job 통계"""
        return {
            "job": self.job_name,
            "runs": self._run_count,
            "errors": self._error_count,
            "timeouts": self._timeout_count,
            "last_run_time": self._last_run_time.isoformat() if self._last_run_time else None,
            "last_result": self._last_result,
        }
