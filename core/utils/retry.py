"""
재시도 정책

- RetryPolicy: 유한 재시도 + 지수 백오프 (갱신 결제 재시도 일정 계산)
- with_store_retry: TransientStoreError만 백오프 재시도하는 호출 래퍼
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, TypeVar

from core.constants import Defaults
from core.domain.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """유한 재시도 정책

    delay(n) = initial_delay × multiplier^(n-1), max_delay로 상한.

    Args:
        max_attempts: 최대 시도 횟수 (도달 시 exhausted)
        initial_delay_seconds: 첫 실패 후 대기
        backoff_multiplier: 지수 배수
        max_delay_seconds: 대기 상한
        exponential_ceiling: 지수 상한 (오버플로 방지)

    사용 예시:
    ```python
    policy = RetryPolicy(max_attempts=3, initial_delay_seconds=60)
    policy.delay_for(1)  # 60초
    policy.delay_for(2)  # 120초
    policy.is_exhausted(3)  # True
    ```
    """

    max_attempts: int = Defaults.RENEWAL_MAX_ATTEMPTS
    initial_delay_seconds: float = Defaults.RENEWAL_INITIAL_DELAY_SEC
    backoff_multiplier: float = Defaults.RENEWAL_BACKOFF_MULTIPLIER
    max_delay_seconds: float = Defaults.RENEWAL_MAX_DELAY_SEC
    exponential_ceiling: int = 10

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts는 1 이상이어야 합니다: {self.max_attempts}")
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("대기 시간은 음수일 수 없습니다")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier는 1 이상이어야 합니다: {self.backoff_multiplier}")

    def delay_for(self, attempt: int) -> timedelta:
        """attempt번째 실패 후 다음 시도까지의 대기 시간

        Args:
            attempt: 실패한 시도 번호 (1부터)
        """
        exponent = min(max(attempt - 1, 0), self.exponential_ceiling)
        seconds = self.initial_delay_seconds * (self.backoff_multiplier ** exponent)
        return timedelta(seconds=min(seconds, self.max_delay_seconds))

    def next_attempt_at(self, attempt: int, now: datetime) -> datetime:
        """다음 시도 시각"""
        return now + self.delay_for(attempt)

    def is_exhausted(self, attempt_count: int) -> bool:
        """최대 시도 횟수 도달 여부"""
        return attempt_count >= self.max_attempts


async def with_store_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = Defaults.STORE_RETRY_ATTEMPTS,
    base_delay: float = Defaults.STORE_RETRY_BASE_DELAY_SEC,
    name: str = "store operation",
) -> T:
    """TransientStoreError 재시도 래퍼

    다른 예외(AlreadyTerminal, InvalidAmount 등)는 즉시 전파한다.

    Args:
        operation: 인자 없는 코루틴 팩토리
        attempts: 최대 시도 횟수
        base_delay: 첫 재시도 대기 (초, 매 재시도마다 2배)
        name: 로깅용 이름

    Raises:
        TransientStoreError: 모든 시도 실패
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except TransientStoreError as e:
            if attempt >= attempts:
                logger.error(
                    f"{name} 재시도 소진: {e}",
                    extra={"attempts": attempts},
                )
                raise

            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"{name} 일시 오류, {delay:.2f}초 후 재시도 ({attempt}/{attempts}): {e}",
            )
            await asyncio.sleep(delay)

    raise TransientStoreError(f"{name}: attempts must be >= 1")
