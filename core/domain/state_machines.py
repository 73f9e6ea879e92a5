"""
State Machines

Transaction, RoundupLedgerEntry, MarketQueueItem, RenewalQueueItem의 상태 전이 관리.
저장소의 CAS(compare-and-swap) 갱신 전에 전이 유효성을 검증하는 데 사용.
"""

import logging
from enum import Enum

from core.domain.errors import AlreadyTerminal, RoundupError
from core.types import (
    LedgerStatus,
    QueueStatus,
    RenewalStatus,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


class StateMachineError(RoundupError):
    """상태 전이 오류"""

    code = "INVALID_TRANSITION"


class TerminalStateError(StateMachineError, AlreadyTerminal):
    """종료 상태에서의 전이 시도"""

    code = "ALREADY_TERMINAL"


def _value(state: str | Enum) -> str:
    return state.value if isinstance(state, Enum) else state


class StateMachine:
    """상태 머신 기본 클래스

    하위 클래스는 TRANSITIONS와 TERMINAL_STATES를 정의한다.

    Args:
        initial_state: 초기 상태
        name: 머신 이름 (로깅용)

    사용 예시:
    ```python
    machine = MarketQueueStateMachine("pending")
    machine.transition(QueueStatus.PROCESSING)
    machine.transition(QueueStatus.COMPLETED)
    machine.is_terminal  # True
    ```
    """

    TRANSITIONS: dict[str, list[str]] = {}
    TERMINAL_STATES: frozenset[str] = frozenset()

    def __init__(self, initial_state: str | Enum, name: str | None = None):
        self._state = _value(initial_state)
        self._name = name or type(self).__name__
        self._history: list[tuple[str, str]] = []

    @property
    def state(self) -> str:
        """현재 상태"""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """종료 상태 여부"""
        return self._state in self.TERMINAL_STATES

    @property
    def history(self) -> list[tuple[str, str]]:
        """상태 전이 이력"""
        return self._history.copy()

    def can_transition(self, to_state: str | Enum) -> bool:
        """전이 가능 여부 확인"""
        return _value(to_state) in self.TRANSITIONS.get(self._state, [])

    def transition(self, to_state: str | Enum) -> str:
        """상태 전이

        Args:
            to_state: 목표 상태

        Returns:
            새 상태

        Raises:
            TerminalStateError: 현재 상태가 종료 상태
            StateMachineError: 허용되지 않은 전이
        """
        target = _value(to_state)
        self.check(self._state, target)

        old_state = self._state
        self._state = target
        self._history.append((old_state, target))

        logger.debug(f"{self._name}: {old_state} → {target}")
        return target

    @classmethod
    def check(cls, from_state: str | Enum, to_state: str | Enum) -> None:
        """전이 유효성 검증 (인스턴스 없이)

        Raises:
            TerminalStateError: from_state가 종료 상태
            StateMachineError: 허용되지 않은 전이
        """
        source = _value(from_state)
        target = _value(to_state)

        if source in cls.TERMINAL_STATES:
            raise TerminalStateError(
                f"{cls.__name__}: {source}는 종료 상태입니다 ({target} 전이 불가)"
            )

        allowed = cls.TRANSITIONS.get(source, [])
        if target not in allowed:
            raise StateMachineError(
                f"{cls.__name__}: Cannot transition from {source} to {target}. "
                f"Allowed: {allowed}"
            )


class TransactionStateMachine(StateMachine):
    """구매 거래 상태 머신

    전이 규칙:
    - pending → mapped: 마켓 큐에 스테이징
    - mapped → completed: 주문 체결
    - mapped → failed: 주문 거부
    """

    TRANSITIONS: dict[str, list[str]] = {
        TransactionStatus.PENDING.value: [TransactionStatus.MAPPED.value],
        TransactionStatus.MAPPED.value: [
            TransactionStatus.COMPLETED.value,
            TransactionStatus.FAILED.value,
        ],
    }
    TERMINAL_STATES = frozenset(
        {TransactionStatus.COMPLETED.value, TransactionStatus.FAILED.value}
    )


class LedgerEntryStateMachine(StateMachine):
    """라운드업 원장 항목 상태 머신

    전이 규칙:
    - pending → allocated: 큐 항목에 배정
    - allocated → swept: 체결 완료 (이후 불변)
    - allocated → failed: 체결 거부
    """

    TRANSITIONS: dict[str, list[str]] = {
        LedgerStatus.PENDING.value: [LedgerStatus.ALLOCATED.value],
        LedgerStatus.ALLOCATED.value: [LedgerStatus.SWEPT.value, LedgerStatus.FAILED.value],
    }
    TERMINAL_STATES = frozenset({LedgerStatus.SWEPT.value, LedgerStatus.FAILED.value})


class MarketQueueStateMachine(StateMachine):
    """마켓 큐 항목 상태 머신

    전이 규칙:
    - pending → processing: 실행 클레임 (CAS)
    - processing → completed: 체결
    - processing → failed: 거부
    - processing → pending: 운영자 재큐잉 (명시적 조치만)
    """

    TRANSITIONS: dict[str, list[str]] = {
        QueueStatus.PENDING.value: [QueueStatus.PROCESSING.value],
        QueueStatus.PROCESSING.value: [
            QueueStatus.COMPLETED.value,
            QueueStatus.FAILED.value,
            QueueStatus.PENDING.value,
        ],
    }
    TERMINAL_STATES = frozenset({QueueStatus.COMPLETED.value, QueueStatus.FAILED.value})


class RenewalStateMachine(StateMachine):
    """갱신 큐 항목 상태 머신

    전이 규칙:
    - scheduled → succeeded | retrying | exhausted
    - retrying → succeeded | retrying | exhausted
    """

    TRANSITIONS: dict[str, list[str]] = {
        RenewalStatus.SCHEDULED.value: [
            RenewalStatus.SUCCEEDED.value,
            RenewalStatus.RETRYING.value,
            RenewalStatus.EXHAUSTED.value,
        ],
        RenewalStatus.RETRYING.value: [
            RenewalStatus.SUCCEEDED.value,
            RenewalStatus.RETRYING.value,
            RenewalStatus.EXHAUSTED.value,
        ],
    }
    TERMINAL_STATES = frozenset(
        {RenewalStatus.SUCCEEDED.value, RenewalStatus.EXHAUSTED.value}
    )
