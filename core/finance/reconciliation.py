"""
수수료 대사 (Fee Reconciliation)

transactions.fee 합계와 roundup_ledger.fee_amount 합계를 독립적으로 계산해 비교.
읽기 전용 진단이며 불일치를 수정하지 않는다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from core.constants import RECONCILIATION_TOLERANCE
from core.domain.errors import ReconciliationDrift

if TYPE_CHECKING:
    from core.ledger.store import RoundupLedgerStore
    from core.storage.transaction_store import TransactionStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class UserFeeDrift:
    """사용자별 수수료 불일치"""

    user_id: int
    transaction_fees: Decimal
    ledger_fees: Decimal

    @property
    def drift(self) -> Decimal:
        return abs(self.transaction_fees - self.ledger_fees)


@dataclass(frozen=True)
class ReconciliationReport:
    """대사 결과

    reconciled = |transaction_fees - ledger_fees| < tolerance
    """

    transaction_fees: Decimal
    ledger_fees: Decimal
    tolerance: Decimal = RECONCILIATION_TOLERANCE
    user_drifts: list[UserFeeDrift] = field(default_factory=list)

    @property
    def drift(self) -> Decimal:
        return abs(self.transaction_fees - self.ledger_fees)

    @property
    def reconciled(self) -> bool:
        return self.drift < self.tolerance

    @property
    def issue(self) -> ReconciliationDrift | None:
        """불일치 진단값 (일치하면 None, 예외로 던지지 않음)"""
        if self.reconciled:
            return None
        return ReconciliationDrift(self.transaction_fees, self.ledger_fees)

    def to_dict(self) -> dict:
        return {
            "transaction_fees": str(self.transaction_fees),
            "ledger_fees": str(self.ledger_fees),
            "drift": str(self.drift),
            "tolerance": str(self.tolerance),
            "reconciled": self.reconciled,
            "user_drifts": [
                {
                    "user_id": d.user_id,
                    "transaction_fees": str(d.transaction_fees),
                    "ledger_fees": str(d.ledger_fees),
                    "drift": str(d.drift),
                }
                for d in self.user_drifts
            ],
        }


def reconcile_fees(
    transaction_fees: Iterable[tuple[int, Decimal]],
    ledger_fees: Iterable[tuple[int, Decimal]],
    tolerance: Decimal = RECONCILIATION_TOLERANCE,
) -> ReconciliationReport:
    """(user_id, fee) 목록 두 개를 대사

    Args:
        transaction_fees: 거래 측 (user_id, fee)
        ledger_fees: 원장 측 (user_id, fee_amount)
        tolerance: 허용 오차 (미만이면 일치)

    Example:
        >>> report = reconcile_fees([(1, Decimal("1.00")), (1, Decimal("2.00"))],
        ...                         [(1, Decimal("1.00")), (1, Decimal("2.005"))])
        >>> report.reconciled
        True
    """
    tx_by_user: dict[int, Decimal] = {}
    ledger_by_user: dict[int, Decimal] = {}

    for user_id, fee in transaction_fees:
        tx_by_user[user_id] = tx_by_user.get(user_id, ZERO) + fee
    for user_id, fee in ledger_fees:
        ledger_by_user[user_id] = ledger_by_user.get(user_id, ZERO) + fee

    user_drifts = [
        UserFeeDrift(
            user_id=user_id,
            transaction_fees=tx_by_user.get(user_id, ZERO),
            ledger_fees=ledger_by_user.get(user_id, ZERO),
        )
        for user_id in sorted(set(tx_by_user) | set(ledger_by_user))
    ]

    return ReconciliationReport(
        transaction_fees=sum(tx_by_user.values(), ZERO),
        ledger_fees=sum(ledger_by_user.values(), ZERO),
        tolerance=tolerance,
        user_drifts=[d for d in user_drifts if d.drift >= tolerance],
    )


class FeeReconciler:
    """수수료 대사기

    Args:
        transaction_store: 거래 저장소
        ledger_store: 원장 저장소

    사용 예시:
    ```python
    reconciler = FeeReconciler(TransactionStore(db), RoundupLedgerStore(db))
    report = await reconciler.check()
    if not report.reconciled:
        print(report.issue)
    ```
    """

    def __init__(
        self,
        transaction_store: TransactionStore,
        ledger_store: RoundupLedgerStore,
    ):
        self.transaction_store = transaction_store
        self.ledger_store = ledger_store

    async def check(self) -> ReconciliationReport:
        """대사 실행 (읽기 전용)"""
        adapter = self.transaction_store.adapter
        async with adapter.snapshot():
            tx_fees = await self.transaction_store.list_fees()
            ledger_fees = await self.ledger_store.list_fees()

        report = reconcile_fees(tx_fees, ledger_fees)

        if report.reconciled:
            logger.info(
                "수수료 대사 일치",
                extra={"drift": str(report.drift)},
            )
        else:
            logger.warning(
                f"수수료 대사 불일치: {report.issue}",
                extra={
                    "transaction_fees": str(report.transaction_fees),
                    "ledger_fees": str(report.ledger_fees),
                    "drift": str(report.drift),
                    "users": [d.user_id for d in report.user_drifts],
                },
            )
        return report
