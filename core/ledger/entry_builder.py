"""
라운드업 원장 항목 생성기

구매 거래에서 라운드업 금액과 수수료를 계산하여 RoundupLedgerEntry를 만든다.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from core.constants import Defaults
from core.domain.errors import InvalidAmount
from core.domain.models import RoundupLedgerEntry, Transaction
from core.ledger.roundup import FeeSchedule, RoundupQuote, quote

if TYPE_CHECKING:
    from core.ledger.store import RoundupLedgerStore
    from core.storage.transaction_store import TransactionStore

logger = logging.getLogger(__name__)


class RoundupEntryBuilder:
    """거래를 라운드업 원장 항목으로 변환

    quote()는 순수 계산, record()는 저장까지 수행한다.
    거래 자체의 상태는 바꾸지 않는다 (round_up/fee 값만 기록).

    Args:
        fee_schedule: 수수료 스케줄
        whole_dollar_amount: 정수 금액 거래의 기본 라운드업 (사용자 설정이 없을 때)
        ledger_store: 원장 저장소 (record() 사용 시 필요)
        transaction_store: 거래 저장소 (record() 사용 시 필요)

    사용 예시:
    ```python
    builder = RoundupEntryBuilder(FeeSchedule(), ledger_store=ledger, transaction_store=txns)
    entry = await builder.record(transaction_id=42)
    ```
    """

    def __init__(
        self,
        fee_schedule: FeeSchedule | None = None,
        whole_dollar_amount: Decimal = Defaults.WHOLE_DOLLAR_ROUND_UP,
        ledger_store: RoundupLedgerStore | None = None,
        transaction_store: TransactionStore | None = None,
    ):
        self.fee_schedule = fee_schedule or FeeSchedule()
        self.whole_dollar_amount = whole_dollar_amount
        self.ledger_store = ledger_store
        self.transaction_store = transaction_store

    def quote(
        self,
        transaction: Transaction,
        whole_dollar_amount: Decimal | None = None,
    ) -> RoundupQuote:
        """거래의 라운드업/수수료 계산

        Args:
            transaction: 구매 거래
            whole_dollar_amount: 사용자 본인의 정수 금액 라운드업 설정
                (None이면 생성기 기본값)

        Raises:
            InvalidAmount: 금액 누락/0 이하, 0 이하 라운드업 설정
        """
        if transaction.amount is None:
            raise InvalidAmount(f"거래 {transaction.id}의 금액이 없습니다")
        if whole_dollar_amount is None:
            whole_dollar_amount = self.whole_dollar_amount
        elif whole_dollar_amount <= 0:
            raise InvalidAmount(f"라운드업 설정은 0보다 커야 합니다: {whole_dollar_amount}")
        return quote(transaction.amount, self.fee_schedule, whole_dollar_amount)

    async def record(
        self,
        transaction_id: int,
        whole_dollar_amount: Decimal | None = None,
    ) -> RoundupLedgerEntry:
        """거래를 조회하여 원장 항목 기록

        Raises:
            NotFound: 거래 없음
            InvalidAmount: 금액 누락/0 이하 (쓰기 전에 거부)
            DuplicateEntry: 이미 기록된 거래
        """
        if self.ledger_store is None or self.transaction_store is None:
            raise RuntimeError("record()에는 ledger_store와 transaction_store가 필요합니다")

        transaction = await self.transaction_store.require(transaction_id)
        return await self.record_transaction(transaction, whole_dollar_amount)

    async def record_transaction(
        self,
        transaction: Transaction,
        whole_dollar_amount: Decimal | None = None,
    ) -> RoundupLedgerEntry:
        """이미 조회한 거래로 원장 항목 기록"""
        if self.ledger_store is None:
            raise RuntimeError("record_transaction()에는 ledger_store가 필요합니다")

        result = self.quote(transaction, whole_dollar_amount)
        entry = await self.ledger_store.record_for_transaction(transaction, result)

        logger.debug(
            f"라운드업 계산: {transaction.amount} → {result.round_up_amount} "
            f"(fee {result.fee_amount}, net {result.net_investment})",
            extra={"transaction_id": transaction.id, "entry_id": entry.id},
        )
        return entry
