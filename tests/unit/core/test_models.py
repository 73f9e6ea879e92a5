"""
도메인 모델 테스트
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from core.domain.errors import InvalidAmount
from core.domain.models import (
    BatchResult,
    MarketQueueItem,
    RenewalOutcome,
    RoundupLedgerEntry,
    Subscription,
    Transaction,
    with_status,
)
from core.types import ItemErrorCode, QueueStatus, RenewalStatus, TransactionStatus


class TestRecordSerialization:
    """Record to_dict / from_dict 테스트"""

    def test_transaction_from_row_values(self) -> None:
        """저장소 문자열 값 → 도메인 타입 변환"""
        txn = Transaction.from_dict({
            "id": 1,
            "user_id": 7,
            "merchant": "coffee",
            "amount": "4.35",
            "round_up": "0.65",
            "fee": None,
            "ticker": "VTI",
            "status": "mapped",
            "created_at": "2026-03-01T10:00:00.000000+00:00",
            "unknown_column": "ignored",
        })

        assert txn.amount == Decimal("4.35")
        assert txn.fee is None
        assert txn.status == TransactionStatus.MAPPED
        assert txn.created_at == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)

    def test_to_dict_primitives(self) -> None:
        """Decimal/Enum/datetime은 문자열로 직렬화"""
        txn = Transaction(id=1, user_id=7, merchant="m", amount=Decimal("4.35"))
        data = txn.to_dict()

        assert data["amount"] == "4.35"
        assert data["status"] == "pending"

    def test_subscription_bool_and_date(self) -> None:
        sub = Subscription.from_dict({
            "id": 3,
            "user_id": 7,
            "plan_id": "premium",
            "amount": "9.99",
            "billing_cycle": "monthly",
            "status": "active",
            "next_billing_date": "2026-04-01",
            "auto_renewal": 0,
        })

        assert sub.auto_renewal is False
        assert sub.next_billing_date == date(2026, 4, 1)


class TestTransaction:
    def test_is_stageable(self) -> None:
        """종목 매핑 + pending일 때만 스테이징 대상"""
        base = Transaction(id=1, user_id=1, merchant="m", amount=Decimal("1.50"))

        assert not base.is_stageable
        assert with_status(base, TransactionStatus.PENDING, ticker="VTI").is_stageable
        assert not with_status(base, TransactionStatus.MAPPED, ticker="VTI").is_stageable


class TestLedgerEntry:
    def test_negative_amounts_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            RoundupLedgerEntry(
                id=None, transaction_id=1, user_id=1,
                round_up_amount=Decimal("-0.01"), fee_amount=Decimal("0"),
            )
        with pytest.raises(InvalidAmount):
            RoundupLedgerEntry(
                id=None, transaction_id=1, user_id=1,
                round_up_amount=Decimal("0.50"), fee_amount=Decimal("-0.01"),
            )


class TestMarketQueueItem:
    """MarketQueueItem 불변 조건 테스트"""

    def test_processed_at_only_when_terminal(self) -> None:
        """processed_at은 completed/failed에서만"""
        now = datetime.now(timezone.utc)

        with pytest.raises(ValueError):
            MarketQueueItem(
                id=1, transaction_id=1, user_id=1, ticker="VTI",
                amount=Decimal("0.65"), status=QueueStatus.PENDING, processed_at=now,
            )
        with pytest.raises(ValueError):
            MarketQueueItem(
                id=1, transaction_id=1, user_id=1, ticker="VTI",
                amount=Decimal("0.65"), status=QueueStatus.COMPLETED,
            )

        done = MarketQueueItem(
            id=1, transaction_id=1, user_id=1, ticker="VTI",
            amount=Decimal("0.65"), status=QueueStatus.COMPLETED, processed_at=now,
        )
        assert done.is_terminal

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            MarketQueueItem(id=1, transaction_id=1, user_id=1, ticker="VTI", amount=Decimal("-1"))

    def test_with_status_copy(self) -> None:
        """with_status는 원본을 바꾸지 않음"""
        item = MarketQueueItem(id=1, transaction_id=1, user_id=1, ticker="VTI", amount=Decimal("1"))
        processing = with_status(item, QueueStatus.PROCESSING)

        assert item.status == QueueStatus.PENDING
        assert processing.status == QueueStatus.PROCESSING


class TestBatchResult:
    """BatchResult 테스트"""

    def test_add_error_normalizes_enum_code(self) -> None:
        result = BatchResult(queued=2, processed=1)
        result.add_error(5, ItemErrorCode.DUPLICATE_STAGING, "dup")

        assert result.failed == 1
        assert result.errors[0].code == "DUPLICATE_STAGING"
        assert result.to_dict() == {
            "queued": 2,
            "processed": 1,
            "errors": [{"ref_id": 5, "code": "DUPLICATE_STAGING", "message": "dup"}],
            "timed_out": False,
        }


class TestRenewalOutcome:
    def test_succeeded(self) -> None:
        outcome = RenewalOutcome(subscription_id=1, status=RenewalStatus.SUCCEEDED, attempt_count=1)
        assert outcome.succeeded
        assert outcome.to_dict()["status"] == "succeeded"

        failed = RenewalOutcome(subscription_id=1, status=RenewalStatus.RETRYING, attempt_count=1)
        assert not failed.succeeded
