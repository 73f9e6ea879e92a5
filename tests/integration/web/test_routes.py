"""Web API 라우트 통합 테스트

httpx ASGITransport로 앱을 직접 호출하고,
DB/설정/외부 협력자는 dependency_overrides로 교체한다.
"""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.mock.market_executor import MockMarketExecutor
from adapters.mock.payment_gateway import MockPaymentGateway
from core.config.loader import get_settings
from core.domain.errors import (
    AlreadyClaimed,
    CollaboratorUnavailableError,
    RoundupError,
    TransientStoreError,
)
from core.storage.subscription_store import SubscriptionStore
from core.types import SubscriptionStatus
from web.app import app, status_for
from web.dependencies import (
    get_app_settings,
    get_db,
    get_db_write,
    get_market_executor,
    get_payment_gateway,
)


@pytest.fixture
def market() -> MockMarketExecutor:
    return MockMarketExecutor(fail_tickers={"BAD"})


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest_asyncio.fixture
async def client(
    temp_settings_file: Path,
    reset_settings: None,
    db: SQLiteAdapter,
    market: MockMarketExecutor,
    gateway: MockPaymentGateway,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    settings = get_settings(temp_settings_file)

    async def _db() -> AsyncGenerator[SQLiteAdapter, None]:
        yield db

    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_db_write] = _db
    app.dependency_overrides[get_market_executor] = lambda: market
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["mode"] == "sandbox"


class TestLedgerRoutes:
    """원장 API 테스트"""

    @pytest.mark.asyncio
    async def test_record(self, client: httpx.AsyncClient, make_transaction) -> None:
        txn = await make_transaction("4.35")

        response = await client.post(f"/api/ledger/record/{txn.id}")

        assert response.status_code == 201
        data = response.json()
        assert data["transaction_id"] == txn.id
        assert data["round_up_amount"] == "0.65"
        assert data["fee_amount"] == "0.02"
        assert data["status"] == "pending"

    @pytest.mark.asyncio
    async def test_record_with_user_round_up(
        self, client: httpx.AsyncClient, make_transaction
    ) -> None:
        """본문의 사용자 라운드업 설정은 정수 금액 거래에 적용"""
        txn = await make_transaction("12.00")

        response = await client.post(
            f"/api/ledger/record/{txn.id}", json={"whole_dollar_amount": "3.00"}
        )
        rejected = await client.post(
            f"/api/ledger/record/{txn.id}", json={"whole_dollar_amount": "0"}
        )

        assert response.status_code == 201
        assert response.json()["round_up_amount"] == "3.00"
        assert rejected.status_code == 422

    @pytest.mark.asyncio
    async def test_record_errors(self, client: httpx.AsyncClient, make_transaction) -> None:
        """404 / 400 / 409 + {"detail", "code"}"""
        txn = await make_transaction("4.35")
        zero = await make_transaction("0.00")
        await client.post(f"/api/ledger/record/{txn.id}")

        missing = await client.post("/api/ledger/record/999")
        invalid = await client.post(f"/api/ledger/record/{zero.id}")
        duplicate = await client.post(f"/api/ledger/record/{txn.id}")

        assert missing.status_code == 404
        assert missing.json()["code"] == "NOT_FOUND"
        assert invalid.status_code == 400
        assert invalid.json()["code"] == "INVALID_AMOUNT"
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "DUPLICATE_ENTRY"
        assert duplicate.json()["detail"]

    @pytest.mark.asyncio
    async def test_list(self, client: httpx.AsyncClient, make_transaction) -> None:
        for amount in ("1.10", "2.20", "3.30"):
            txn = await make_transaction(amount)
            await client.post(f"/api/ledger/record/{txn.id}")

        response = await client.get("/api/ledger", params={"limit": 2})

        data = response.json()
        assert data["total"] == 3
        assert len(data["items"]) == 2
        assert data["items"][0]["round_up_amount"] == "0.90"

    @pytest.mark.asyncio
    async def test_entry_for_transaction(
        self, client: httpx.AsyncClient, make_transaction
    ) -> None:
        txn = await make_transaction("4.35")
        unrecorded = await client.get(f"/api/ledger/transaction/{txn.id}")
        await client.post(f"/api/ledger/record/{txn.id}")

        response = await client.get(f"/api/ledger/transaction/{txn.id}")

        assert unrecorded.status_code == 404
        assert response.status_code == 200
        assert response.json()["round_up_amount"] == "0.65"

    @pytest.mark.asyncio
    async def test_adjust(self, client: httpx.AsyncClient, make_transaction) -> None:
        """swept 이전 정정 200, 음수 400, 없는 항목 404"""
        txn = await make_transaction("4.35")
        entry_id = (await client.post(f"/api/ledger/record/{txn.id}")).json()["id"]

        adjusted = await client.patch(
            f"/api/ledger/{entry_id}", json={"round_up_amount": "0.60", "fee_amount": "0.01"}
        )
        negative = await client.patch(
            f"/api/ledger/{entry_id}", json={"round_up_amount": "-0.60", "fee_amount": "0.01"}
        )
        missing = await client.patch(
            "/api/ledger/999", json={"round_up_amount": "0.60", "fee_amount": "0.01"}
        )

        assert adjusted.status_code == 200
        assert adjusted.json()["round_up_amount"] == "0.60"
        assert adjusted.json()["fee_amount"] == "0.01"
        assert negative.status_code == 400
        assert negative.json()["code"] == "INVALID_AMOUNT"
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_adjust_swept_rejected(
        self, client: httpx.AsyncClient, make_transaction
    ) -> None:
        """체결 완료(swept) 항목은 409"""
        txn = await make_transaction("4.35")
        entry_id = (await client.post(f"/api/ledger/record/{txn.id}")).json()["id"]
        await client.post("/api/queue/stage")
        await client.post("/api/queue/execute")

        response = await client.patch(
            f"/api/ledger/{entry_id}", json={"round_up_amount": "0.10", "fee_amount": "0.00"}
        )

        assert response.status_code == 409
        assert response.json()["code"] == "IMMUTABLE_ENTRY"


class TestQueueRoutes:
    """큐 API 테스트"""

    @pytest.mark.asyncio
    async def test_stage_and_execute(
        self,
        client: httpx.AsyncClient,
        make_transaction,
        market: MockMarketExecutor,
    ) -> None:
        """스테이징 → 실행, 거부 종목은 항목 오류"""
        await make_transaction("4.35")
        bad = await make_transaction("2.50", ticker="BAD")

        staged = await client.post("/api/queue/stage")
        executed = await client.post("/api/queue/execute", json={"limit": 10})

        assert staged.status_code == 200
        assert staged.json()["queued"] == 2

        data = executed.json()
        assert data["processed"] == 1
        assert data["failed"] == 1
        assert data["errors"][0]["code"] == "EXECUTION_REJECTED"
        assert len(market.calls) == 2

        listing = (await client.get("/api/queue")).json()
        assert listing["counts"]["completed"] == 1
        assert listing["counts"]["failed"] == 1
        failed = [i for i in listing["items"] if i["status"] == "failed"]
        assert failed[0]["transaction_id"] == bad.id

    @pytest.mark.asyncio
    async def test_requeue(
        self,
        client: httpx.AsyncClient,
        make_transaction,
        market: MockMarketExecutor,
    ) -> None:
        """processing 항목만 재큐잉, 종료 항목은 409"""
        await make_transaction("4.35")
        await client.post("/api/queue/stage")

        market.unavailable = True
        uncertain = (await client.post("/api/queue/execute")).json()
        assert uncertain["errors"][0]["code"] == "EXECUTION_UNCERTAIN"
        item_id = uncertain["errors"][0]["ref_id"]

        requeued = await client.post(f"/api/queue/{item_id}/requeue")
        assert requeued.status_code == 200
        assert requeued.json()["status"] == "pending"

        market.unavailable = False
        assert (await client.post("/api/queue/execute")).json()["processed"] == 1

        terminal = await client.post(f"/api/queue/{item_id}/requeue")
        assert terminal.status_code == 409
        assert terminal.json()["code"] == "ALREADY_TERMINAL"

        missing = await client.post("/api/queue/999/requeue")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_limit(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/queue/stage", json={"limit": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_enqueue(self, client: httpx.AsyncClient, make_transaction) -> None:
        """수동 큐잉 201, 없는 거래 404, 같은 거래의 미종료 항목 409"""
        txn = await make_transaction("4.35")

        manual = await client.post(
            "/api/queue", json={"user_id": 3, "ticker": "VTI", "amount": "0.40"}
        )
        linked = await client.post(
            "/api/queue",
            json={"user_id": 1, "ticker": "QQQ", "amount": "0.25", "transaction_id": txn.id},
        )
        duplicate = await client.post(
            "/api/queue",
            json={"user_id": 1, "ticker": "VTI", "amount": "0.40", "transaction_id": txn.id},
        )
        missing = await client.post(
            "/api/queue",
            json={"user_id": 1, "ticker": "VTI", "amount": "0.40", "transaction_id": 999},
        )
        invalid = await client.post(
            "/api/queue", json={"user_id": 1, "ticker": "VTI", "amount": "0"}
        )

        assert manual.status_code == 201
        assert manual.json()["status"] == "pending"
        assert manual.json()["transaction_id"] is None
        assert linked.status_code == 201
        assert linked.json()["transaction_id"] == txn.id
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "DUPLICATE_STAGING"
        assert missing.status_code == 404
        assert invalid.status_code == 422

        listing = (await client.get("/api/queue")).json()
        assert listing["total"] == 2


class TestRenewalRoutes:
    """갱신 API 테스트"""

    @pytest.mark.asyncio
    async def test_attempt_and_history(
        self,
        client: httpx.AsyncClient,
        subscription_store: SubscriptionStore,
        gateway: MockPaymentGateway,
    ) -> None:
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("4.99"), period_start=date(2026, 1, 1)
        )

        response = await client.post(f"/api/renewals/{sub.id}/attempt")

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] is True
        assert data["next_billing_date"] == "2026-03-01"
        assert len(gateway.charges) == 1

        history = (await client.get("/api/renewals/history")).json()
        assert history["total"] == 1
        assert history["items"][0]["amount"] == "4.99"
        assert history["items"][0]["status"] == "success"

    @pytest.mark.asyncio
    async def test_declined_attempt(
        self,
        client: httpx.AsyncClient,
        subscription_store: SubscriptionStore,
        gateway: MockPaymentGateway,
    ) -> None:
        """결제 거절은 200 + succeeded=false"""
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("4.99"), period_start=date(2026, 1, 1)
        )
        gateway.should_fail = True

        data = (await client.post(f"/api/renewals/{sub.id}/attempt")).json()

        assert data["succeeded"] is False
        assert data["status"] == "retrying"
        assert data["attempt_count"] == 1
        assert data["next_attempt_at"] is not None

    @pytest.mark.asyncio
    async def test_attempt_errors(
        self,
        client: httpx.AsyncClient,
        subscription_store: SubscriptionStore,
    ) -> None:
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("4.99"), period_start=date(2026, 1, 1)
        )
        await subscription_store.set_status(sub.id, SubscriptionStatus.CANCELLED)

        cancelled = await client.post(f"/api/renewals/{sub.id}/attempt")
        missing = await client.post("/api/renewals/999/attempt")

        assert cancelled.status_code == 409
        assert cancelled.json()["code"] == "ALREADY_TERMINAL"
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_run_due(
        self,
        client: httpx.AsyncClient,
        subscription_store: SubscriptionStore,
    ) -> None:
        """결제일이 지난 구독만 처리"""
        past = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("4.99"), period_start=date(2020, 1, 1)
        )
        await client.post(f"/api/renewals/{past.id}/attempt")

        data = (await client.post("/api/renewals/run-due")).json()

        # 첫 시도로 예약된 다음 주기(2020-03-01)도 이미 도래
        assert data["queued"] == 1
        assert data["processed"] == 1
        assert data["errors"] == []

    @pytest.mark.asyncio
    async def test_cancel(
        self,
        client: httpx.AsyncClient,
        subscription_store: SubscriptionStore,
        gateway: MockPaymentGateway,
    ) -> None:
        """해지 후 갱신 시도는 409, 재해지는 멱등"""
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("4.99"), period_start=date(2026, 1, 1)
        )

        cancelled = await client.post(f"/api/renewals/{sub.id}/cancel")
        again = await client.post(f"/api/renewals/{sub.id}/cancel")
        attempt = await client.post(f"/api/renewals/{sub.id}/attempt")
        missing = await client.post("/api/renewals/999/cancel")

        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert again.status_code == 200
        assert again.json()["status"] == "cancelled"
        assert attempt.status_code == 409
        assert gateway.charges == []
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_open_queue(
        self,
        client: httpx.AsyncClient,
        subscription_store: SubscriptionStore,
        gateway: MockPaymentGateway,
    ) -> None:
        """거절된 갱신은 retrying으로 큐에 남아 조회됨"""
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("4.99"), period_start=date(2026, 1, 1)
        )
        empty = (await client.get("/api/renewals/queue")).json()
        gateway.should_fail = True
        await client.post(f"/api/renewals/{sub.id}/attempt")

        data = (await client.get("/api/renewals/queue")).json()

        assert empty == {"items": [], "total": 0}
        assert data["total"] == 1
        item = data["items"][0]
        assert item["subscription_id"] == sub.id
        assert item["status"] == "retrying"
        assert item["attempt_count"] == 1
        assert item["claimed_at"] is None


class TestFinanceRoutes:
    """재무 API 테스트"""

    @pytest.mark.asyncio
    async def test_statements(
        self,
        client: httpx.AsyncClient,
        make_transaction,
        subscription_store: SubscriptionStore,
    ) -> None:
        txn = await make_transaction("4.35")
        await client.post(f"/api/ledger/record/{txn.id}")
        await client.post("/api/queue/stage")
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("10.00"), period_start=date(2026, 1, 1)
        )
        await client.post(f"/api/renewals/{sub.id}/attempt")

        revenue = (await client.get("/api/finance/revenue")).json()
        pnl = (await client.get("/api/finance/pnl")).json()
        cash_flow = (await client.get("/api/finance/cash-flow")).json()
        sheet = (await client.get("/api/finance/balance-sheet")).json()

        assert Decimal(revenue["total"]) == Decimal("10.00")
        assert len(revenue["periods"]) == 1
        assert Decimal(pnl["periods"][-1]["renewal_revenue"]) == Decimal("10.00")
        assert len(cash_flow["periods"]) >= 1
        assert Decimal(sheet["total_liabilities"]) == Decimal("0.65")
        assert Decimal(sheet["equity"]) == Decimal(sheet["total_assets"]) - Decimal(
            sheet["total_liabilities"]
        )

    @pytest.mark.asyncio
    async def test_empty_balance_sheet(self, client: httpx.AsyncClient) -> None:
        sheet = (await client.get("/api/finance/balance-sheet")).json()

        assert Decimal(sheet["total_assets"]) == Decimal("0")
        assert sheet["current_ratio"] is None

    @pytest.mark.asyncio
    async def test_reconciliation(self, client: httpx.AsyncClient, make_transaction) -> None:
        txn = await make_transaction("4.35")
        await client.post(f"/api/ledger/record/{txn.id}")

        data = (await client.get("/api/finance/reconciliation")).json()

        assert data["reconciled"] is True
        assert Decimal(data["transaction_fees"]) == Decimal("0.02")

    @pytest.mark.asyncio
    async def test_summary_fees_and_roundups(
        self,
        client: httpx.AsyncClient,
        db: SQLiteAdapter,
        make_transaction,
        subscription_store: SubscriptionStore,
    ) -> None:
        """기준일(as_of)의 월 매출, 구독당 평균 매출, 거래당 평균 수수료"""
        sub = await subscription_store.insert(
            user_id=1, plan_id="basic", amount=Decimal("10.00"), period_start=date(2026, 1, 1)
        )
        for day, amount in (("2026-02-05", "20.00"), ("2026-03-05", "10.00")):
            await db.execute(
                """
                INSERT INTO renewal_history (subscription_id, renewal_date, amount, status, created_at)
                VALUES (?, ?, ?, 'success', ?)
                """,
                (sub.id, day, amount, f"{day}T00:00:00.000000+00:00"),
            )
        await db.commit()
        for amount in ("4.35", "2.20"):
            txn = await make_transaction(amount)
            await client.post(f"/api/ledger/record/{txn.id}")

        summary = (await client.get("/api/finance/summary", params={"as_of": "2026-03-15"})).json()
        fees = (await client.get("/api/finance/fees")).json()
        roundups = (await client.get("/api/finance/roundups")).json()

        assert summary["period"] == "2026-03"
        assert Decimal(summary["current_month_revenue"]) == Decimal("10.00")
        assert Decimal(summary["total_revenue"]) == Decimal("30.00")
        assert summary["active_subscriptions"] == 1
        assert Decimal(summary["avg_revenue_per_active_subscription"]) == Decimal("30.00")
        assert summary["fee_transaction_count"] == 2
        assert Decimal(summary["total_fees"]) == Decimal("0.04")
        assert Decimal(summary["avg_fee_per_transaction"]) == Decimal("0.02")
        assert summary["roundup_count"] == 2
        assert Decimal(summary["roundup_total"]) == Decimal("1.45")

        assert Decimal(fees["total"]) == Decimal("0.04")
        assert sum(p["transaction_count"] for p in fees["periods"]) == 2
        assert roundups["total_count"] == 2
        assert Decimal(roundups["total_amount"]) == Decimal("1.45")

    @pytest.mark.asyncio
    async def test_summary_invalid_date(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/finance/summary", params={"as_of": "2026-13-40"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_record_api_usage(self, client: httpx.AsyncClient) -> None:
        """기록된 비용은 손익의 운영 비용에 반영"""
        response = await client.post(
            "/api/finance/api-usage",
            json={"service": "ocr", "cost": "0.0015", "endpoint": "/v1/receipts", "user_id": 3},
        )
        negative = await client.post("/api/finance/api-usage", json={"service": "ocr", "cost": "-1"})

        assert response.status_code == 201
        data = response.json()
        assert data["service"] == "ocr"
        assert Decimal(data["cost"]) == Decimal("0.0015")
        assert data["success"] is True
        assert negative.status_code == 422

        pnl = (await client.get("/api/finance/pnl")).json()
        assert Decimal(pnl["periods"][-1]["operating_cost"]) == Decimal("0.0015")


class TestErrorMapping:
    def test_status_for(self) -> None:
        assert status_for(AlreadyClaimed("busy")) == 409
        assert status_for(TransientStoreError("locked")) == 503
        assert status_for(CollaboratorUnavailableError("down")) == 503
        assert status_for(RoundupError("other")) == 400
