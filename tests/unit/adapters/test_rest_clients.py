"""
협력자 REST 클라이언트 테스트

httpx.MockTransport로 브로커/결제 API 응답을 흉내 낸다.
"""

import json
from decimal import Decimal

import httpx
import pytest

from adapters.broker.rest_client import BrokerRestClient
from adapters.interfaces import IMarketExecutor, IPaymentGateway
from adapters.models import ChargeRequest
from adapters.payments.rest_client import PaymentRestClient
from core.domain.errors import (
    CollaboratorUnavailableError,
    MarketExecutionError,
    PaymentDeclinedError,
)
from core.domain.models import MarketQueueItem
from core.types import QueueStatus


@pytest.fixture
def item() -> MarketQueueItem:
    return MarketQueueItem(
        id=42,
        transaction_id=7,
        user_id=3,
        ticker="VTI",
        amount=Decimal("0.65"),
        status=QueueStatus.PROCESSING,
    )


@pytest.fixture
def charge_request() -> ChargeRequest:
    return ChargeRequest(
        subscription_id=5,
        user_id=3,
        amount=Decimal("9.99"),
        payment_method_id="pm_card",
        idempotency_key="rn-11-1",
    )


def _broker(handler) -> BrokerRestClient:
    return BrokerRestClient(
        base_url="https://broker.test",
        api_key="secret",
        max_retries=3,
        retry_backoff=0,
        transport=httpx.MockTransport(handler),
    )


def _payments(handler) -> PaymentRestClient:
    return PaymentRestClient(
        base_url="https://payments.test",
        api_key="secret",
        max_retries=2,
        retry_backoff=0,
        transport=httpx.MockTransport(handler),
    )


class TestBrokerRestClient:
    """BrokerRestClient 테스트"""

    @pytest.mark.asyncio
    async def test_execute_success(self, item: MarketQueueItem) -> None:
        """주문 요청 형식과 응답 파싱"""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "order_id": "ord-1",
                    "ticker": "VTI",
                    "amount": "0.65",
                    "filled_quantity": "0.0025",
                    "price": "260.00",
                },
            )

        client = _broker(handler)
        result = await client.execute(item, "rq-42")
        await client.close()

        assert result.order_ref == "ord-1"
        assert result.amount == Decimal("0.65")
        assert result.filled_quantity == Decimal("0.0025")

        request = seen[0]
        assert request.url.path == "/v1/orders"
        assert request.headers["Idempotency-Key"] == "rq-42"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["client_order_id"] == "rq-42"
        assert body["amount"] == "0.65"
        assert body["side"] == "buy"

    @pytest.mark.asyncio
    async def test_4xx_is_rejection(self, item: MarketQueueItem) -> None:
        """4xx는 재시도 없이 MarketExecutionError"""
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(422, json={"message": "ticker halted"})

        client = _broker(handler)
        with pytest.raises(MarketExecutionError, match="ticker halted"):
            await client.execute(item, "rq-42")
        await client.close()

        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_5xx_retried_then_success(self, item: MarketQueueItem) -> None:
        """5xx는 재시도"""
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"order_id": 9, "ticker": "VTI", "amount": "0.65"})

        client = _broker(handler)
        result = await client.execute(item, "rq-42")
        await client.close()

        assert calls["count"] == 3
        assert result.order_ref == "9"

    @pytest.mark.asyncio
    async def test_timeout_exhausted_is_unavailable(self, item: MarketQueueItem) -> None:
        """타임아웃 재시도 소진 → CollaboratorUnavailableError (결과 불명)"""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _broker(handler)
        with pytest.raises(CollaboratorUnavailableError):
            await client.execute(item, "rq-42")
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, item: MarketQueueItem) -> None:
        """429는 Retry-After 후 재시도"""
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(429, headers={"Retry-After": "1"})
            return httpx.Response(200, json={"order_id": "o", "ticker": "VTI", "amount": "0.65"})

        client = _broker(handler)
        await client.execute(item, "rq-42")
        await client.close()

        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_rate_limit_http_date_retried(self, item: MarketQueueItem) -> None:
        """HTTP-date 형식 Retry-After도 예외 없이 재시도"""
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(
                    429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
                )
            return httpx.Response(200, json={"order_id": "o", "ticker": "VTI", "amount": "0.65"})

        client = _broker(handler)
        result = await client.execute(item, "rq-42")
        await client.close()

        assert calls["count"] == 2
        assert result.order_ref == "o"

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted_is_unavailable(self, item: MarketQueueItem) -> None:
        """429 재시도 소진 → CollaboratorUnavailableError (ValueError 아님)"""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"})

        client = _broker(handler)
        with pytest.raises(CollaboratorUnavailableError):
            await client.execute(item, "rq-42")
        await client.close()

    @pytest.mark.parametrize(
        ("header", "attempt", "expected"),
        [
            ("3", 0, 6.0),
            ("-5", 0, 0.0),
            ("Wed, 21 Oct 2026 07:28:00 GMT", 0, 2.0),
            ("Wed, 21 Oct 2026 07:28:00 GMT", 2, 6.0),
            (None, 1, 4.0),
        ],
    )
    def test_retry_after_delay(
        self, header: str | None, attempt: int, expected: float
    ) -> None:
        """정수 초는 backoff 배수, 해석 불가 값은 선형 백오프"""
        client = BrokerRestClient("https://broker.test", retry_backoff=2.0)
        headers = {"Retry-After": header} if header is not None else {}
        response = httpx.Response(429, headers=headers)

        assert client._retry_after_delay(response, attempt) == expected

    @pytest.mark.asyncio
    async def test_malformed_response(self, item: MarketQueueItem) -> None:
        """필수 필드 누락 응답은 거부로 처리"""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "ok"})

        client = _broker(handler)
        with pytest.raises(MarketExecutionError):
            await client.execute(item, "rq-42")
        await client.close()

    def test_protocol(self) -> None:
        assert isinstance(BrokerRestClient("https://broker.test"), IMarketExecutor)


class TestPaymentRestClient:
    """PaymentRestClient 테스트"""

    @pytest.mark.asyncio
    async def test_charge_success(self, charge_request: ChargeRequest) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"charge_id": "ch_1", "amount": "9.99", "payment_method": "pm_card"}
            )

        client = _payments(handler)
        result = await client.charge(charge_request)
        await client.close()

        assert result.charge_id == "ch_1"
        assert result.amount == Decimal("9.99")
        assert seen[0].url.path == "/v1/charges"
        assert seen[0].headers["Idempotency-Key"] == "rn-11-1"
        assert json.loads(seen[0].content)["amount"] == "9.99"

    @pytest.mark.asyncio
    async def test_decline_with_code(self, charge_request: ChargeRequest) -> None:
        """402 거절 → PaymentDeclinedError (decline_code 포함)"""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                402, json={"message": "card declined", "decline_code": "insufficient_funds"}
            )

        client = _payments(handler)
        with pytest.raises(PaymentDeclinedError, match="insufficient_funds"):
            await client.charge(charge_request)
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self, charge_request: ChargeRequest) -> None:
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = _payments(handler)
        with pytest.raises(CollaboratorUnavailableError):
            await client.charge(charge_request)
        await client.close()

        assert calls["count"] == 2

    def test_protocol(self) -> None:
        assert isinstance(PaymentRestClient("https://payments.test"), IPaymentGateway)
