"""
Broker REST API 클라이언트

라운드업 금액을 분수 주식 매수 주문으로 전달.
IMarketExecutor Protocol 구현.
"""

import logging
from typing import NoReturn

from adapters.http_client import JsonApiClient
from adapters.models import ExecutionResult
from core.domain.errors import MarketExecutionError
from core.domain.models import MarketQueueItem

logger = logging.getLogger(__name__)


class BrokerRestClient(JsonApiClient):
    """브로커 REST 클라이언트

    주문은 Idempotency-Key 헤더와 함께 전송되므로
    재큐잉 후 같은 항목을 다시 보내도 브로커가 중복 주문을 거른다.

    사용 예시:
    ```python
    broker = BrokerRestClient(base_url=cfg.base_url, api_key=cfg.api_key)
    result = await broker.execute(item, idempotency_key="rq-42")
    print(result.order_ref)
    ```
    """

    service_name = "broker"

    def _raise_rejected(self, status_code: int, message: str, data: dict) -> NoReturn:
        raise MarketExecutionError(f"주문 거부 (HTTP {status_code}): {message}")

    async def execute(
        self,
        item: MarketQueueItem,
        idempotency_key: str,
    ) -> ExecutionResult:
        """시장가 금액 주문 실행"""
        payload = {
            "client_order_id": idempotency_key,
            "user_id": item.user_id,
            "ticker": item.ticker,
            "amount": str(item.amount),
            "type": "market",
            "side": "buy",
        }

        data = await self._request(
            "POST",
            "/v1/orders",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        )

        try:
            result = ExecutionResult.from_response(data)
        except (KeyError, ValueError, ArithmeticError) as e:
            raise MarketExecutionError(f"주문 응답 형식 오류: {data}") from e

        logger.info(
            "주문 체결",
            extra={
                "queue_item_id": item.id,
                "ticker": item.ticker,
                "amount": str(item.amount),
                "order_ref": result.order_ref,
            },
        )
        return result
