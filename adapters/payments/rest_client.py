"""
Payments REST API 클라이언트

구독 갱신 금액 청구. IPaymentGateway Protocol 구현.
"""

import logging
from typing import NoReturn

from adapters.http_client import JsonApiClient
from adapters.models import ChargeRequest, ChargeResult
from core.domain.errors import PaymentDeclinedError

logger = logging.getLogger(__name__)


class PaymentRestClient(JsonApiClient):
    """결제 게이트웨이 REST 클라이언트"""

    service_name = "payments"

    def _raise_rejected(self, status_code: int, message: str, data: dict) -> NoReturn:
        decline_code = data.get("decline_code")
        if decline_code:
            message = f"{message} ({decline_code})"
        raise PaymentDeclinedError(message)

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        """갱신 금액 청구

        Raises:
            PaymentDeclinedError: 결제 거절 또는 응답 형식 오류
            CollaboratorUnavailableError: 재시도 소진
        """
        data = await self._request(
            "POST",
            "/v1/charges",
            json=request.to_payload(),
            headers={"Idempotency-Key": request.idempotency_key},
        )

        try:
            result = ChargeResult.from_response(data)
        except (KeyError, ValueError, ArithmeticError) as e:
            raise PaymentDeclinedError(f"결제 응답 형식 오류: {data}") from e

        logger.info(
            "결제 완료",
            extra={
                "subscription_id": request.subscription_id,
                "charge_id": result.charge_id,
                "amount": str(result.amount),
            },
        )
        return result
