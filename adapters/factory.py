"""
협력자 생성

설정의 broker/payments 섹션으로 REST 클라이언트를 만든다.
sandbox 모드에서 섹션이 없으면 Mock 구현체로 대체한다.
"""

import logging

from adapters.broker.rest_client import BrokerRestClient
from adapters.interfaces import IMarketExecutor, IPaymentGateway
from adapters.mock.market_executor import MockMarketExecutor
from adapters.mock.payment_gateway import MockPaymentGateway
from adapters.payments.rest_client import PaymentRestClient
from core.config.loader import AppConfig, SettingsLoadError
from core.types import RunMode

logger = logging.getLogger(__name__)


def create_market_executor(config: AppConfig) -> IMarketExecutor:
    """마켓 실행기 생성

    Raises:
        SettingsLoadError: production 모드에 broker 설정이 없는 경우
    """
    if config.broker is None:
        if config.mode == RunMode.PRODUCTION:
            raise SettingsLoadError("production 모드에는 broker 설정이 필요합니다")
        logger.warning("broker 설정 없음, MockMarketExecutor 사용 (sandbox)")
        return MockMarketExecutor()

    return BrokerRestClient(
        base_url=config.broker.base_url,
        api_key=config.broker.api_key,
        timeout=config.broker.timeout_seconds,
        max_retries=config.broker.max_retries,
    )


def create_payment_gateway(config: AppConfig) -> IPaymentGateway:
    """결제 게이트웨이 생성

    Raises:
        SettingsLoadError: production 모드에 payments 설정이 없는 경우
    """
    if config.payments is None:
        if config.mode == RunMode.PRODUCTION:
            raise SettingsLoadError("production 모드에는 payments 설정이 필요합니다")
        logger.warning("payments 설정 없음, MockPaymentGateway 사용 (sandbox)")
        return MockPaymentGateway()

    return PaymentRestClient(
        base_url=config.payments.base_url,
        api_key=config.payments.api_key,
        timeout=config.payments.timeout_seconds,
        max_retries=config.payments.max_retries,
    )
