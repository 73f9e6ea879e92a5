"""
어댑터 레이어

외부 서비스(브로커, 결제 게이트웨이, DB)와의 연동을 담당.
Protocol 기반 인터페이스로 Mock 교체 가능.
"""

from adapters.interfaces import IMarketExecutor, IPaymentGateway
from adapters.models import ChargeRequest, ChargeResult, ExecutionResult

__all__ = [
    # Interfaces
    "IMarketExecutor",
    "IPaymentGateway",
    # Models
    "ChargeRequest",
    "ChargeResult",
    "ExecutionResult",
]
