"""
Web 서비스 패키지

비즈니스 로직 처리
"""

from web.services.finance_service import FinanceService
from web.services.renewal_service import RenewalService
from web.services.settlement_service import SettlementService

__all__ = [
    "FinanceService",
    "RenewalService",
    "SettlementService",
]
