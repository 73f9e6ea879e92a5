"""
의존성 주입

FastAPI의 Depends를 사용한 의존성 관리.
테스트에서는 app.dependency_overrides로 교체한다.
"""

from typing import AsyncGenerator

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.factory import create_market_executor, create_payment_gateway
from adapters.interfaces import IMarketExecutor, IPaymentGateway
from core.config.loader import Settings, get_settings


def get_app_settings() -> Settings:
    """애플리케이션 설정 반환"""
    return get_settings()


async def get_db() -> AsyncGenerator[SQLiteAdapter, None]:
    """DB 세션 반환 (읽기 전용)

    조회/재무 집계용.
    """
    settings = get_settings()
    async with SQLiteAdapter(settings.db_path, readonly=True) as db:
        yield db


async def get_db_write() -> AsyncGenerator[SQLiteAdapter, None]:
    """DB 세션 반환 (쓰기 가능)

    원장 기록, 스테이징, 실행, 갱신 시 사용.
    """
    settings = get_settings()
    async with SQLiteAdapter(settings.db_path, readonly=False) as db:
        yield db


# =========================================================================
# 외부 협력자 (프로세스 단위 공유)
# =========================================================================

_market_executor: IMarketExecutor | None = None
_payment_gateway: IPaymentGateway | None = None


def get_market_executor() -> IMarketExecutor:
    """마켓 실행기 반환 (최초 호출 시 설정으로 생성)"""
    global _market_executor
    if _market_executor is None:
        _market_executor = create_market_executor(get_settings().config)
    return _market_executor


def get_payment_gateway() -> IPaymentGateway:
    """결제 게이트웨이 반환 (최초 호출 시 설정으로 생성)"""
    global _payment_gateway
    if _payment_gateway is None:
        _payment_gateway = create_payment_gateway(get_settings().config)
    return _payment_gateway


async def close_collaborators() -> None:
    """협력자 연결 종료 (앱 종료 시)"""
    global _market_executor, _payment_gateway
    if _market_executor is not None:
        await _market_executor.close()
        _market_executor = None
    if _payment_gateway is not None:
        await _payment_gateway.close()
        _payment_gateway = None
