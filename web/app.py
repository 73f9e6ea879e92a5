"""
FastAPI 애플리케이션

라우터 등록, 도메인 예외 → HTTP 상태 매핑, 앱 설정.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from core.config.loader import get_settings
from core.constants import APP_VERSION
from core.domain.errors import (
    AlreadyClaimed,
    AlreadyTerminal,
    CollaboratorUnavailableError,
    DuplicateEntry,
    DuplicateStaging,
    InvalidAmount,
    NotFound,
    RoundupError,
    TransientStoreError,
)
from core.domain.state_machines import StateMachineError
from core.logging import setup_logging
from web.dependencies import close_collaborators
from web.routes import finance, health, ledger, queue, renewals

# 로깅 설정 (콘솔 + 파일)
setup_logging("web")

logger = logging.getLogger(__name__)

# 도메인 예외 → HTTP 상태 (위에서부터 isinstance 매칭)
ERROR_STATUS: list[tuple[type[RoundupError], int]] = [
    (NotFound, 404),
    (InvalidAmount, 400),
    (AlreadyTerminal, 409),
    (AlreadyClaimed, 409),
    (DuplicateEntry, 409),
    (DuplicateStaging, 409),
    (StateMachineError, 409),
    (TransientStoreError, 503),
    (CollaboratorUnavailableError, 503),
]


def status_for(error: RoundupError) -> int:
    """도메인 예외의 HTTP 상태 코드"""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리"""
    settings = get_settings()

    # 시작 시 - DB 스키마 자동 초기화
    async with SQLiteAdapter(settings.db_path) as db:
        await init_schema(db)
    logger.info(f"Web 시작 (mode: {settings.mode.value}, db: {settings.db_path})")

    yield

    # 종료 시 - 협력자 연결 정리
    await close_collaborators()


app = FastAPI(
    title="RoundupEngine API",
    description="라운드업 정산 파이프라인 및 재무 집계 API",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS 설정 (개발용)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RoundupError)
async def roundup_error_handler(request: Request, exc: RoundupError) -> JSONResponse:
    """도메인 예외 응답 ({"detail", "code"})"""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            f"요청 처리 실패: {exc}",
            extra={"path": request.url.path, "code": exc.code},
        )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# =========================================================================
# API 라우터 등록
# =========================================================================

app.include_router(health.router)
app.include_router(ledger.router)
app.include_router(queue.router)
app.include_router(renewals.router)
app.include_router(finance.router)
