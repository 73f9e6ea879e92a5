"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from decimal import Decimal
from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → roundupengine/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent

APP_VERSION: str = "0.1.0"


class Endpoints:
    """외부 협력자 API 엔드포인트 (모드별 기본값)

    settings.yaml에 base_url이 지정되면 그 값을 우선 사용.
    """

    PROD_BROKER_URL: str = "https://api.broker.example.com"
    SANDBOX_BROKER_URL: str = "https://sandbox.broker.example.com"

    PROD_PAYMENTS_URL: str = "https://api.payments.example.com"
    SANDBOX_PAYMENTS_URL: str = "https://sandbox.payments.example.com"


class Defaults:
    """기본값 상수"""

    CURRENCY: str = "USD"

    # 수수료 (관리자 설정 platform_fee 기본값 2.5%)
    FEE_RATE: Decimal = Decimal("0.025")
    FEE_FLAT_AMOUNT: Decimal = Decimal("0.00")

    # 금액이 이미 정수 단위일 때 적용할 라운드업
    WHOLE_DOLLAR_ROUND_UP: Decimal = Decimal("1.00")

    # 갱신 재시도 정책
    RENEWAL_MAX_ATTEMPTS: int = 3
    RENEWAL_INITIAL_DELAY_SEC: int = 3600
    RENEWAL_BACKOFF_MULTIPLIER: float = 2.0
    RENEWAL_MAX_DELAY_SEC: int = 86400
    RENEWAL_CLAIM_LEASE_SEC: int = 300

    # 워커
    BATCH_TIMEOUT_SEC: int = 60
    EXECUTION_TIMEOUT_SEC: int = 15
    QUEUE_INTERVAL_SEC: int = 60
    RENEWAL_INTERVAL_SEC: int = 300

    # Store 재시도 (TransientStoreError)
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BASE_DELAY_SEC: float = 0.2

    WEB_HOST: str = "127.0.0.1"
    WEB_PORT: int = 8000

    PAGE_LIMIT: int = 50
    PAGE_LIMIT_MAX: int = 500


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    WORKER_LOGS_DIR: Path = LOGS_DIR / "worker"
    WEB_LOGS_DIR: Path = LOGS_DIR / "web"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # DB 파일
    PROD_DB: Path = DATA_DIR / "roundup_prod.db"
    SANDBOX_DB: Path = DATA_DIR / "roundup_sandbox.db"


# 금액 정밀도 (센트)
CENT: Decimal = Decimal("0.01")

# 수수료 대사 허용 오차 (|drift| < 0.01)
RECONCILIATION_TOLERANCE: Decimal = Decimal("0.01")
