"""
설정 로더

settings.yaml 로드 및 수수료/재시도/워커/협력자 설정 생성
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from adapters.db.sqlite_adapter import get_db_path
from core.constants import Defaults, Endpoints, Paths
from core.ledger.roundup import FeeSchedule
from core.types import FeeMode, RunMode
from core.utils.retry import RetryPolicy


@dataclass(frozen=True)
class CollaboratorConfig:
    """외부 협력자(브로커/결제) 연결 설정"""

    base_url: str
    api_key: str
    timeout_seconds: float = 10.0
    max_retries: int = 3


@dataclass(frozen=True)
class WorkerConfig:
    """워커 실행 설정"""

    batch_timeout_seconds: float = Defaults.BATCH_TIMEOUT_SEC
    execution_timeout_seconds: float = Defaults.EXECUTION_TIMEOUT_SEC
    queue_interval_seconds: int = Defaults.QUEUE_INTERVAL_SEC
    renewal_interval_seconds: int = Defaults.RENEWAL_INTERVAL_SEC
    claim_lease_seconds: int = Defaults.RENEWAL_CLAIM_LEASE_SEC


@dataclass(frozen=True)
class AppConfig:
    """애플리케이션 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    mode: RunMode
    fee_schedule: FeeSchedule = field(default_factory=FeeSchedule)
    whole_dollar_round_up: Decimal = Defaults.WHOLE_DOLLAR_ROUND_UP
    renewal_policy: RetryPolicy = field(default_factory=RetryPolicy)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    broker: CollaboratorConfig | None = None
    payments: CollaboratorConfig | None = None
    db_path: Path | None = None


class SettingsLoadError(Exception):
    """Settings 로드 실패 예외"""

    pass


def _decimal(section: dict[str, Any], key: str, default: Decimal) -> Decimal:
    raw = section.get(key)
    if raw is None:
        return default
    try:
        return Decimal(str(raw))
    except InvalidOperation as e:
        raise SettingsLoadError(f"'{key}' 값이 숫자가 아닙니다: {raw!r}") from e


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise SettingsLoadError(f"settings.yaml의 '{key}' 섹션 형식이 잘못되었습니다")
    return value


def _load_collaborator(
    data: dict[str, Any],
    key: str,
    mode: RunMode,
    default_urls: tuple[str, str],
) -> CollaboratorConfig | None:
    """모드별 협력자 설정 로드 (섹션이 없으면 None)"""
    section = _section(data, key)
    mode_section = section.get(mode.value)
    if not mode_section:
        return None

    api_key = mode_section.get("api_key")
    if not api_key:
        raise SettingsLoadError(
            f"settings.yaml의 {key}.{mode.value} 섹션에 'api_key'가 없습니다"
        )

    prod_url, sandbox_url = default_urls
    default_url = prod_url if mode == RunMode.PRODUCTION else sandbox_url

    return CollaboratorConfig(
        base_url=mode_section.get("base_url", default_url),
        api_key=api_key,
        timeout_seconds=float(section.get("timeout_seconds", 10.0)),
        max_retries=int(section.get("max_retries", 3)),
    )


def load_config(path: Path) -> AppConfig:
    """settings.yaml 파일 로드

    Args:
        path: settings.yaml 경로

    Returns:
        AppConfig 인스턴스

    Raises:
        SettingsLoadError: 파일이 없거나 형식이 잘못된 경우
        ValueError: 유효하지 않은 mode/fees.mode인 경우
    """
    if not path.exists():
        raise SettingsLoadError(f"settings.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SettingsLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if data is None:
        raise SettingsLoadError("settings.yaml이 비어 있습니다")
    if not isinstance(data, dict):
        raise SettingsLoadError("settings.yaml 최상위는 매핑이어야 합니다")

    # mode 검증
    mode_str = data.get("mode")
    if mode_str is None:
        raise SettingsLoadError("settings.yaml에 'mode' 필드가 없습니다")

    try:
        mode = RunMode(mode_str)
    except ValueError as e:
        valid_modes = [m.value for m in RunMode]
        raise ValueError(
            f"유효하지 않은 mode입니다: '{mode_str}'. 유효한 값: {valid_modes}"
        ) from e

    # 수수료
    fees = _section(data, "fees")
    fee_mode_str = fees.get("mode", FeeMode.PERCENTAGE.value)
    try:
        fee_mode = FeeMode(fee_mode_str)
    except ValueError as e:
        raise ValueError(
            f"유효하지 않은 fees.mode입니다: '{fee_mode_str}'. "
            f"유효한 값: {[m.value for m in FeeMode]}"
        ) from e

    fee_schedule = FeeSchedule(
        mode=fee_mode,
        rate=_decimal(fees, "rate", Defaults.FEE_RATE),
        flat_amount=_decimal(fees, "flat_amount", Defaults.FEE_FLAT_AMOUNT),
    )

    roundup = _section(data, "roundup")
    whole_dollar = _decimal(roundup, "whole_dollar_amount", Defaults.WHOLE_DOLLAR_ROUND_UP)

    # 갱신 재시도
    renewal = _section(data, "renewal")
    renewal_policy = RetryPolicy(
        max_attempts=int(renewal.get("max_attempts", Defaults.RENEWAL_MAX_ATTEMPTS)),
        initial_delay_seconds=float(
            renewal.get("initial_delay_seconds", Defaults.RENEWAL_INITIAL_DELAY_SEC)
        ),
        backoff_multiplier=float(
            renewal.get("backoff_multiplier", Defaults.RENEWAL_BACKOFF_MULTIPLIER)
        ),
        max_delay_seconds=float(
            renewal.get("max_delay_seconds", Defaults.RENEWAL_MAX_DELAY_SEC)
        ),
    )

    # 워커
    worker = _section(data, "worker")
    worker_config = WorkerConfig(
        batch_timeout_seconds=float(
            worker.get("batch_timeout_seconds", Defaults.BATCH_TIMEOUT_SEC)
        ),
        execution_timeout_seconds=float(
            worker.get("execution_timeout_seconds", Defaults.EXECUTION_TIMEOUT_SEC)
        ),
        queue_interval_seconds=int(
            worker.get("queue_interval_seconds", Defaults.QUEUE_INTERVAL_SEC)
        ),
        renewal_interval_seconds=int(
            worker.get("renewal_interval_seconds", Defaults.RENEWAL_INTERVAL_SEC)
        ),
        claim_lease_seconds=int(
            worker.get("claim_lease_seconds", Defaults.RENEWAL_CLAIM_LEASE_SEC)
        ),
    )

    db_path_raw = _section(data, "database").get("path")

    return AppConfig(
        mode=mode,
        fee_schedule=fee_schedule,
        whole_dollar_round_up=whole_dollar,
        renewal_policy=renewal_policy,
        worker=worker_config,
        broker=_load_collaborator(
            data, "broker", mode,
            (Endpoints.PROD_BROKER_URL, Endpoints.SANDBOX_BROKER_URL),
        ),
        payments=_load_collaborator(
            data, "payments", mode,
            (Endpoints.PROD_PAYMENTS_URL, Endpoints.SANDBOX_PAYMENTS_URL),
        ),
        db_path=Path(db_path_raw) if db_path_raw else None,
    )


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    settings.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _config: AppConfig | None = None

    def __new__(cls, settings_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, settings_path: Path | None = None) -> None:
        if self._config is None:
            self._config = load_config(settings_path or Paths.SETTINGS_FILE)

    @property
    def config(self) -> AppConfig:
        """전체 설정"""
        assert self._config is not None
        return self._config

    @property
    def mode(self) -> RunMode:
        """현재 실행 모드"""
        return self.config.mode

    @property
    def fee_schedule(self) -> FeeSchedule:
        return self.config.fee_schedule

    @property
    def whole_dollar_round_up(self) -> Decimal:
        return self.config.whole_dollar_round_up

    @property
    def renewal_policy(self) -> RetryPolicy:
        return self.config.renewal_policy

    @property
    def worker(self) -> WorkerConfig:
        return self.config.worker

    @property
    def db_path(self) -> Path:
        """현재 모드의 DB 경로 (database.path가 있으면 우선)"""
        return self.config.db_path or get_db_path(self.config.mode)

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._config = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(settings_path)
