"""
로깅 설정 유틸리티

Worker와 Web 공통 로깅 설정.
- 콘솔/파일 모두 INFO 레벨
- 파일은 자정 기준 daily 롤링
- logger 호출의 extra 필드는 메시지 뒤에 key=value로 붙인다

사용법:
    from core.logging import setup_logging
    setup_logging("worker")
    setup_logging("web")

    logger.warning("주문 거부", extra={"queue_item_id": 7, "ticker": "VTI"})
    # 2026-02-01 09:00:00 | WARNING  | worker.queue.executor | 주문 거부 | queue_item_id=7 ticker=VTI
"""

import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from core.constants import Paths


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_RETENTION_DAYS = 7

PROCESS_LOG_DIRS: dict[str, Path] = {
    "worker": Paths.WORKER_LOGS_DIR,
    "web": Paths.WEB_LOGS_DIR,
}

# WARNING 미만은 버림
QUIET_LOGGERS = (
    "aiosqlite",
    "httpcore",
    "httpx",
    "asyncio",
    "uvicorn.access",
)

# LogRecord 기본 속성 (extra 필드 판별용)
_RECORD_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


class ExtraFieldsFormatter(logging.Formatter):
    """extra 필드를 key=value로 덧붙이는 Formatter"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = [
            f"{key}={_render(value)}"
            for key, value in vars(record).items()
            if key not in _RECORD_KEYS and not key.startswith("_")
        ]
        if not fields:
            return line

        # 예외 traceback이 붙은 경우 첫 줄 뒤에 삽입
        head, sep, tail = line.partition("\n")
        return f"{head} | {' '.join(fields)}{sep}{tail}"


def get_log_file_path(process_name: str, log_dir: Path | None = None) -> Path:
    """프로세스별 로그 파일 경로 ({log_dir}/{process_name}.log)"""
    directory = log_dir or PROCESS_LOG_DIRS.get(process_name, Paths.LOGS_DIR)
    return directory / f"{process_name}.log"


def setup_logging(
    process_name: str,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    log_dir: Path | None = None,
) -> logging.Logger:
    """루트 로거 초기화

    기존 핸들러는 모두 제거하고 콘솔 + daily 파일 핸들러를 새로 건다.

    Args:
        process_name: "worker" 또는 "web"
        console_level: 콘솔 로그 레벨
        file_level: 파일 로그 레벨
        log_dir: 로그 디렉토리 재지정 (테스트용)

    Returns:
        루트 Logger
    """
    log_file = get_log_file_path(process_name, log_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = ExtraFieldsFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"  # web.log.2026-02-01
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        f"로깅 초기화: {process_name}",
        extra={"log_file": str(log_file), "retention_days": LOG_RETENTION_DAYS},
    )
    return root_logger
