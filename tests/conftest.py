"""
pytest 공통 fixture 정의

임시 SQLite DB, 저장소, 설정 파일 fixture
"""

import tempfile
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from core.config.loader import Settings
from core.domain.models import Transaction
from core.ledger.entry_builder import RoundupEntryBuilder
from core.ledger.roundup import FeeSchedule
from core.ledger.store import RoundupLedgerStore
from core.storage.finance_store import FinanceStore
from core.storage.queue_store import MarketQueueStore
from core.storage.renewal_store import RenewalStore
from core.storage.subscription_store import SubscriptionStore
from core.storage.transaction_store import TransactionStore


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_settings_file(temp_dir: Path) -> Path:
    """테스트용 settings.yaml 파일 생성 (sandbox, 협력자 섹션 없음)"""
    db_path = temp_dir / "roundup_test.db"
    content = f"""# 테스트용 settings.yaml
mode: sandbox

fees:
  mode: percentage
  rate: "0.025"

roundup:
  whole_dollar_amount: "1.00"

renewal:
  max_attempts: 3
  initial_delay_seconds: 3600
  backoff_multiplier: 2
  max_delay_seconds: 86400

worker:
  batch_timeout_seconds: 30
  execution_timeout_seconds: 5

database:
  path: "{db_path.as_posix()}"
"""
    settings_path = temp_dir / "settings.yaml"
    settings_path.write_text(content, encoding="utf-8")
    return settings_path


@pytest.fixture
def reset_settings() -> None:
    """Settings 싱글턴 초기화 (테스트 전후)"""
    Settings.reset()
    yield
    Settings.reset()


# -------------------------------------------------------------------------
# DB / 저장소
# -------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db(temp_dir: Path) -> AsyncGenerator[SQLiteAdapter, None]:
    """스키마가 초기화된 임시 DB"""
    adapter = SQLiteAdapter(temp_dir / "roundup_test.db")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


@pytest.fixture
def transaction_store(db: SQLiteAdapter) -> TransactionStore:
    return TransactionStore(db)


@pytest.fixture
def ledger_store(db: SQLiteAdapter) -> RoundupLedgerStore:
    return RoundupLedgerStore(db)


@pytest.fixture
def queue_store(db: SQLiteAdapter) -> MarketQueueStore:
    return MarketQueueStore(db)


@pytest.fixture
def subscription_store(db: SQLiteAdapter) -> SubscriptionStore:
    return SubscriptionStore(db)


@pytest.fixture
def renewal_store(db: SQLiteAdapter) -> RenewalStore:
    return RenewalStore(db)


@pytest.fixture
def finance_store(db: SQLiteAdapter) -> FinanceStore:
    return FinanceStore(db)


@pytest.fixture
def entry_builder(
    ledger_store: RoundupLedgerStore,
    transaction_store: TransactionStore,
) -> RoundupEntryBuilder:
    """수수료 2.5% 원장 항목 생성기"""
    return RoundupEntryBuilder(
        FeeSchedule(rate=Decimal("0.025")),
        ledger_store=ledger_store,
        transaction_store=transaction_store,
    )


@pytest.fixture
def make_transaction(
    transaction_store: TransactionStore,
) -> Callable[..., Awaitable[Transaction]]:
    """거래 생성 헬퍼 (기본: user 1, VTI 매핑)"""

    async def _make(
        amount: str | None = "4.35",
        user_id: int = 1,
        ticker: str | None = "VTI",
        merchant: str = "coffee",
    ) -> Transaction:
        return await transaction_store.insert(
            user_id=user_id,
            merchant=merchant,
            amount=Decimal(amount) if amount is not None else None,
            ticker=ticker,
        )

    return _make
