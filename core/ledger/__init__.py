"""
라운드업 원장

구매 거래의 라운드업/수수료 계산과 원장 항목 저장.

사용 예시:
```python
from core.ledger import FeeSchedule, RoundupEntryBuilder, RoundupLedgerStore

ledger_store = RoundupLedgerStore(db)
builder = RoundupEntryBuilder(
    FeeSchedule(rate=Decimal("0.025")),
    ledger_store=ledger_store,
    transaction_store=TransactionStore(db),
)

entry = await builder.record(transaction_id)
```
"""

from core.ledger.entry_builder import RoundupEntryBuilder
from core.ledger.roundup import (
    FeeSchedule,
    RoundupQuote,
    compute_round_up,
    parse_amount,
    quote,
    to_cents,
)
from core.ledger.store import RoundupLedgerStore

__all__ = [
    "FeeSchedule",
    "RoundupEntryBuilder",
    "RoundupLedgerStore",
    "RoundupQuote",
    "compute_round_up",
    "parse_amount",
    "quote",
    "to_cents",
]
