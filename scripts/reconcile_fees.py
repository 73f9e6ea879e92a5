#!/usr/bin/env python3
"""
수수료 대사 리포트

transactions.fee 합계와 roundup_ledger.fee_amount 합계를 비교해 출력.
불일치가 있으면 종료 코드 1.

실행 방법:
    python scripts/reconcile_fees.py
    python scripts/reconcile_fees.py --db data/roundup_sandbox.db --json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 path에 추가
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.db.sqlite_adapter import SQLiteAdapter, get_db_path
from core.finance.reconciliation import FeeReconciler, ReconciliationReport
from core.ledger.store import RoundupLedgerStore
from core.storage.transaction_store import TransactionStore
from core.types import RunMode

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("reconcile_fees")


def format_report(report: ReconciliationReport) -> str:
    """사람이 읽는 리포트 문자열"""
    lines = [
        f"transactions.fee 합계 : {report.transaction_fees}",
        f"ledger.fee_amount 합계: {report.ledger_fees}",
        f"차이                  : {report.drift} (허용 {report.tolerance} 미만)",
        f"결과                  : {'일치' if report.reconciled else '불일치'}",
    ]
    if report.user_drifts:
        lines.append("")
        lines.append("사용자별 불일치:")
        for d in report.user_drifts:
            lines.append(
                f"  user {d.user_id}: tx={d.transaction_fees} "
                f"ledger={d.ledger_fees} drift={d.drift}"
            )
    return "\n".join(lines)


async def run(db_path: Path, as_json: bool) -> int:
    """대사 실행

    Returns:
        종료 코드 (0: 일치, 1: 불일치)
    """
    if not db_path.exists():
        logger.error(f"DB 파일이 없습니다: {db_path}")
        return 2

    async with SQLiteAdapter(db_path, readonly=True) as db:
        reconciler = FeeReconciler(TransactionStore(db), RoundupLedgerStore(db))
        report = await reconciler.check()

    if as_json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(format_report(report))

    return 0 if report.reconciled else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="수수료 대사 리포트")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in RunMode],
        default=RunMode.SANDBOX.value,
        help="실행 모드 (기본: sandbox)",
    )
    parser.add_argument("--db", type=Path, default=None, help="DB 경로 (지정 시 mode 무시)")
    parser.add_argument("--json", action="store_true", help="JSON 출력")
    args = parser.parse_args()

    db_path = args.db or get_db_path(RunMode(args.mode))
    sys.exit(asyncio.run(run(db_path, args.json)))


if __name__ == "__main__":
    main()
