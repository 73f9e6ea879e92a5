"""
재무 집계 / 대사

FinancialSnapshot 하나로 월별 재무제표, 대차대조표, 요약 지표를 계산하고,
거래와 원장의 수수료 합계를 대사한다.
"""

from core.finance.aggregator import (
    BalanceSheet,
    FeePoint,
    FinanceSummary,
    FinancialSnapshot,
    FinancialStatements,
    Period,
    RoundUpPoint,
    balance_sheet,
    build_statements,
    cash_flow_view,
    fee_view,
    finance_summary,
    pnl_view,
    revenue_view,
    roundup_view,
)
from core.finance.reconciliation import FeeReconciler, ReconciliationReport, reconcile_fees

__all__ = [
    "BalanceSheet",
    "FeePoint",
    "FeeReconciler",
    "FinanceSummary",
    "FinancialSnapshot",
    "FinancialStatements",
    "Period",
    "ReconciliationReport",
    "RoundUpPoint",
    "balance_sheet",
    "build_statements",
    "cash_flow_view",
    "fee_view",
    "finance_summary",
    "pnl_view",
    "reconcile_fees",
    "revenue_view",
    "roundup_view",
]
