"""
Group Balances

This package provides:
- Typed member, expense, split and settlement records
- A pairwise ledger folded from expense splits and settlements
- Netting of each member pair into one canonical direction
- Per-member net totals with owes / owed-by views
- Group lookup, membership checks and validation before computing
"""

from .engine import (
    PairwiseLedger,
    build_ledger,
    apply_settlements,
    net_ledger,
    project_balances,
    compute_group_balances,
)
from .models import (
    Member,
    Split,
    Expense,
    Settlement,
    MemberBalance,
    BalanceReport,
)
from .service import GroupBalanceService

__all__ = [
    "PairwiseLedger",
    "build_ledger",
    "apply_settlements",
    "net_ledger",
    "project_balances",
    "compute_group_balances",
    "Member",
    "Split",
    "Expense",
    "Settlement",
    "MemberBalance",
    "BalanceReport",
    "GroupBalanceService",
]
