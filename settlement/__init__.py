"""
Group Expense Settlement

This module provides:
- Equal-split balances over a group's expense ledger
- Settlement entry pairs recorded as one atomic transfer
- Greedy matching of debtors to creditors into suggested payments
- In-memory users, groups, memberships and ledger storage
- HTTP summary with per-caller settle permissions
"""

from .engine import (
    EPSILON,
    ArithmeticNotReconciled,
    BalanceEngineError,
    EmptyGroupError,
    IntegrityError,
    apply_transfers,
    compute_summary,
)
from .models import (
    LedgerEntry,
    Member,
    MemberBalance,
    SettlementTransfer,
    Summary,
    TransferSuggestion,
)
from .service import GroupService

__all__ = [
    "EPSILON",
    "ArithmeticNotReconciled",
    "BalanceEngineError",
    "EmptyGroupError",
    "IntegrityError",
    "apply_transfers",
    "compute_summary",
    "LedgerEntry",
    "Member",
    "MemberBalance",
    "SettlementTransfer",
    "Summary",
    "TransferSuggestion",
    "GroupService",
]
