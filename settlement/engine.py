"""
Balance engine: net balances and a greedy transfer plan for one group.

Every member owes an equal share of the expense pool. Settlement entries
move money between members' paid totals without touching the pool.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Sequence

from .models import (
    LedgerEntry,
    Member,
    MemberBalance,
    MemberId,
    Summary,
    TransferSuggestion,
)


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
EPSILON = CENT
ZERO = Decimal("0.00")


class BalanceEngineError(Exception):
    pass


class EmptyGroupError(BalanceEngineError):
    pass


class IntegrityError(BalanceEngineError):
    pass


class ArithmeticNotReconciled(BalanceEngineError):
    pass


def round2(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_summary(members: Sequence[Member], entries: Iterable[LedgerEntry]) -> Summary:
    """Compute per-member balances and the transfers that clear them.

    Raises EmptyGroupError when there are no members, IntegrityError when
    the ledger does not fit the roster, and ArithmeticNotReconciled when the
    matched transfers leave an unexplained remainder.
    """
    if not members:
        raise EmptyGroupError("Cannot compute a summary for a group with no members")

    roster = _index_members(members)
    entries = list(entries)

    paid: dict[MemberId, Decimal] = {member_id: ZERO for member_id in roster}
    expense_pool = ZERO
    for entry in entries:
        if entry.member_id not in roster:
            raise IntegrityError(f"Ledger entry references unknown member {entry.member_id!r}")
        if not entry.is_settlement:
            if entry.amount <= 0:
                raise IntegrityError(
                    f"Expense entry for member {entry.member_id!r} must be positive, got {entry.amount}"
                )
            expense_pool += entry.amount
        paid[entry.member_id] += entry.amount

    total_expense_pool = round2(expense_pool)
    split_per_head = round2(total_expense_pool / len(roster))

    balances = [
        MemberBalance(
            id=member.id,
            name=member.name,
            email=member.email,
            paid=round2(paid[member.id]),
            owes=split_per_head,
            balance=round2(paid[member.id]) - split_per_head,
        )
        for member in roster.values()
    ]
    logger.debug("Calculated balances: %s", [(b.id, str(b.balance)) for b in balances])

    residue = total_expense_pool - split_per_head * len(roster)
    transfers = _match_transfers(balances, roster, residue)
    logger.debug("Generated %d transfers for %d members", len(transfers), len(roster))

    return Summary(
        total_expense_pool=total_expense_pool,
        split_per_head=split_per_head,
        balances=balances,
        transfers=transfers,
    )


def apply_transfers(
    balances: Iterable[MemberBalance], transfers: Iterable[TransferSuggestion]
) -> dict[MemberId, Decimal]:
    """Return each member's balance after every transfer has been paid."""
    remaining = {b.id: b.balance for b in balances}
    for transfer in transfers:
        remaining[transfer.from_member] += transfer.amount
        remaining[transfer.to_member] -= transfer.amount
    return remaining


def _index_members(members: Sequence[Member]) -> dict[MemberId, Member]:
    roster: dict[MemberId, Member] = {}
    for member in members:
        if member.id in roster:
            raise IntegrityError(f"Member {member.id!r} appears more than once in the group")
        roster[member.id] = member
    return roster


def _match_transfers(
    balances: Sequence[MemberBalance],
    roster: Mapping[MemberId, Member],
    residue: Decimal,
) -> list[TransferSuggestion]:
    # Stable sorts: equal balances keep roster order.
    debtors = sorted(
        ([b.id, b.balance] for b in balances if b.balance < -EPSILON),
        key=lambda d: d[1],
    )
    creditors = sorted(
        ([b.id, b.balance] for b in balances if b.balance > EPSILON),
        key=lambda c: c[1],
        reverse=True,
    )
    settled = sum((b.balance for b in balances if b.is_settled(EPSILON)), ZERO)
    logger.debug("Debtors: %s", debtors)
    logger.debug("Creditors: %s", creditors)

    transfers: list[TransferSuggestion] = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]
        amount = min(abs(debtor[1]), creditor[1])

        if amount > EPSILON:
            transfers.append(TransferSuggestion(
                from_member=debtor[0],
                to_member=creditor[0],
                from_name=roster[debtor[0]].name,
                to_name=roster[creditor[0]].name,
                amount=round2(amount),
            ))
            debtor[1] += amount
            creditor[1] -= amount

        if abs(debtor[1]) <= EPSILON:
            i += 1
        if abs(creditor[1]) <= EPSILON:
            j += 1

    leftover = sum((d[1] for d in debtors[i:]), ZERO) + sum((c[1] for c in creditors[j:]), ZERO)
    # A closed ledger leaves only the split rounding residue and the
    # balances already within a cent of zero.
    if abs(leftover) - abs(residue) - abs(settled) > EPSILON:
        raise ArithmeticNotReconciled(
            f"Unmatched balance of {leftover} remains after settlement matching"
        )
    return transfers
