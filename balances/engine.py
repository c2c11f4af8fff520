"""
Debt-netting and balance computation for one group.

The pipeline runs leaves first and is rebuilt on every call:

1. build_ledger       - expense splits become directed pairwise debts
2. apply_settlements  - repayments reduce the debt in the paid direction
3. net_ledger         - each pair collapses to one positive direction (or zero)
4. project_balances   - per-member totals, owes / owed-by lists, lookup map

All amounts inside the pipeline are integer minor units.
"""

import logging
from decimal import Decimal
from typing import Iterable, Iterator, Optional

from .models import (
    BalanceReport,
    Expense,
    Member,
    MemberBalance,
    OwedByEntry,
    OwesEntry,
    Settlement,
)
from .money import check_range, from_minor_units, to_minor_units

logger = logging.getLogger(__name__)

NetTotals = dict[str, int]


class PairwiseLedger:
    """Square matrix of debtor -> creditor amounts over the sorted member ids."""

    def __init__(self, member_ids: Iterable[str]):
        self.member_ids: list[str] = sorted(set(member_ids))
        self._index = {member_id: i for i, member_id in enumerate(self.member_ids)}
        size = len(self.member_ids)
        self._amounts = [[0] * size for _ in range(size)]

    def __contains__(self, member_id: str) -> bool:
        return member_id in self._index

    def __len__(self) -> int:
        return len(self.member_ids)

    def get(self, debtor: str, creditor: str) -> int:
        return self._amounts[self._index[debtor]][self._index[creditor]]

    def set(self, debtor: str, creditor: str, amount: int) -> None:
        if debtor == creditor:
            raise ValueError(f"Member {debtor} cannot owe themselves")
        self._amounts[self._index[debtor]][self._index[creditor]] = check_range(amount)

    def add(self, debtor: str, creditor: str, amount: int) -> None:
        self.set(debtor, creditor, self.get(debtor, creditor) + amount)

    def pairs(self) -> Iterator[tuple[str, str]]:
        """Every unordered pair exactly once, as (a, b) with a < b."""
        for i, a in enumerate(self.member_ids):
            for b in self.member_ids[i + 1:]:
                yield a, b

    def owes(self, member_id: str) -> list[tuple[str, int]]:
        row = self._amounts[self._index[member_id]]
        return [(creditor, row[j]) for j, creditor in enumerate(self.member_ids) if row[j] > 0]

    def owed_by(self, member_id: str) -> list[tuple[str, int]]:
        col = self._index[member_id]
        return [
            (debtor, self._amounts[i][col])
            for i, debtor in enumerate(self.member_ids)
            if self._amounts[i][col] > 0
        ]

    def is_canonical(self) -> bool:
        for a, b in self.pairs():
            forward, backward = self.get(a, b), self.get(b, a)
            if forward < 0 or backward < 0 or (forward and backward):
                return False
        return True

    def copy(self) -> "PairwiseLedger":
        clone = PairwiseLedger(self.member_ids)
        clone._amounts = [row[:] for row in self._amounts]
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PairwiseLedger):
            return NotImplemented
        return self.member_ids == other.member_ids and self._amounts == other._amounts


def _credit(totals: NetTotals, member_id: str, amount: int) -> None:
    totals[member_id] = check_range(totals[member_id] + amount)


def build_ledger(
    expenses: Iterable[Expense], member_ids: Iterable[str], digits: Optional[int] = None
) -> tuple[PairwiseLedger, NetTotals]:
    ledger = PairwiseLedger(member_ids)
    totals: NetTotals = {member_id: 0 for member_id in ledger.member_ids}

    for expense in expenses:
        payer = expense.payer_id
        for split in expense.splits:
            if split.member_id == payer or split.settled:
                continue
            if payer not in ledger or split.member_id not in ledger:
                logger.debug(
                    "Dropping split of expense %s: %s -> %s is not between group members",
                    expense.id, split.member_id, payer,
                )
                continue

            amount = to_minor_units(split.amount, digits)
            ledger.add(split.member_id, payer, amount)
            _credit(totals, payer, amount)
            _credit(totals, split.member_id, -amount)

    return ledger, totals


def apply_settlements(
    ledger: PairwiseLedger,
    totals: NetTotals,
    settlements: Iterable[Settlement],
    digits: Optional[int] = None,
) -> tuple[PairwiseLedger, NetTotals]:
    # Overpayment is not clamped: the entry goes negative and net_ledger
    # turns it into debt in the reverse direction.
    ledger = ledger.copy()
    totals = dict(totals)

    for settlement in settlements:
        payer, receiver = settlement.payer_id, settlement.receiver_id
        if payer == receiver or payer not in ledger or receiver not in ledger:
            logger.debug("Dropping settlement %s: %s -> %s", settlement.id, payer, receiver)
            continue

        amount = to_minor_units(settlement.amount, digits)
        ledger.add(payer, receiver, -amount)
        _credit(totals, payer, amount)
        _credit(totals, receiver, -amount)

    return ledger, totals


def net_ledger(ledger: PairwiseLedger) -> PairwiseLedger:
    netted = ledger.copy()
    for a, b in netted.pairs():
        diff = netted.get(a, b) - netted.get(b, a)
        if diff > 0:
            netted.set(a, b, diff)
            netted.set(b, a, 0)
        elif diff < 0:
            netted.set(b, a, -diff)
            netted.set(a, b, 0)
        else:
            netted.set(a, b, 0)
            netted.set(b, a, 0)
    return netted


def project_balances(
    ledger: PairwiseLedger,
    totals: NetTotals,
    members: Iterable[Member],
    digits: Optional[int] = None,
) -> BalanceReport:
    # One row per member id; the first roster entry for an id wins.
    lookup: dict[str, Member] = {}
    for member in members:
        if member.id in lookup:
            logger.debug("Ignoring repeated roster entry for member %s", member.id)
            continue
        lookup[member.id] = member
    members = list(lookup.values())

    def money(value: int) -> Decimal:
        return from_minor_units(value, digits)

    balances = []
    for member in members:
        owes, owed_by = [], []
        if member.id in ledger:
            owes = [OwesEntry(to=to, amount=money(amount)) for to, amount in ledger.owes(member.id)]
            owed_by = [
                OwedByEntry(from_=debtor, amount=money(amount))
                for debtor, amount in ledger.owed_by(member.id)
            ]
        balances.append(MemberBalance(
            id=member.id,
            total_balance=money(totals.get(member.id, 0)),
            owes=owes,
            owed_by=owed_by,
        ))

    return BalanceReport(members=members, balances=balances, user_lookup_map=lookup)


def compute_group_balances(
    members: Iterable[Member],
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
    digits: Optional[int] = None,
) -> BalanceReport:
    members = list(members)
    ledger, totals = build_ledger(expenses, [m.id for m in members], digits)
    ledger, totals = apply_settlements(ledger, totals, settlements, digits)
    ledger = net_ledger(ledger)
    return project_balances(ledger, totals, members, digits)
