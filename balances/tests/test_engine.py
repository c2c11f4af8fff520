"""
Unit Tests for the Balance Engine

Tests cover:
1. Ledger building from expense splits
2. Settlement application, including overpayment
3. Netting into one direction per pair
4. Projection into per-member balances
5. Conservation and order independence
"""

import pytest
from decimal import Decimal

from balances.engine import (
    PairwiseLedger,
    build_ledger,
    apply_settlements,
    net_ledger,
    project_balances,
    compute_group_balances,
)
from balances.models import Member, Split, Expense, Settlement
from balances.money import MAX_MINOR_UNITS, AmountOverflowError


MEMBERS = [
    Member(id="A", name="Alice"),
    Member(id="B", name="Bob"),
    Member(id="C", name="Charlie"),
]
MEMBER_IDS = [m.id for m in MEMBERS]


def equal_split_dinner() -> Expense:
    return Expense(
        id="dinner",
        amount=Decimal("30.00"),
        payer_id="A",
        splits=[
            Split(member_id="A", amount=Decimal("10.00")),
            Split(member_id="B", amount=Decimal("10.00")),
            Split(member_id="C", amount=Decimal("10.00")),
        ],
    )


def balances_by_id(report) -> dict:
    return {b.id: b for b in report.balances}


class TestPairwiseLedger:
    """Tests for the ledger matrix itself."""

    def test_member_ids_are_sorted_and_unique(self):
        ledger = PairwiseLedger(["C", "A", "B", "A"])
        assert ledger.member_ids == ["A", "B", "C"]
        assert len(ledger) == 3

    def test_pairs_visits_each_unordered_pair_once(self):
        ledger = PairwiseLedger(["D", "B", "A", "C"])
        pairs = list(ledger.pairs())

        assert len(pairs) == 6
        assert all(a < b for a, b in pairs)
        assert len({frozenset(p) for p in pairs}) == 6

    def test_self_debt_rejected(self):
        ledger = PairwiseLedger(MEMBER_IDS)
        with pytest.raises(ValueError):
            ledger.add("A", "A", 100)

    def test_overflow_fails_loudly(self):
        ledger = PairwiseLedger(MEMBER_IDS)
        ledger.set("A", "B", MAX_MINOR_UNITS)
        with pytest.raises(AmountOverflowError):
            ledger.add("A", "B", 1)


class TestLedgerBuilder:
    """Tests for folding expense splits into the ledger."""

    def test_equal_split_without_settlement(self):
        """Scenario: A pays 30, split equally between A, B and C."""
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)

        assert ledger.get("B", "A") == 1000
        assert ledger.get("C", "A") == 1000
        for debtor, creditor in [("A", "B"), ("A", "C"), ("B", "C"), ("C", "B")]:
            assert ledger.get(debtor, creditor) == 0

        assert totals == {"A": 2000, "B": -1000, "C": -1000}

    def test_payer_split_contributes_nothing(self):
        expense = Expense(
            amount=Decimal("25.00"), payer_id="A",
            splits=[Split(member_id="A", amount=Decimal("25.00"))],
        )
        ledger, totals = build_ledger([expense], MEMBER_IDS)

        assert all(amount == 0 for amount in totals.values())
        assert ledger.owes("A") == [] and ledger.owed_by("A") == []

    def test_settled_split_ignored(self):
        """Scenario: a split already marked settled adds nothing."""
        expense = Expense(
            amount=Decimal("20.00"), payer_id="A",
            splits=[
                Split(member_id="B", amount=Decimal("10.00"), settled=True),
                Split(member_id="C", amount=Decimal("10.00")),
            ],
        )
        ledger, totals = build_ledger([expense], MEMBER_IDS)

        assert ledger.get("B", "A") == 0
        assert totals["B"] == 0
        assert totals == {"A": 1000, "B": 0, "C": -1000}

    def test_split_for_unknown_member_dropped(self):
        """Splits naming a deleted user are dropped, not fatal."""
        expense = Expense(
            amount=Decimal("30.00"), payer_id="A",
            splits=[
                Split(member_id="B", amount=Decimal("10.00")),
                Split(member_id="ghost", amount=Decimal("10.00")),
            ],
        )
        ledger, totals = build_ledger([expense], MEMBER_IDS)

        assert "ghost" not in ledger
        assert totals == {"A": 1000, "B": -1000, "C": 0}

    def test_expense_paid_by_unknown_member_dropped(self):
        expense = Expense(
            amount=Decimal("10.00"), payer_id="ghost",
            splits=[Split(member_id="B", amount=Decimal("10.00"))],
        )
        ledger, totals = build_ledger([expense], MEMBER_IDS)

        assert all(amount == 0 for amount in totals.values())

    def test_sub_minor_unit_amounts_rounded_half_up(self):
        expense = Expense(
            amount=Decimal("10.01"), payer_id="A",
            splits=[Split(member_id="B", amount=Decimal("3.335"))],
        )
        ledger, totals = build_ledger([expense], MEMBER_IDS)

        assert ledger.get("B", "A") == 334
        assert sum(totals.values()) == 0


class TestSettlementApplier:
    """Tests for folding repayments into the ledger."""

    def test_full_repayment(self):
        """Scenario: B repays A the 10 owed for dinner."""
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        ledger, totals = apply_settlements(
            ledger, totals, [Settlement(payer_id="B", receiver_id="A", amount=Decimal("10.00"))]
        )

        assert ledger.get("B", "A") == 0
        assert totals == {"A": 1000, "B": 0, "C": -1000}

    def test_overpayment_goes_negative_before_netting(self):
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        ledger, totals = apply_settlements(
            ledger, totals, [Settlement(payer_id="B", receiver_id="A", amount=Decimal("15.00"))]
        )

        assert ledger.get("B", "A") == -500
        assert not ledger.is_canonical()

    def test_input_ledger_not_mutated(self):
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        before = ledger.copy()

        apply_settlements(ledger, totals, [Settlement(payer_id="B", receiver_id="A", amount=Decimal("4.00"))])

        assert ledger == before
        assert totals["B"] == -1000

    def test_self_and_unknown_settlements_dropped(self):
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        new_ledger, new_totals = apply_settlements(ledger, totals, [
            Settlement(payer_id="B", receiver_id="B", amount=Decimal("5.00")),
            Settlement(payer_id="ghost", receiver_id="A", amount=Decimal("5.00")),
        ])

        assert new_ledger == ledger
        assert new_totals == totals


class TestNettingEngine:
    """Tests for collapsing each pair to a single direction."""

    def test_overpayment_reverses_direction(self):
        """Scenario: B pays A 15 against a debt of 10, so A now owes B 5."""
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        ledger, totals = apply_settlements(
            ledger, totals, [Settlement(payer_id="B", receiver_id="A", amount=Decimal("15.00"))]
        )
        netted = net_ledger(ledger)

        assert netted.get("A", "B") == 500
        assert netted.get("B", "A") == 0
        assert totals == {"A": 500, "B": 500, "C": -1000}

    def test_opposing_debts_cancel(self):
        expenses = [
            equal_split_dinner(),
            Expense(
                amount=Decimal("4.00"), payer_id="B",
                splits=[Split(member_id="A", amount=Decimal("4.00"))],
            ),
        ]
        ledger, _ = build_ledger(expenses, MEMBER_IDS)
        assert ledger.get("A", "B") == 400 and ledger.get("B", "A") == 1000

        netted = net_ledger(ledger)
        assert netted.get("B", "A") == 600
        assert netted.get("A", "B") == 0

    def test_equal_debts_become_zero(self):
        expenses = [
            Expense(amount=Decimal("5.00"), payer_id="A", splits=[Split(member_id="C", amount=Decimal("5.00"))]),
            Expense(amount=Decimal("5.00"), payer_id="C", splits=[Split(member_id="A", amount=Decimal("5.00"))]),
        ]
        ledger, totals = build_ledger(expenses, MEMBER_IDS)
        netted = net_ledger(ledger)

        assert netted.get("A", "C") == 0 and netted.get("C", "A") == 0
        assert all(amount == 0 for amount in totals.values())

    def test_result_is_canonical(self):
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        ledger, _ = apply_settlements(ledger, totals, [
            Settlement(payer_id="C", receiver_id="B", amount=Decimal("7.00")),
            Settlement(payer_id="B", receiver_id="A", amount=Decimal("25.00")),
        ])
        netted = net_ledger(ledger)

        assert netted.is_canonical()
        for a, b in netted.pairs():
            assert not (netted.get(a, b) > 0 and netted.get(b, a) > 0)

    def test_netting_is_idempotent(self):
        ledger, totals = build_ledger([equal_split_dinner()], MEMBER_IDS)
        ledger, _ = apply_settlements(
            ledger, totals, [Settlement(payer_id="B", receiver_id="A", amount=Decimal("15.00"))]
        )
        once = net_ledger(ledger)
        twice = net_ledger(once)

        assert once == twice


class TestBalanceProjector:
    """Tests for the per-member balance report."""

    def test_owes_and_owed_by_views(self):
        report = compute_group_balances(MEMBERS, [equal_split_dinner()], [])
        balances = balances_by_id(report)

        assert balances["A"].total_balance == Decimal("20.00")
        assert balances["B"].total_balance == Decimal("-10.00")
        assert balances["C"].total_balance == Decimal("-10.00")

        assert [(e.to, e.amount) for e in balances["B"].owes] == [("A", Decimal("10.00"))]
        assert [(e.from_, e.amount) for e in balances["A"].owed_by] == [
            ("B", Decimal("10.00")), ("C", Decimal("10.00")),
        ]
        assert balances["A"].owes == []

    def test_lookup_map_and_member_order(self):
        roster = [MEMBERS[2], MEMBERS[0], MEMBERS[1]]
        report = compute_group_balances(roster, [], [])

        assert [b.id for b in report.balances] == ["C", "A", "B"]
        assert report.members == roster
        assert report.user_lookup_map["B"].name == "Bob"

    def test_member_never_owes_themselves(self):
        report = compute_group_balances(MEMBERS, [equal_split_dinner()], [
            Settlement(payer_id="C", receiver_id="A", amount=Decimal("3.00")),
        ])
        for balance in report.balances:
            assert all(e.to != balance.id for e in balance.owes)
            assert all(e.from_ != balance.id for e in balance.owed_by)

    def test_projection_of_canonical_ledger(self):
        ledger = PairwiseLedger(MEMBER_IDS)
        ledger.set("C", "B", 250)
        report = project_balances(ledger, {"A": 0, "B": 250, "C": -250}, MEMBERS)
        balances = balances_by_id(report)

        assert balances["C"].owes[0].to == "B"
        assert balances["C"].owes[0].amount == Decimal("2.50")
        assert balances["B"].owed_by[0].from_ == "C"

    def test_repeated_roster_entry_projected_once(self):
        """A member listed twice gets one balance row and totals still sum to zero."""
        roster = [MEMBERS[0], Member(id="A", name="Alice again"), MEMBERS[1]]
        expense = Expense(
            amount=Decimal("10.00"), payer_id="A",
            splits=[Split(member_id="B", amount=Decimal("10.00"))],
        )
        report = compute_group_balances(roster, [expense], [])

        assert [b.id for b in report.balances] == ["A", "B"]
        assert sum(b.total_balance for b in report.balances) == 0
        assert report.user_lookup_map["A"].name == "Alice"
        assert [m.name for m in report.members] == ["Alice", "Bob"]


class TestConservation:
    """Net totals always sum to zero, whatever the input order."""

    def _records(self):
        expenses = [
            equal_split_dinner(),
            Expense(
                id="cab", amount=Decimal("13.33"), payer_id="C",
                splits=[
                    Split(member_id="A", amount=Decimal("4.44")),
                    Split(member_id="B", amount=Decimal("4.44")),
                    Split(member_id="C", amount=Decimal("4.45")),
                ],
            ),
            Expense(
                id="snacks", amount=Decimal("0.10"), payer_id="B",
                splits=[Split(member_id="A", amount=Decimal("0.05")), Split(member_id="C", amount=Decimal("0.05"))],
            ),
        ]
        settlements = [
            Settlement(payer_id="B", receiver_id="A", amount=Decimal("12.34")),
            Settlement(payer_id="A", receiver_id="C", amount=Decimal("1.00")),
        ]
        return expenses, settlements

    def test_totals_sum_to_zero_at_every_stage(self):
        expenses, settlements = self._records()

        ledger, totals = build_ledger(expenses, MEMBER_IDS)
        assert sum(totals.values()) == 0

        ledger, totals = apply_settlements(ledger, totals, settlements)
        assert sum(totals.values()) == 0

        report = project_balances(net_ledger(ledger), totals, MEMBERS)
        assert sum(b.total_balance for b in report.balances) == 0

    def test_many_small_amounts_stay_exact(self):
        expenses = [
            Expense(
                amount=Decimal("0.03"), payer_id="A",
                splits=[Split(member_id=m, amount=Decimal("0.01")) for m in MEMBER_IDS],
            )
            for _ in range(1000)
        ]
        report = compute_group_balances(MEMBERS, expenses, [])
        balances = balances_by_id(report)

        assert balances["A"].total_balance == Decimal("20.00")
        assert sum(b.total_balance for b in report.balances) == 0

    def test_input_order_does_not_matter(self):
        expenses, settlements = self._records()

        forward = compute_group_balances(MEMBERS, expenses, settlements)
        backward = compute_group_balances(MEMBERS, list(reversed(expenses)), list(reversed(settlements)))

        assert forward == backward

    def test_net_total_overflow_propagates(self):
        """Two debts each at the range limit overflow the payer's net total."""
        near_limit = Decimal(MAX_MINOR_UNITS).scaleb(-2)
        expense = Expense(
            amount=near_limit * 2, payer_id="A",
            splits=[Split(member_id="B", amount=near_limit), Split(member_id="C", amount=near_limit)],
        )

        with pytest.raises(AmountOverflowError):
            compute_group_balances(MEMBERS, [expense], [])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
