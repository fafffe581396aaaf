"""Tests for reimbursement caps and period totals."""

from datetime import date
from decimal import Decimal

import pytest

from household_split.exceptions import ExceedsRemainingError
from household_split.models import MemberSplit, Transaction
from household_split.reimbursements import (
    calculate_period_totals,
    effective_expense_amount,
    existing_reimbursements,
    member_portion,
    remaining_reimbursable,
    validate_reimbursement,
)


def make_transaction(
    id: str,
    transaction_type: str,
    amount: str,
    linked_expense_id: str | None = None,
) -> Transaction:
    """Create a transaction for testing."""
    return Transaction(
        id=id,
        transaction_type=transaction_type,
        amount=Decimal(amount),
        date=date(2025, 3, 1),
        payer_id="alice",
        linked_expense_id=linked_expense_id,
    )


@pytest.fixture
def expense():
    """A $200 expense."""
    return make_transaction("exp-1", "expense", "200.00")


class TestRemainingReimbursable:
    """Test how much of an expense can still be reimbursed."""

    def test_nothing_reimbursed_yet(self, expense):
        """The full amount remains when nothing has been reimbursed."""
        assert remaining_reimbursable(expense, [expense]) == Decimal("200.00")

    def test_reimbursements_cap_a_new_request(self, expense):
        """$50 already back from $200 leaves $150; $160 is too much."""
        history = [
            expense,
            make_transaction("r-1", "reimbursement", "50.00", "exp-1"),
        ]

        remaining = remaining_reimbursable(expense, history)
        assert remaining == Decimal("150.00")

        with pytest.raises(ExceedsRemainingError) as exc_info:
            validate_reimbursement(Decimal("160.00"), remaining)
        assert exc_info.value.remaining == Decimal("150.00")

        validate_reimbursement(Decimal("150.00"), remaining)
        history.append(make_transaction("r-2", "reimbursement", "150.00", "exp-1"))
        assert remaining_reimbursable(expense, history) == Decimal("0.00")

    def test_other_expenses_and_types_are_ignored(self, expense):
        """Only reimbursements linked to this expense count."""
        history = [
            expense,
            make_transaction("r-1", "reimbursement", "20.00", "exp-2"),
            make_transaction("r-2", "reimbursement", "30.00"),
            make_transaction("i-1", "income", "40.00"),
        ]
        assert existing_reimbursements("exp-1", history) == 0
        assert remaining_reimbursable(expense, history) == Decimal("200.00")

    def test_editing_excludes_its_own_amount(self, expense):
        """A reimbursement being edited doesn't count against itself."""
        history = [
            expense,
            make_transaction("r-1", "reimbursement", "50.00", "exp-1"),
            make_transaction("r-2", "reimbursement", "120.00", "exp-1"),
        ]

        assert remaining_reimbursable(expense, history) == Decimal("30.00")
        assert remaining_reimbursable(
            expense, history, exclude_transaction_id="r-2"
        ) == Decimal("150.00")

    def test_never_negative(self, expense):
        """Over-reimbursed history gives zero, not a negative amount."""
        history = [
            expense,
            make_transaction("r-1", "reimbursement", "150.00", "exp-1"),
            make_transaction("r-2", "reimbursement", "100.00", "exp-1"),
        ]
        assert remaining_reimbursable(expense, history) == 0

    def test_remaining_only_goes_down(self, expense):
        """Each accepted reimbursement lowers what remains."""
        history = [expense]
        previous = remaining_reimbursable(expense, history)
        for i, amount in enumerate(["10.00", "0.01", "89.99", "100.00"]):
            validate_reimbursement(Decimal(amount), previous)
            history.append(
                make_transaction(f"r-{i}", "reimbursement", amount, "exp-1")
            )
            current = remaining_reimbursable(expense, history)
            assert current < previous
            previous = current
        assert previous == 0

    def test_effective_expense_amount(self, expense):
        """The effective amount is the expense net of reimbursements."""
        history = [
            expense,
            make_transaction("r-1", "reimbursement", "75.00", "exp-1"),
        ]
        assert effective_expense_amount(expense, history) == Decimal("125.00")


class TestPeriodTotals:
    """Test period spending and income totals."""

    def test_totals(self):
        """Expenses are net of reimbursements; unlinked ones count as income."""
        totals = calculate_period_totals(
            [
                make_transaction("e-1", "expense", "200.00"),
                make_transaction("e-2", "expense", "50.00"),
                make_transaction("r-1", "reimbursement", "80.00", "e-1"),
                make_transaction("r-2", "reimbursement", "15.00"),
                make_transaction("i-1", "income", "1000.00"),
                make_transaction("s-1", "settlement", "40.00"),
            ]
        )

        assert totals.expenses == Decimal("170.00")
        assert totals.income == Decimal("1015.00")

    def test_over_reimbursed_expense_counts_as_zero(self):
        """An expense never goes below zero."""
        totals = calculate_period_totals(
            [
                make_transaction("e-1", "expense", "20.00"),
                make_transaction("r-1", "reimbursement", "25.00", "e-1"),
            ]
        )
        assert totals.expenses == 0
        assert totals.income == 0

    def test_empty(self):
        """No transactions give zero totals."""
        totals = calculate_period_totals([])
        assert totals.expenses == 0
        assert totals.income == 0


class TestMemberPortion:
    """Test a member's share of spending after reimbursements."""

    @pytest.fixture
    def rows(self):
        """$90 owed equally by Alice, Bob and Carol."""
        return [
            MemberSplit(member_id=m, owed_amount=Decimal("30.00"))
            for m in ("alice", "bob", "carol")
        ]

    def test_portion_scales_with_reimbursement(self, rows):
        """The share shrinks by the fraction of the expense reimbursed."""
        expense = make_transaction("e-1", "expense", "90.00")
        portion = member_portion(expense, rows, {"bob"}, Decimal("30.00"))
        assert portion == Decimal("20.00")

    def test_everyone_selected_gives_effective_amount(self, rows):
        """Selecting every member counts the whole effective amount."""
        expense = make_transaction("e-1", "expense", "90.00")
        portion = member_portion(
            expense, rows, {"alice", "bob", "carol"}, Decimal("10.00")
        )
        assert portion == Decimal("80.00")

    def test_member_who_owes_nothing(self, rows):
        """A member outside the split has no portion."""
        expense = make_transaction("e-1", "expense", "90.00")
        assert member_portion(expense, rows, {"dave"}) == 0

    def test_expense_without_rows_counts_in_full(self):
        """With nothing to go on the whole expense counts."""
        expense = make_transaction("e-1", "expense", "45.00")
        assert member_portion(expense, [], {"bob"}) == Decimal("45.00")

    def test_period_totals_for_members(self, rows):
        """Filtered totals count the member's portions and their own income."""
        transactions = [
            make_transaction("e-1", "expense", "90.00"),
            make_transaction("r-1", "reimbursement", "30.00", "e-1"),
            make_transaction("i-1", "income", "1000.00"),
        ]
        splits = {"e-1": rows}

        totals = calculate_period_totals(transactions, splits, ["bob"])
        assert totals.expenses == Decimal("20.00")
        assert totals.income == 0
        assert totals.member_ids == ["bob"]

        totals = calculate_period_totals(transactions, splits, ["alice"])
        assert totals.income == Decimal("1000.00")
