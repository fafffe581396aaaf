"""Reimbursements linked to expenses.

A linked reimbursement reduces the effective cost of its source expense and
can never exceed what is left on it. An unlinked reimbursement is not
constrained and counts as income.
"""

import logging
from collections.abc import Collection, Iterable, Mapping, Sequence
from decimal import Decimal

from .allocator import quantize_money
from .exceptions import ExceedsRemainingError
from .models import ZERO, MemberSplit, PeriodTotals, Transaction

logger = logging.getLogger(__name__)


def existing_reimbursements(
    expense_id: str,
    transactions: Iterable[Transaction],
    exclude_transaction_id: str | None = None,
) -> Decimal:
    """
    Sum the reimbursements already recorded against an expense.

    Args:
        expense_id: The expense being reimbursed
        transactions: Transactions to search (other types are ignored)
        exclude_transaction_id: A reimbursement to leave out, used when
            re-validating a reimbursement that is being edited

    Returns:
        Total reimbursed so far
    """
    return sum(
        (
            t.amount
            for t in transactions
            if t.transaction_type == "reimbursement"
            and t.linked_expense_id == expense_id
            and t.id != exclude_transaction_id
        ),
        ZERO,
    )


def remaining_reimbursable(
    expense: Transaction,
    transactions: Iterable[Transaction],
    exclude_transaction_id: str | None = None,
) -> Decimal:
    """Get how much of an expense can still be reimbursed (never negative)."""
    existing = existing_reimbursements(
        expense.id, transactions, exclude_transaction_id
    )
    return max(expense.amount - existing, ZERO)


def validate_reimbursement(amount: Decimal, remaining: Decimal) -> None:
    """
    Check a reimbursement amount against what remains on its expense.

    Raises:
        ExceedsRemainingError: If amount > remaining
    """
    if amount > remaining:
        raise ExceedsRemainingError(amount=amount, remaining=remaining)


def effective_expense_amount(
    expense: Transaction, transactions: Iterable[Transaction]
) -> Decimal:
    """The expense amount after linked reimbursements, floored at zero."""
    return remaining_reimbursable(expense, transactions)


def member_portion(
    expense: Transaction,
    rows: Sequence[MemberSplit],
    member_ids: Collection[str],
    reimbursed: Decimal = ZERO,
) -> Decimal:
    """
    Get the chosen members' share of an expense after its reimbursements.

    The share is what those members owe, scaled by how much of the expense
    is left once reimbursements are taken off. An expense with no rows
    counts in full; one the members owe nothing on counts as zero.
    """
    effective = max(expense.amount - reimbursed, ZERO)
    if not rows:
        return effective

    total_owed = sum((r.owed_amount for r in rows if r.owed_amount > 0), ZERO)
    selected_owed = sum(
        (
            r.owed_amount
            for r in rows
            if r.member_id in member_ids and r.owed_amount > 0
        ),
        ZERO,
    )
    if selected_owed <= 0:
        return ZERO
    if selected_owed >= total_owed:
        return effective

    return quantize_money(selected_owed * effective / expense.amount)


def calculate_period_totals(
    transactions: Iterable[Transaction],
    splits: Mapping[str, Sequence[MemberSplit]] | None = None,
    member_ids: Collection[str] | None = None,
) -> PeriodTotals:
    """
    Total up effective spending and income.

    - expense: counted net of its linked reimbursements (never below zero)
    - income: counted in full
    - reimbursement: unlinked ones count as income, linked ones are already
      taken off their expense
    - settlement: moves money between members, not counted

    With `member_ids`, only those members' portion of each expense is
    counted (see `member_portion`, which needs `splits`) and only income
    they received.
    """
    transactions = list(transactions)
    splits = splits or {}

    reimbursed_by_expense: dict[str, Decimal] = {}
    for t in transactions:
        if t.transaction_type == "reimbursement" and t.linked_expense_id:
            reimbursed_by_expense[t.linked_expense_id] = (
                reimbursed_by_expense.get(t.linked_expense_id, ZERO) + t.amount
            )

    expenses = ZERO
    income = ZERO
    for t in transactions:
        if t.transaction_type == "expense":
            reimbursed = reimbursed_by_expense.get(t.id, ZERO)
            if member_ids is None:
                expenses += max(t.amount - reimbursed, ZERO)
            else:
                expenses += member_portion(
                    t, splits.get(t.id, []), member_ids, reimbursed
                )
        elif member_ids is not None and t.payer_id not in member_ids:
            continue
        elif t.transaction_type == "income":
            income += t.amount
        elif t.transaction_type == "reimbursement" and not t.is_linked_reimbursement:
            income += t.amount

    logger.debug(f"Period totals: expenses={expenses}, income={income}")
    return PeriodTotals(
        expenses=expenses,
        income=income,
        member_ids=sorted(member_ids) if member_ids is not None else None,
    )
