"""Fold a transaction + split history into per-member net balances.

This is a client-side projection of what the backend computes. It assumes
the splits were validated upstream and never raises on inconsistent data;
problems are logged and skipped so a best-effort result is always returned.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from .allocator import allocate_proportional
from .models import (
    ZERO,
    BalanceDiscrepancy,
    BalanceHealthCheck,
    Member,
    MemberBalance,
    MemberSplit,
    ProblematicTransaction,
    ReimbursementPolicy,
    Transaction,
)
from .splits import SPLIT_TOLERANCE, split_total

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")


class _Totals:
    """Running paid/owed totals keyed by member id."""

    def __init__(self):
        self.paid: dict[str, Decimal] = {}
        self.owed: dict[str, Decimal] = {}

    def add_paid(self, member_id: str, amount: Decimal):
        self.paid[member_id] = self.paid.get(member_id, ZERO) + amount

    def add_owed(self, member_id: str, amount: Decimal):
        self.owed[member_id] = self.owed.get(member_id, ZERO) + amount

    def member_ids(self) -> set[str]:
        return set(self.paid) | set(self.owed)


def _apply_proportional_reimbursement(
    totals: _Totals,
    reimbursement: Transaction,
    receiver_id: str,
    expense_rows: Sequence[MemberSplit],
):
    """
    Apply a linked reimbursement the way the expense itself shrinks.

    1. Everyone's owed share of the expense goes down in proportion to what
       they owed (in exact cents).
    2. If the receiver paid toward the expense, their paid amount goes down
       by up to what they paid.
    3. Whatever the receiver got beyond what they paid is money that belongs
       to the other payers, so it is added to the receiver's owed.

    Example: A pays $100 for A and B (50/50) and B receives a $100
    reimbursement. Owed drops to $0 for both, B paid nothing, so B's owed
    goes up by $100: A is +$100 and B is -$100.
    """
    amount = reimbursement.amount
    reductions = allocate_proportional(
        amount, [row.owed_amount for row in expense_rows]
    )
    for row, reduction in zip(expense_rows, reductions):
        totals.add_owed(row.member_id, -reduction)

    receiver_paid = next(
        (row.paid_amount for row in expense_rows if row.member_id == receiver_id),
        ZERO,
    )
    paid_reduction = min(amount, receiver_paid)
    if paid_reduction > 0:
        totals.add_paid(receiver_id, -paid_reduction)

    excess = amount - paid_reduction
    if excess > 0:
        totals.add_owed(receiver_id, excess)


def aggregate_balances(
    transactions: Iterable[Transaction],
    splits: Mapping[str, Sequence[MemberSplit]],
    members: Iterable[Member] | None = None,
    policy: ReimbursementPolicy = "simple",
) -> list[MemberBalance]:
    """
    Compute every member's net balance.

    Per transaction type:
    - expense: balance += paid - owed, for each split row
    - income: no effect (money from outside the household)
    - settlement: the payer's balance goes up, the payee's goes down
    - reimbursement: with the "simple" policy the receiver's balance goes
      down by the amount; with "proportional" the source expense is shrunk
      (see _apply_proportional_reimbursement). Unlinked reimbursements count
      as income and have no effect.

    Args:
        transactions: The transaction history
        splits: Split rows keyed by transaction id
        members: Optional roster; members without activity get zero rows and
            display names are filled in
        policy: How linked reimbursements affect balances

    Returns:
        One MemberBalance per member, sorted by display name
    """
    totals = _Totals()

    for t in transactions:
        if t.transaction_type == "expense":
            rows = splits.get(t.id)
            if not rows:
                logger.warning(f"Expense {t.id} has no split rows, skipping")
                continue
            for row in rows:
                totals.add_paid(row.member_id, row.paid_amount)
                totals.add_owed(row.member_id, row.owed_amount)

        elif t.transaction_type == "settlement":
            if t.payer_id is None or t.payee_id is None:
                logger.warning(f"Settlement {t.id} is missing a payer or payee")
                continue
            totals.add_paid(t.payer_id, t.amount)
            totals.add_owed(t.payee_id, t.amount)

        elif t.transaction_type == "reimbursement":
            if not t.linked_expense_id:
                continue
            if t.payer_id is None:
                logger.warning(f"Reimbursement {t.id} has no receiver, skipping")
                continue

            expense_rows = splits.get(t.linked_expense_id)
            if policy == "proportional" and expense_rows:
                _apply_proportional_reimbursement(totals, t, t.payer_id, expense_rows)
            else:
                if policy == "proportional":
                    logger.warning(
                        f"No splits for expense {t.linked_expense_id}, applying "
                        f"reimbursement {t.id} to the receiver only"
                    )
                totals.add_paid(t.payer_id, -t.amount)

    roster = {m.id: m for m in members or []}
    member_ids = set(roster) | totals.member_ids()

    balances = []
    for member_id in member_ids:
        paid = totals.paid.get(member_id, ZERO)
        owed = totals.owed.get(member_id, ZERO)
        member = roster.get(member_id)
        balances.append(
            MemberBalance(
                member_id=member_id,
                display_name=member.display_name if member else "",
                total_paid=paid,
                total_owed=owed,
                net_balance=paid - owed,
            )
        )

    balances.sort(key=lambda b: (b.display_name, b.member_id))
    return balances


def check_balance_health(
    balances: Iterable[MemberBalance], tolerance: Decimal = BALANCE_TOLERANCE
) -> BalanceHealthCheck:
    """
    Check that balances sum to zero.

    A non-zero sum means some transaction was saved with splits that don't
    add up, and needs investigating.
    """
    total = sum((b.net_balance for b in balances), ZERO)
    if abs(total) < tolerance:
        return BalanceHealthCheck(status="OK", total_imbalance=total)

    message = f"Member balances do not sum to zero. Total imbalance: {total:.2f}"
    logger.warning(message)
    return BalanceHealthCheck(
        status="IMBALANCED", total_imbalance=total, message=message
    )


def find_problematic_transactions(
    transactions: Iterable[Transaction],
    splits: Mapping[str, Sequence[MemberSplit]],
    tolerance: Decimal = SPLIT_TOLERANCE,
) -> list[ProblematicTransaction]:
    """Find expenses whose owed or paid rows don't add up to the amount."""
    problems = []
    for t in transactions:
        if t.transaction_type != "expense":
            continue
        rows = splits.get(t.id, [])
        owed_sum = split_total(rows, "owed")
        paid_sum = split_total(rows, "paid")
        if abs(t.amount - owed_sum) > tolerance or abs(t.amount - paid_sum) > tolerance:
            problems.append(
                ProblematicTransaction(
                    transaction_id=t.id,
                    date=t.date,
                    description=t.description,
                    expected_amount=t.amount,
                    actual_owed_sum=owed_sum,
                    actual_paid_sum=paid_sum,
                )
            )
    return problems


def cross_check_balances(
    local: Iterable[MemberBalance],
    backend: Iterable[MemberBalance],
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> list[BalanceDiscrepancy]:
    """
    Compare the local projection with the backend's balances.

    Members missing on one side count as zero there. Differences up to the
    tolerance are ignored.
    """
    local_by_id = {b.member_id: b for b in local}
    backend_by_id = {b.member_id: b for b in backend}

    discrepancies = []
    for member_id in sorted(set(local_by_id) | set(backend_by_id)):
        local_balance = local_by_id.get(member_id)
        backend_balance = backend_by_id.get(member_id)
        local_value = local_balance.net_balance if local_balance else ZERO
        backend_value = backend_balance.net_balance if backend_balance else ZERO

        if abs(local_value - backend_value) > tolerance:
            names = [b.display_name for b in (local_balance, backend_balance) if b]
            discrepancies.append(
                BalanceDiscrepancy(
                    member_id=member_id,
                    display_name=next((n for n in names if n), ""),
                    local_balance=local_value,
                    backend_balance=backend_value,
                )
            )

    if discrepancies:
        logger.info(
            f"{len(discrepancies)} member balance(s) differ from the backend"
        )
    return discrepancies
