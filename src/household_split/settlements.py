"""Suggest transfers that bring every member's balance back to zero."""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .models import ZERO, Member, MemberBalance, SettlementSuggestion

logger = logging.getLogger(__name__)

SETTLED_THRESHOLD = Decimal("0.01")


def settleable_balances(
    balances: Iterable[MemberBalance], members: Iterable[Member] | None = None
) -> list[MemberBalance]:
    """
    Drop balances that don't need settling.

    Anyone within a cent of zero is settled. Inactive members are hidden
    once they're settled, but kept while they still hold a real balance so
    debts with departed members can be paid off.
    """
    inactive = {m.id for m in members or [] if not m.is_active}
    result = []
    for b in balances:
        settled = abs(b.net_balance) < SETTLED_THRESHOLD
        if settled or (b.member_id in inactive and b.net_balance == 0):
            continue
        result.append(b)
    return result


def plan_settlements(
    balances: Iterable[MemberBalance], members: Iterable[Member] | None = None
) -> list[SettlementSuggestion]:
    """
    Propose transfers from debtors to creditors that zero out all balances.

    Creditors are taken largest first, debtors most negative first (ties by
    member id), and matched greedily: each step moves the smaller of the
    current debt and credit, then moves on from whichever side is paid off.
    This is a fast heuristic; it does not search for the smallest possible
    number of transfers.

    Args:
        balances: Net balances (should sum to zero)
        members: Optional roster used to tell which members are inactive

    Returns:
        Suggested transfers, in the order they were matched
    """
    candidates = settleable_balances(balances, members)

    creditors = sorted(
        (b for b in candidates if b.net_balance > SETTLED_THRESHOLD),
        key=lambda b: (-b.net_balance, b.member_id),
    )
    debtors = sorted(
        (b for b in candidates if b.net_balance < -SETTLED_THRESHOLD),
        key=lambda b: (b.net_balance, b.member_id),
    )

    debts = [abs(b.net_balance) for b in debtors]
    credits = [b.net_balance for b in creditors]

    suggestions = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        amount = min(debts[i], credits[j])
        if amount >= SETTLED_THRESHOLD:
            suggestions.append(
                SettlementSuggestion(
                    from_member_id=debtors[i].member_id,
                    to_member_id=creditors[j].member_id,
                    amount=amount,
                )
            )

        debts[i] -= amount
        credits[j] -= amount

        if debts[i] < SETTLED_THRESHOLD:
            i += 1
        if credits[j] < SETTLED_THRESHOLD:
            j += 1

    total_debt = sum((abs(b.net_balance) for b in debtors), ZERO)
    total_credit = sum((b.net_balance for b in creditors), ZERO)
    if abs(total_debt - total_credit) >= SETTLED_THRESHOLD:
        logger.warning(
            f"Balances don't sum to zero (debts {total_debt}, credits "
            f"{total_credit}); some balances will remain after settling"
        )

    logger.debug(f"Planned {len(suggestions)} settlement(s)")
    return suggestions


def apply_settlements(
    balances: Iterable[MemberBalance], suggestions: Sequence[SettlementSuggestion]
) -> dict[str, Decimal]:
    """
    Get the net balances that remain once every suggested transfer is paid.

    Paying moves the payer's balance up and the receiver's down, the same
    way a recorded settlement does.
    """
    result = {b.member_id: b.net_balance for b in balances}
    for s in suggestions:
        result[s.from_member_id] = result.get(s.from_member_id, ZERO) + s.amount
        result[s.to_member_id] = result.get(s.to_member_id, ZERO) - s.amount
    return result
