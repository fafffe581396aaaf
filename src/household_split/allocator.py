"""Exact-money allocation of a total across participants.

All amounts are Decimal dollars. Internally everything is done in integer
cents so that the shares always add back up to the total exactly; leftover
cents are handed out one at a time in index order.
"""

import logging
from collections.abc import Sequence
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from .exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_cents(amount: Decimal | int) -> int:
    """
    Convert Decimal dollars to integer cents.
    Uses ROUND_HALF_UP for consistency.

    Args:
        amount: Dollar amount as Decimal

    Returns:
        Amount in cents (integer)
    """
    cents = Decimal(amount) * 100
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to Decimal dollars with two places."""
    return Decimal(cents).scaleb(-2)


def quantize_money(amount: Decimal) -> Decimal:
    """Round a Decimal amount to whole cents (ROUND_HALF_UP)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def whole_cents(total: Decimal | int) -> int:
    """
    Convert a total to integer cents, refusing anything finer than a cent.

    Raises:
        InvalidArgumentError: If the total has fractional cents
    """
    amount = Decimal(total)
    if amount != amount.quantize(CENT, rounding=ROUND_HALF_UP):
        raise InvalidArgumentError(f"Amount must be a whole number of cents: {total}")
    return to_cents(amount)


def allocate_equal_shares(total: Decimal | int, count: int, index: int) -> Decimal:
    """
    Get participant `index`'s share of `total` split `count` ways.

    The base share is the total in cents floor-divided by `count`. The
    leftover cents go to indices 0, 1, ... until exhausted, so across all
    indices the shares sum to exactly `total` and no two shares differ by
    more than one cent.

    Calling this with `total=100` gives the matching percentage split.

    Args:
        total: Amount to split (non-negative, whole cents)
        count: Number of participants
        index: Position of the participant, 0..count-1

    Returns:
        The participant's share

    Raises:
        InvalidArgumentError: If count is not positive, index is out of
            range, or total is negative or has fractional cents
    """
    if count <= 0:
        raise InvalidArgumentError(
            f"Cannot split an amount across {count} participants"
        )
    if not 0 <= index < count:
        raise InvalidArgumentError(
            f"Participant index {index} out of range for {count} participants"
        )

    total_cents = whole_cents(total)
    if total_cents < 0:
        raise InvalidArgumentError(f"Cannot split a negative total: {total}")

    base, remainder = divmod(total_cents, count)
    return from_cents(base + (1 if index < remainder else 0))


def equal_shares(total: Decimal | int, count: int) -> list[Decimal]:
    """Get every participant's share of `total` split `count` ways."""
    return [allocate_equal_shares(total, count, i) for i in range(count)]


def allocate_proportional(
    total: Decimal | int, weights: Sequence[Decimal]
) -> list[Decimal]:
    """
    Distribute `total` across `weights` proportionally, in whole cents.

    Uses the largest remainder method: every weight gets the floor of its
    exact share, then the leftover cents go to the largest fractional parts
    (earlier positions win ties). The result always sums to the total.

    Args:
        total: Amount to distribute (non-negative)
        weights: Non-negative weights, one per recipient

    Returns:
        One amount per weight, in the same order

    Raises:
        InvalidArgumentError: If weights are empty or negative, or the total
            is negative or has fractional cents
    """
    if not weights:
        raise InvalidArgumentError("Cannot distribute an amount across no weights")
    if any(w < 0 for w in weights):
        raise InvalidArgumentError(f"Weights must be non-negative: {list(weights)}")

    total_cents = whole_cents(total)
    if total_cents < 0:
        raise InvalidArgumentError(f"Cannot distribute a negative total: {total}")

    weight_sum = sum(weights, Decimal("0"))
    if weight_sum == 0:
        logger.debug("All weights are zero, falling back to an equal split")
        return equal_shares(total, len(weights))

    exact = [Decimal(total_cents) * w / weight_sum for w in weights]
    floors = [int(x.quantize(Decimal("1"), rounding=ROUND_DOWN)) for x in exact]
    leftover = total_cents - sum(floors)

    by_fraction = sorted(
        range(len(weights)), key=lambda i: (-(exact[i] - floors[i]), i)
    )
    for i in by_fraction[:leftover]:
        floors[i] += 1

    return [from_cents(c) for c in floors]


def percentage_of(amount: Decimal, total: Decimal) -> Decimal:
    """
    Get `amount` as a percentage of `total`.

    Returns 0 when the total is 0. Rounded to four decimal places, which is
    enough to reproduce the amount to the cent for any realistic total.
    """
    if total == 0:
        return Decimal("0")
    return (amount * HUNDRED / total).quantize(
        Decimal("0.0001"), rounding=ROUND_HALF_UP
    )


def amount_from_percentage(total: Decimal, percentage: Decimal) -> Decimal:
    """Get `percentage` of `total`, rounded to cents."""
    return quantize_money(total * percentage / HUNDRED)
