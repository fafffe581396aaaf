"""Reconstruct high-level split modes from persisted per-member rows.

Stored splits are plain numbers; there is no record of "split equally".
When a transaction is opened for editing we look at the numbers and guess
the friendliest mode that reproduces them. This is purely a display
convenience, so anything that doesn't fit cleanly falls back to a custom
split instead of raising.
"""

import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Literal

from .exceptions import HouseholdSplitError
from .models import (
    CustomPayment,
    CustomSplit,
    EqualSubsetPayment,
    EqualSubsetSplit,
    MemberOnlySplit,
    MemberSplit,
    PaidByMode,
    RecognizedPattern,
    SinglePayment,
    SplitMode,
    SplitSide,
)
from .splits import build_split

logger = logging.getLogger(__name__)

PATTERN_TOLERANCE = Decimal("0.02")

Shape = Literal["single", "equal", "custom"]


def _classify_side(
    rows: Sequence[MemberSplit], total: Decimal, side: SplitSide
) -> tuple[Shape | None, list[str]]:
    """
    Classify one side of the rows.

    Returns:
        (shape, ids of members with a non-zero amount, sorted). The shape is
        None when nobody has an amount on this side.
    """
    with_amount = [row for row in rows if row.amount_for(side) > 0]
    if not with_amount:
        return None, []

    member_ids = sorted(row.member_id for row in with_amount)
    expected = total / len(with_amount)
    if any(
        abs(row.amount_for(side) - expected) > PATTERN_TOLERANCE
        for row in with_amount
    ):
        return "custom", member_ids
    if len(with_amount) == 1:
        return "single", member_ids
    return "equal", member_ids


def _to_split_mode(
    shape: Shape, member_ids: list[str], rows: Sequence[MemberSplit]
) -> SplitMode:
    if shape == "single":
        return MemberOnlySplit(member_id=member_ids[0])
    if shape == "equal":
        return EqualSubsetSplit(member_ids=member_ids)
    return CustomSplit(amounts={row.member_id: row.owed_amount for row in rows})


def _to_paid_by_mode(
    shape: Shape, member_ids: list[str], rows: Sequence[MemberSplit]
) -> PaidByMode:
    if shape == "single":
        return SinglePayment(member_id=member_ids[0])
    if shape == "equal":
        return EqualSubsetPayment(member_ids=member_ids)
    return CustomPayment(amounts={row.member_id: row.paid_amount for row in rows})


def _reproduces(
    rows: Sequence[MemberSplit],
    total: Decimal,
    split_mode: SplitMode,
    paid_by_mode: PaidByMode,
) -> tuple[bool, bool]:
    """
    Check that rebuilding the recognized modes gives back the stored rows.

    Returns:
        (owed side matches, paid side matches)
    """
    try:
        rebuilt = build_split(
            total, [row.member_id for row in rows], split_mode, paid_by_mode
        )
    except HouseholdSplitError as e:
        logger.debug(f"Recognized pattern could not be rebuilt: {e}")
        return False, False

    rebuilt_by_id = {row.member_id: row for row in rebuilt}

    def side_matches(side: SplitSide) -> bool:
        return all(
            abs(rebuilt_by_id[row.member_id].amount_for(side) - row.amount_for(side))
            <= PATTERN_TOLERANCE
            for row in rows
        )

    return side_matches("owed"), side_matches("paid")


def recognize_split_pattern(
    rows: Sequence[MemberSplit], total: Decimal
) -> RecognizedPattern:
    """
    Work out which split and paid-by modes a set of stored rows represents.

    Each side is handled independently. Members with a non-zero amount are
    compared against an even share of the total; if all are within two
    cents, it's a single member (when there is one of them) or an equal
    split among exactly those members. Otherwise it's a custom split with
    the stored amounts preserved verbatim.

    The recognized modes are then rebuilt with build_split; a side that
    doesn't come back within two cents of the stored amounts falls back to
    custom.

    Args:
        rows: Stored split rows for one transaction
        total: The transaction amount

    Returns:
        The recognized pattern. A side with no amounts at all has mode None,
        meaning the caller should leave that side as it is.
    """
    owed_shape, selected = _classify_side(rows, total, "owed")
    paid_shape, paid_by = _classify_side(rows, total, "paid")

    # A side with nothing to recognize is rebuilt as custom (all zeros) so
    # the other side can still be checked
    split_mode = _to_split_mode(owed_shape or "custom", selected, rows)
    paid_by_mode = _to_paid_by_mode(paid_shape or "custom", paid_by, rows)

    owed_ok, paid_ok = _reproduces(rows, total, split_mode, paid_by_mode)
    if not owed_ok:
        logger.debug(f"Owed side doesn't round-trip as {split_mode.kind}, using custom")
        split_mode = _to_split_mode("custom", selected, rows)
    if not paid_ok:
        logger.debug(
            f"Paid side doesn't round-trip as {paid_by_mode.kind}, using custom"
        )
        paid_by_mode = _to_paid_by_mode("custom", paid_by, rows)

    return RecognizedPattern(
        split_mode=split_mode if owed_shape else None,
        selected_member_ids=selected,
        paid_by_mode=paid_by_mode if paid_shape else None,
        paid_by_member_ids=paid_by,
    )
