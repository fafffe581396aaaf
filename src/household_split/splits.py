"""Per-member owed/paid rows for an expense, computed from split modes.

Rows are always recomputed explicitly from the current inputs (total,
participants, modes); nothing here keeps state between calls.
"""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .allocator import (
    HUNDRED,
    allocate_equal_shares,
    amount_from_percentage,
    percentage_of,
)
from .exceptions import AmountMismatchError, InvalidArgumentError
from .models import (
    ZERO,
    CustomPayment,
    CustomSplit,
    EqualSplit,
    EqualSubsetPayment,
    EqualSubsetSplit,
    LegacyPayerOnlySplit,
    Member,
    MemberBalance,
    MemberOnlySplit,
    MemberSplit,
    PaidByMode,
    SharedPayment,
    SinglePayment,
    SplitMode,
    SplitSide,
)

logger = logging.getLogger(__name__)

SPLIT_TOLERANCE = Decimal("0.01")

_CUSTOM_MODES = (CustomSplit, LegacyPayerOnlySplit, CustomPayment)

# member_id -> (amount, percentage)
Shares = dict[str, tuple[Decimal, Decimal]]


def _equal_shares_by_id(total: Decimal, member_ids: Iterable[str]) -> Shares:
    """
    Split `total` equally, handing leftover cents out in member id order.

    The percentages come from the same allocation over 100 units, so they
    also add up to exactly 100. They are not derived from the amounts: for
    $10.00 three ways the first share is $3.34 stored as 33.34%, while
    3.34 / 10.00 is 33.4%. When the total doesn't divide evenly the two can
    disagree by a fraction of a percent; each side still sums exactly.
    """
    ordered = sorted(set(member_ids))
    count = len(ordered)
    return {
        member_id: (
            allocate_equal_shares(total, count, i),
            allocate_equal_shares(HUNDRED, count, i),
        )
        for i, member_id in enumerate(ordered)
    }


def _custom_shares(
    total: Decimal,
    participants: Sequence[str],
    amounts: dict[str, Decimal] | None,
    percentages: dict[str, Decimal] | None,
    prior: dict[str, Decimal],
) -> Shares:
    """Resolve custom input: explicit amounts, else percentages, else prior rows."""
    if amounts is not None:
        return {
            m: (amounts.get(m, ZERO), percentage_of(amounts.get(m, ZERO), total))
            for m in participants
        }

    source = percentages if percentages is not None else prior
    return {
        m: (amount_from_percentage(total, source.get(m, ZERO)), source.get(m, ZERO))
        for m in participants
    }


def _side_shares(
    total: Decimal,
    participants: Sequence[str],
    mode: SplitMode | PaidByMode,
    prior: dict[str, Decimal],
) -> Shares:
    """Compute one side (owed or paid) of the split for every participant."""
    if isinstance(mode, (EqualSplit, SharedPayment)):
        shares = _equal_shares_by_id(total, participants)
    elif isinstance(mode, (EqualSubsetSplit, EqualSubsetPayment)):
        unknown = set(mode.member_ids) - set(participants)
        if unknown:
            raise InvalidArgumentError(
                f"Subset members are not participants: {sorted(unknown)}"
            )
        shares = _equal_shares_by_id(total, mode.member_ids)
    elif isinstance(mode, (MemberOnlySplit, SinglePayment)):
        if mode.member_id not in participants:
            raise InvalidArgumentError(
                f"Member {mode.member_id} is not a participant"
            )
        shares = {mode.member_id: (total, HUNDRED)}
    elif isinstance(mode, _CUSTOM_MODES):
        shares = _custom_shares(
            total, participants, mode.amounts, mode.percentages, prior
        )
    else:
        raise InvalidArgumentError(f"Unsupported split mode: {mode!r}")

    if total == 0:
        # Nothing to split: amounts and percentages are all zero
        return {m: (ZERO, ZERO) for m in participants}

    return {m: shares.get(m, (ZERO, ZERO)) for m in participants}


def build_split(
    total: Decimal,
    participants: Sequence[str],
    split_mode: SplitMode,
    paid_by_mode: PaidByMode,
    prior_rows: Sequence[MemberSplit] | None = None,
    transaction_id: str | None = None,
) -> list[MemberSplit]:
    """
    Compute the owed/paid rows for an expense.

    Equal modes allocate exact cents with `allocate_equal_shares`, giving
    leftover cents to participants in member id order. Custom modes treat
    percentages as authoritative (amount = total * pct / 100, rounded to
    cents) unless explicit amounts are supplied; with neither, the
    percentages of `prior_rows` are reused so a changed total rescales the
    previous custom split.

    Args:
        total: The transaction amount
        participants: Member ids to produce rows for (order is kept)
        split_mode: Who owes what
        paid_by_mode: Who paid what
        prior_rows: Previous rows, used for custom percentages
        transaction_id: Optional id stamped on every row

    Returns:
        One MemberSplit per participant

    Raises:
        InvalidArgumentError: If there are no participants, or a mode names
            a member who isn't participating
    """
    participant_ids = list(dict.fromkeys(participants))
    if not participant_ids:
        raise InvalidArgumentError("Cannot build a split with no participants")

    prior_rows = prior_rows or []
    prior_owed = {row.member_id: row.owed_percentage for row in prior_rows}
    prior_paid = {row.member_id: row.paid_percentage for row in prior_rows}

    owed = _side_shares(total, participant_ids, split_mode, prior_owed)
    paid = _side_shares(total, participant_ids, paid_by_mode, prior_paid)

    rows = [
        MemberSplit(
            transaction_id=transaction_id,
            member_id=member_id,
            owed_amount=owed[member_id][0],
            owed_percentage=owed[member_id][1],
            paid_amount=paid[member_id][0],
            paid_percentage=paid[member_id][1],
        )
        for member_id in participant_ids
    ]

    logger.debug(
        f"Built split of {total} across {len(rows)} members "
        f"({split_mode.kind} / {paid_by_mode.kind})"
    )
    return rows


def split_total(rows: Iterable[MemberSplit], side: SplitSide = "owed") -> Decimal:
    """Sum the owed or paid amounts of some rows."""
    return sum((row.amount_for(side) for row in rows), ZERO)


def validate_split(
    rows: Sequence[MemberSplit],
    total: Decimal,
    side: SplitSide = "owed",
    tolerance: Decimal = SPLIT_TOLERANCE,
) -> None:
    """
    Check that one side of a split adds up to the transaction amount.

    Args:
        rows: The split rows
        total: The transaction amount
        side: "owed" or "paid"
        tolerance: Largest allowed difference (inclusive)

    Raises:
        AmountMismatchError: If |sum - total| > tolerance
    """
    actual = split_total(rows, side)
    if abs(actual - total) > tolerance:
        raise AmountMismatchError(side=side, expected=total, actual=actual)


def is_custom_editor_mode(mode: SplitMode | PaidByMode) -> bool:
    """True for modes where the user types amounts/percentages by hand."""
    return isinstance(mode, _CUSTOM_MODES)


def validate_for_submission(
    rows: Sequence[MemberSplit],
    total: Decimal,
    split_mode: SplitMode,
    paid_by_mode: PaidByMode,
) -> None:
    """
    Validate the sides of a split that were entered by hand.

    Equal, subset and single-member modes are generated to already add up,
    so only custom sides are checked.

    Raises:
        AmountMismatchError: If a custom side doesn't sum to the total
    """
    if is_custom_editor_mode(split_mode):
        validate_split(rows, total, side="owed")
    if is_custom_editor_mode(paid_by_mode):
        validate_split(rows, total, side="paid")


# ============================================================================
# Persisted mode values
# ============================================================================


def normalize_split_mode(mode: SplitMode) -> SplitMode:
    """Map the legacy payer-only mode onto a plain custom split."""
    if isinstance(mode, LegacyPayerOnlySplit):
        return CustomSplit(amounts=mode.amounts, percentages=mode.percentages)
    return mode


def persisted_split_type(mode: SplitMode) -> str:
    """Get the `split_type` value to store. Never returns `payer_only`."""
    if isinstance(mode, EqualSplit):
        return "equal"
    if isinstance(mode, MemberOnlySplit):
        return "member_only"
    return "custom"


def persisted_paid_by_type(mode: PaidByMode) -> str:
    """Get the `paid_by_type` value to store."""
    if isinstance(mode, SinglePayment):
        return "single"
    if isinstance(mode, SharedPayment):
        return "shared"
    return "custom"


def split_mode_from_persisted(
    split_type: str | None, split_member_id: str | None = None
) -> SplitMode:
    """
    Read a stored `split_type`.

    The legacy `payer_only` value, and anything unrecognised, become a custom
    split whose rows are taken as they are.
    """
    if split_type == "equal":
        return EqualSplit()
    if split_type == "member_only" and split_member_id:
        return MemberOnlySplit(member_id=split_member_id)
    if split_type not in ("custom", "payer_only", "member_only", None):
        logger.warning(f"Unknown split type {split_type!r}, treating as custom")
    return CustomSplit()


def paid_by_mode_from_persisted(
    paid_by_type: str | None, payer_id: str | None = None
) -> PaidByMode:
    """Read a stored `paid_by_type`."""
    if paid_by_type == "single" and payer_id:
        return SinglePayment(member_id=payer_id)
    if paid_by_type == "shared":
        return SharedPayment()
    if paid_by_type not in ("custom", "single", None):
        logger.warning(f"Unknown paid-by type {paid_by_type!r}, treating as custom")
    return CustomPayment()


def participants_for_new_allocation(
    members: Iterable[Member],
    balances: Iterable[MemberBalance] | None = None,
    tolerance: Decimal = SPLIT_TOLERANCE,
) -> list[str]:
    """
    Get the member ids a new transaction should be split across.

    Active members always participate. Inactive members only participate
    while they still hold a real balance, so debts with departed members
    can still be settled.
    """
    balance_by_id = {b.member_id: b.net_balance for b in balances or []}
    return [
        m.id
        for m in members
        if m.is_active or abs(balance_by_id.get(m.id, ZERO)) >= tolerance
    ]
