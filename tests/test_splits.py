"""Tests for computing and validating per-member split rows."""

from decimal import Decimal

import pytest

from household_split.exceptions import AmountMismatchError, InvalidArgumentError
from household_split.models import (
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
    SharedPayment,
    SinglePayment,
)
from household_split.splits import (
    build_split,
    normalize_split_mode,
    paid_by_mode_from_persisted,
    participants_for_new_allocation,
    persisted_paid_by_type,
    persisted_split_type,
    split_mode_from_persisted,
    split_total,
    validate_for_submission,
    validate_split,
)

MEMBERS = ["alice", "bob", "carol"]


def rows_by_id(rows: list[MemberSplit]) -> dict[str, MemberSplit]:
    return {row.member_id: row for row in rows}


def make_rows(owed: list[str], paid: list[str] | None = None) -> list[MemberSplit]:
    """Rows for alice/bob/carol from string amounts."""
    paid = paid or ["0"] * len(owed)
    return [
        MemberSplit(
            member_id=member_id,
            owed_amount=Decimal(o),
            paid_amount=Decimal(p),
        )
        for member_id, o, p in zip(MEMBERS, owed, paid)
    ]


class TestBuildSplitEqual:
    """Test equal splits."""

    def test_equal_split_three_ways(self):
        """Equal split gives exact cents and percentages summing to 100."""
        rows = build_split(
            Decimal("100.00"), MEMBERS, EqualSplit(), SinglePayment(member_id="alice")
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].owed_amount == Decimal("33.34")
        assert by_id["bob"].owed_amount == Decimal("33.33")
        assert by_id["carol"].owed_amount == Decimal("33.33")
        assert split_total(rows, "owed") == Decimal("100.00")
        assert sum(row.owed_percentage for row in rows) == Decimal("100")

    def test_leftover_cents_follow_member_id_order(self):
        """The extra cent goes by member id, not by the order passed in."""
        rows = build_split(
            Decimal("100.00"),
            ["carol", "alice", "bob"],
            EqualSplit(),
            SinglePayment(member_id="carol"),
        )

        # Rows come back in the order given
        assert [row.member_id for row in rows] == ["carol", "alice", "bob"]
        assert rows_by_id(rows)["alice"].owed_amount == Decimal("33.34")

    def test_single_payer(self):
        """A single payer paid everything, everyone else paid nothing."""
        rows = build_split(
            Decimal("60.00"), MEMBERS, EqualSplit(), SinglePayment(member_id="bob")
        )
        by_id = rows_by_id(rows)

        assert by_id["bob"].paid_amount == Decimal("60.00")
        assert by_id["bob"].paid_percentage == Decimal("100")
        assert by_id["alice"].paid_amount == 0
        assert by_id["carol"].paid_amount == 0

    def test_shared_payment(self):
        """Shared payment splits the paid side equally."""
        rows = build_split(Decimal("90.00"), MEMBERS, EqualSplit(), SharedPayment())
        assert [row.paid_amount for row in rows] == [Decimal("30.00")] * 3

    def test_transaction_id_is_stamped(self):
        """Every row carries the transaction id when given."""
        rows = build_split(
            Decimal("10"),
            MEMBERS,
            EqualSplit(),
            SharedPayment(),
            transaction_id="txn-1",
        )
        assert {row.transaction_id for row in rows} == {"txn-1"}

    def test_duplicate_participants_are_ignored(self):
        """Participants listed twice get one row."""
        rows = build_split(
            Decimal("10.00"),
            ["alice", "bob", "alice"],
            EqualSplit(),
            SharedPayment(),
        )
        assert [row.member_id for row in rows] == ["alice", "bob"]
        assert split_total(rows) == Decimal("10.00")

    def test_no_participants_raises(self):
        """A split needs at least one participant."""
        with pytest.raises(InvalidArgumentError):
            build_split(Decimal("10"), [], EqualSplit(), SharedPayment())

    def test_zero_total_gives_all_zero_rows(self):
        """Nothing to split means zero amounts and percentages everywhere."""
        rows = build_split(
            Decimal("0"), MEMBERS, EqualSplit(), SinglePayment(member_id="alice")
        )
        for row in rows:
            assert row.owed_amount == 0
            assert row.owed_percentage == 0
            assert row.paid_amount == 0
            assert row.paid_percentage == 0


class TestBuildSplitSubsets:
    """Test member-only and equal-subset modes."""

    def test_member_only(self):
        """One member owes everything."""
        rows = build_split(
            Decimal("45.00"),
            MEMBERS,
            MemberOnlySplit(member_id="carol"),
            SinglePayment(member_id="alice"),
        )
        by_id = rows_by_id(rows)

        assert by_id["carol"].owed_amount == Decimal("45.00")
        assert by_id["carol"].owed_percentage == Decimal("100")
        assert by_id["alice"].owed_amount == 0
        assert by_id["bob"].owed_amount == 0

    def test_member_only_must_participate(self):
        """The member-only member has to be a participant."""
        with pytest.raises(InvalidArgumentError):
            build_split(
                Decimal("10"),
                ["alice", "bob"],
                MemberOnlySplit(member_id="dave"),
                SharedPayment(),
            )

    def test_equal_subset(self):
        """Only the subset owes, split equally between them."""
        rows = build_split(
            Decimal("10.01"),
            MEMBERS,
            EqualSubsetSplit(member_ids=["carol", "alice"]),
            SinglePayment(member_id="bob"),
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].owed_amount == Decimal("5.01")
        assert by_id["carol"].owed_amount == Decimal("5.00")
        assert by_id["bob"].owed_amount == 0
        assert by_id["alice"].owed_percentage == Decimal("50")
        assert split_total(rows) == Decimal("10.01")

    def test_equal_subset_payment(self):
        """Several payers can share the payment equally."""
        rows = build_split(
            Decimal("50.00"),
            MEMBERS,
            EqualSplit(),
            EqualSubsetPayment(member_ids=["alice", "bob"]),
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].paid_amount == Decimal("25.00")
        assert by_id["bob"].paid_amount == Decimal("25.00")
        assert by_id["carol"].paid_amount == 0

    def test_subset_members_must_participate(self):
        """Subset members outside the participants are rejected."""
        with pytest.raises(InvalidArgumentError):
            build_split(
                Decimal("10"),
                ["alice", "bob"],
                EqualSubsetSplit(member_ids=["alice", "dave"]),
                SharedPayment(),
            )


class TestBuildSplitCustom:
    """Test custom splits."""

    def test_custom_percentages(self):
        """Percentages are authoritative and converted to cents."""
        rows = build_split(
            Decimal("80.00"),
            MEMBERS,
            CustomSplit(
                percentages={
                    "alice": Decimal("40"),
                    "bob": Decimal("35"),
                    "carol": Decimal("25"),
                }
            ),
            SinglePayment(member_id="alice"),
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].owed_amount == Decimal("32.00")
        assert by_id["bob"].owed_amount == Decimal("28.00")
        assert by_id["carol"].owed_amount == Decimal("20.00")
        assert by_id["bob"].owed_percentage == Decimal("35")

    def test_custom_amounts_are_kept_verbatim(self):
        """Explicit amounts are stored as given, with derived percentages."""
        rows = build_split(
            Decimal("100.00"),
            MEMBERS,
            CustomSplit(
                amounts={
                    "alice": Decimal("40.00"),
                    "bob": Decimal("35.00"),
                    "carol": Decimal("25.00"),
                }
            ),
            SharedPayment(),
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].owed_amount == Decimal("40.00")
        assert by_id["alice"].owed_percentage == Decimal("40")

    def test_missing_member_defaults_to_zero(self):
        """Participants without a custom amount owe nothing."""
        rows = build_split(
            Decimal("20.00"),
            MEMBERS,
            CustomSplit(amounts={"alice": Decimal("20.00")}),
            SharedPayment(),
        )
        assert rows_by_id(rows)["carol"].owed_amount == 0

    def test_prior_percentages_rescale_a_changed_total(self):
        """With no input, the previous rows' percentages are reused."""
        prior = [
            MemberSplit(member_id="alice", owed_percentage=Decimal("60")),
            MemberSplit(member_id="bob", owed_percentage=Decimal("40")),
        ]
        rows = build_split(
            Decimal("200.00"),
            ["alice", "bob"],
            CustomSplit(),
            SinglePayment(member_id="alice"),
            prior_rows=prior,
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].owed_amount == Decimal("120.00")
        assert by_id["bob"].owed_amount == Decimal("80.00")

    def test_custom_payment(self):
        """The paid side can be custom too."""
        rows = build_split(
            Decimal("100.00"),
            MEMBERS,
            EqualSplit(),
            CustomPayment(
                amounts={"alice": Decimal("70.00"), "bob": Decimal("30.00")}
            ),
        )
        by_id = rows_by_id(rows)

        assert by_id["alice"].paid_amount == Decimal("70.00")
        assert by_id["bob"].paid_amount == Decimal("30.00")
        assert by_id["carol"].paid_amount == 0

    def test_legacy_payer_only_is_computed_like_custom(self):
        """Old payer-only rows are handled as a custom split."""
        rows = build_split(
            Decimal("10.00"),
            ["alice", "bob"],
            LegacyPayerOnlySplit(amounts={"alice": Decimal("10.00")}),
            SinglePayment(member_id="alice"),
        )
        assert rows_by_id(rows)["alice"].owed_amount == Decimal("10.00")


class TestValidateSplit:
    """Test split validation."""

    def test_amounts_that_add_up_pass(self):
        """40 + 35 + 25 against 100 is valid."""
        validate_split(make_rows(["40.00", "35.00", "25.00"]), Decimal("100.00"))

    def test_two_cents_off_fails(self):
        """40 + 35 + 25.02 against 100 is rejected."""
        with pytest.raises(AmountMismatchError) as exc_info:
            validate_split(make_rows(["40.00", "35.00", "25.02"]), Decimal("100.00"))

        assert exc_info.value.difference == Decimal("0.02")
        assert exc_info.value.side == "owed"

    def test_one_cent_is_within_tolerance(self):
        """A one cent difference is allowed."""
        validate_split(make_rows(["40.00", "35.00", "25.01"]), Decimal("100.00"))

    def test_paid_side(self):
        """The paid side is checked on its own."""
        rows = make_rows(["50", "50", "0"], paid=["90", "0", "0"])
        with pytest.raises(AmountMismatchError) as exc_info:
            validate_split(rows, Decimal("100"), side="paid")
        assert exc_info.value.difference == Decimal("-10")


class TestValidateForSubmission:
    """Test that only hand-entered sides are validated."""

    def test_generated_sides_are_not_checked(self):
        """Equal and single modes aren't validated even if rows are off."""
        rows = make_rows(["10", "10", "10"], paid=["10", "0", "0"])
        validate_for_submission(
            rows, Decimal("100"), EqualSplit(), SinglePayment(member_id="alice")
        )

    def test_custom_owed_side_is_checked(self):
        """A custom split that doesn't add up is rejected."""
        rows = make_rows(["40.00", "35.00", "25.02"], paid=["100", "0", "0"])
        with pytest.raises(AmountMismatchError):
            validate_for_submission(
                rows,
                Decimal("100.00"),
                CustomSplit(),
                SinglePayment(member_id="alice"),
            )

    def test_custom_paid_side_is_checked(self):
        """A custom payment that doesn't add up is rejected."""
        rows = make_rows(["50", "50", "0"], paid=["60", "0", "0"])
        with pytest.raises(AmountMismatchError) as exc_info:
            validate_for_submission(rows, Decimal("100"), EqualSplit(), CustomPayment())
        assert exc_info.value.side == "paid"


class TestPersistedModes:
    """Test reading and writing the stored mode values."""

    def test_persisted_split_type(self):
        """Subset and legacy modes are stored as custom."""
        assert persisted_split_type(EqualSplit()) == "equal"
        assert persisted_split_type(MemberOnlySplit(member_id="a")) == "member_only"
        assert persisted_split_type(CustomSplit()) == "custom"
        assert persisted_split_type(EqualSubsetSplit(member_ids=["a", "b"])) == "custom"
        assert persisted_split_type(LegacyPayerOnlySplit()) == "custom"

    def test_persisted_paid_by_type(self):
        """Paid-by modes map to single, shared or custom."""
        assert persisted_paid_by_type(SinglePayment(member_id="a")) == "single"
        assert persisted_paid_by_type(SharedPayment()) == "shared"
        assert persisted_paid_by_type(CustomPayment()) == "custom"
        assert (
            persisted_paid_by_type(EqualSubsetPayment(member_ids=["a", "b"]))
            == "custom"
        )

    def test_normalize_legacy_payer_only(self):
        """Payer-only becomes a plain custom split with the same input."""
        mode = normalize_split_mode(
            LegacyPayerOnlySplit(amounts={"alice": Decimal("5")})
        )
        assert isinstance(mode, CustomSplit)
        assert mode.amounts == {"alice": Decimal("5")}

    def test_normalize_leaves_other_modes_alone(self):
        """Non-legacy modes are returned unchanged."""
        mode = EqualSplit()
        assert normalize_split_mode(mode) is mode

    def test_split_mode_from_persisted(self):
        """Stored split types read back as modes."""
        assert isinstance(split_mode_from_persisted("equal"), EqualSplit)
        assert split_mode_from_persisted("member_only", "bob") == MemberOnlySplit(
            member_id="bob"
        )
        assert isinstance(split_mode_from_persisted("payer_only"), CustomSplit)
        assert isinstance(split_mode_from_persisted("something_else"), CustomSplit)
        assert isinstance(split_mode_from_persisted(None), CustomSplit)

    def test_paid_by_mode_from_persisted(self):
        """Stored paid-by types read back as modes."""
        assert paid_by_mode_from_persisted("single", "alice") == SinglePayment(
            member_id="alice"
        )
        assert isinstance(paid_by_mode_from_persisted("shared"), SharedPayment)
        assert isinstance(paid_by_mode_from_persisted("single"), CustomPayment)


class TestParticipantsForNewAllocation:
    """Test who a new transaction is split across."""

    def test_active_and_inactive_with_balance(self):
        """Inactive members join only while they still have a balance."""
        members = [
            Member(id="alice", display_name="Alice"),
            Member(id="bob", display_name="Bob", is_active=False),
            Member(id="carol", display_name="Carol", is_active=False),
            Member(id="dave", display_name="Dave"),
        ]
        balances = [
            MemberBalance(member_id="bob", net_balance=Decimal("-12.50")),
            MemberBalance(member_id="carol", net_balance=Decimal("0.004")),
        ]

        assert participants_for_new_allocation(members, balances) == [
            "alice",
            "bob",
            "dave",
        ]

    def test_without_balances(self):
        """With no balances only active members participate."""
        members = [
            Member(id="alice", display_name="Alice"),
            Member(id="bob", display_name="Bob", is_active=False),
        ]
        assert participants_for_new_allocation(members) == ["alice"]
