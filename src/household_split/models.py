"""Pydantic domain models for household-split."""

from datetime import date
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field

TransactionType = Literal["expense", "income", "settlement", "reimbursement"]
SplitSide = Literal["owed", "paid"]
ReimbursementPolicy = Literal["simple", "proportional"]

ZERO = Decimal("0")

# ============================================================================
# Household Models
# ============================================================================


class Member(BaseModel):
    """A household member."""

    id: str
    display_name: str
    is_active: bool = True


class Transaction(BaseModel):
    """A household transaction.

    Who `payer_id` and `payee_id` refer to depends on the type:
    - expense: `payer_id` is the single payer when there is one (splits are
      authoritative either way)
    - settlement: `payer_id` pays `payee_id`
    - income / reimbursement: `payer_id` is the member who received the money
    """

    id: str
    transaction_type: TransactionType
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date
    description: str = ""
    payer_id: str | None = None
    payee_id: str | None = None
    category_id: str | None = None
    split_type: str = "custom"  # persisted value, see splits.persisted_split_type
    paid_by_type: str = "custom"  # persisted value, see splits.persisted_paid_by_type
    linked_expense_id: str | None = None  # reimbursement only

    @property
    def is_linked_reimbursement(self) -> bool:
        """True for a reimbursement that offsets a specific expense."""
        return (
            self.transaction_type == "reimbursement"
            and self.linked_expense_id is not None
        )


class MemberSplit(BaseModel):
    """One member's share of an expense.

    `owed_amount` is what this member's share of the cost is, `paid_amount`
    is how much this member actually put toward it.
    """

    transaction_id: str | None = None
    member_id: str
    owed_amount: Decimal = ZERO
    owed_percentage: Decimal = ZERO
    paid_amount: Decimal = ZERO
    paid_percentage: Decimal = ZERO

    def amount_for(self, side: SplitSide) -> Decimal:
        """Get the owed or paid amount."""
        return self.owed_amount if side == "owed" else self.paid_amount

    def percentage_for(self, side: SplitSide) -> Decimal:
        """Get the owed or paid percentage."""
        return self.owed_percentage if side == "owed" else self.paid_percentage


# ============================================================================
# Split Modes
# ============================================================================


class EqualSplit(BaseModel):
    """Everyone participating owes the same amount."""

    kind: Literal["equal"] = "equal"


class MemberOnlySplit(BaseModel):
    """A single member owes the whole amount."""

    kind: Literal["member_only"] = "member_only"
    member_id: str


class CustomSplit(BaseModel):
    """Explicit per-member shares.

    Either `amounts` or `percentages` may be given. Percentages are the
    authoritative input; explicit amounts are kept verbatim. When neither is
    given, the percentages of the prior rows are reused.
    """

    kind: Literal["custom"] = "custom"
    amounts: dict[str, Decimal] | None = None
    percentages: dict[str, Decimal] | None = None


class LegacyPayerOnlySplit(BaseModel):
    """Old `payer_only` rows. Read-only; computed like a custom split."""

    kind: Literal["payer_only"] = "payer_only"
    amounts: dict[str, Decimal] | None = None
    percentages: dict[str, Decimal] | None = None


class EqualSubsetSplit(BaseModel):
    """Equal split among a chosen subset. Presentation only, stored as custom."""

    kind: Literal["equal_subset"] = "equal_subset"
    member_ids: list[str]


SplitMode = Annotated[
    EqualSplit
    | MemberOnlySplit
    | CustomSplit
    | LegacyPayerOnlySplit
    | EqualSubsetSplit,
    Field(discriminator="kind"),
]


class SinglePayment(BaseModel):
    """One member paid the whole amount."""

    kind: Literal["single"] = "single"
    member_id: str


class SharedPayment(BaseModel):
    """Every participant paid an equal part."""

    kind: Literal["shared"] = "shared"


class CustomPayment(BaseModel):
    """Explicit per-member payments, see CustomSplit."""

    kind: Literal["custom"] = "custom"
    amounts: dict[str, Decimal] | None = None
    percentages: dict[str, Decimal] | None = None


class EqualSubsetPayment(BaseModel):
    """Equal payment among a chosen subset. Presentation only, stored as custom."""

    kind: Literal["equal_subset"] = "equal_subset"
    member_ids: list[str]


PaidByMode = Annotated[
    SinglePayment | SharedPayment | CustomPayment | EqualSubsetPayment,
    Field(discriminator="kind"),
]


class RecognizedPattern(BaseModel):
    """Split modes reconstructed from persisted rows.

    A `None` mode means there was nothing to recognize on that side and the
    editor state should be left as it is.
    """

    split_mode: SplitMode | None = None
    selected_member_ids: list[str] = Field(default_factory=list)
    paid_by_mode: PaidByMode | None = None
    paid_by_member_ids: list[str] = Field(default_factory=list)


# ============================================================================
# Balance Models
# ============================================================================


class MemberBalance(BaseModel):
    """A member's net position. Positive means the household owes them."""

    member_id: str
    display_name: str = ""
    total_paid: Decimal = ZERO
    total_owed: Decimal = ZERO
    net_balance: Decimal = ZERO


class SettlementSuggestion(BaseModel):
    """A proposed transfer between two members."""

    from_member_id: str
    to_member_id: str
    amount: Decimal


class BalanceHealthCheck(BaseModel):
    """Result of checking that balances sum to zero."""

    status: Literal["OK", "IMBALANCED"]
    total_imbalance: Decimal
    message: str | None = None


class ProblematicTransaction(BaseModel):
    """An expense whose split rows don't add up to its amount."""

    transaction_id: str
    date: date
    description: str
    expected_amount: Decimal
    actual_owed_sum: Decimal
    actual_paid_sum: Decimal

    @property
    def owed_difference(self) -> Decimal:
        return self.expected_amount - self.actual_owed_sum

    @property
    def paid_difference(self) -> Decimal:
        return self.expected_amount - self.actual_paid_sum


class BalanceDiscrepancy(BaseModel):
    """A member whose locally computed balance differs from the backend's."""

    member_id: str
    display_name: str = ""
    local_balance: Decimal
    backend_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.local_balance - self.backend_balance


class PeriodTotals(BaseModel):
    """Effective spending and income over a set of transactions.

    `member_ids` is set when the totals only cover those members' portion.
    """

    expenses: Decimal = ZERO
    income: Decimal = ZERO
    member_ids: list[str] | None = None
