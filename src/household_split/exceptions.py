"""Custom exceptions for household-split."""

from decimal import Decimal


class HouseholdSplitError(Exception):
    """Base exception for all household-split errors."""

    pass


class ConfigurationError(HouseholdSplitError):
    """Raised when configuration is invalid or missing."""

    pass


class InvalidArgumentError(HouseholdSplitError, ValueError):
    """Raised when an allocation is requested with impossible inputs.

    This is a programming error (e.g. splitting across zero participants),
    never a user-facing validation message.
    """

    pass


class AmountMismatchError(HouseholdSplitError):
    """Raised when custom split amounts don't add up to the transaction amount."""

    def __init__(
        self,
        side: str,
        expected: Decimal,
        actual: Decimal,
        message: str | None = None,
    ):
        self.side = side
        self.expected = expected
        self.actual = actual
        self.difference = actual - expected
        label = "Split" if side == "owed" else "Paid"
        super().__init__(
            message
            or f"{label} amounts must equal ${expected:,.2f} "
            f"(currently ${actual:,.2f}, off by ${abs(self.difference):,.2f})"
        )


class ExceedsRemainingError(HouseholdSplitError):
    """Raised when a reimbursement is larger than what remains on its expense."""

    def __init__(self, amount: Decimal, remaining: Decimal, message: str | None = None):
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            message
            or f"Reimbursement of ${amount:,.2f} exceeds the remaining "
            f"reimbursable amount of ${remaining:,.2f}"
        )


class MemberNotFoundError(HouseholdSplitError):
    """Raised when a member id or name can't be resolved."""

    pass


class TransactionNotFoundError(HouseholdSplitError):
    """Raised when a transaction id doesn't exist in the ledger."""

    pass


class APIError(HouseholdSplitError):
    """Base class for API-related errors."""

    pass


class BackendAPIError(APIError):
    """Raised when a request to the household backend fails."""

    pass
