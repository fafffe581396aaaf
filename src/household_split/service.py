"""Service layer that composes the ledger store, backend and split engine.

The engine modules are pure functions over snapshots; this layer fetches the
snapshots (local database or backend), calls them, and saves results.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .balances import (
    aggregate_balances,
    check_balance_health,
    cross_check_balances,
    find_problematic_transactions,
)
from .clients.backend import BackendClient
from .config import Settings
from .db import Database
from .exceptions import (
    HouseholdSplitError,
    MemberNotFoundError,
    TransactionNotFoundError,
)
from .models import (
    BalanceDiscrepancy,
    BalanceHealthCheck,
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
    PeriodTotals,
    ProblematicTransaction,
    RecognizedPattern,
    SettlementSuggestion,
    SharedPayment,
    SinglePayment,
    SplitMode,
    Transaction,
)
from .recognizer import recognize_split_pattern
from .reimbursements import (
    calculate_period_totals,
    remaining_reimbursable,
    validate_reimbursement,
)
from .settlements import plan_settlements
from .splits import (
    build_split,
    normalize_split_mode,
    paid_by_mode_from_persisted,
    participants_for_new_allocation,
    persisted_paid_by_type,
    persisted_split_type,
    split_mode_from_persisted,
    validate_for_submission,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    """Generate an id for a new member or transaction."""
    return str(uuid.uuid4())


@dataclass
class HouseholdSnapshot:
    """Everything the engine needs, as fetched from one source."""

    members: list[Member]
    transactions: list[Transaction]
    splits: dict[str, list[MemberSplit]]


class LedgerService:
    """Service for recording household transactions and computing balances."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Members
    # ========================================================================

    def add_member(self, display_name: str) -> Member:
        """Add a new active member to the household."""
        name = display_name.strip()
        if not name:
            raise HouseholdSplitError("Member name can't be empty")

        member = Member(id=new_id(), display_name=name)
        self.db.save_member(member)
        logger.info(f"Added member {member.display_name} ({member.id})")
        return member

    def resolve_member(self, ref: str) -> Member:
        """
        Find a member by id or by display name (case-insensitive).

        Raises:
            MemberNotFoundError: If nothing matches, or a name is ambiguous
        """
        member = self.db.get_member(ref)
        if member:
            return member

        matches = [
            m
            for m in self.db.get_members()
            if m.display_name.casefold() == ref.strip().casefold()
        ]
        if len(matches) == 1:
            return matches[0]
        if matches:
            raise MemberNotFoundError(
                f"More than one member is named '{ref}', use the member id"
            )
        raise MemberNotFoundError(f"No member matching '{ref}'")

    def set_member_active(self, ref: str, active: bool) -> Member:
        """Activate or deactivate a member. History is kept either way."""
        member = self.resolve_member(ref)
        updated = member.model_copy(update={"is_active": active})
        self.db.save_member(updated)
        logger.info(
            f"{'Reactivated' if active else 'Deactivated'} member "
            f"{member.display_name}"
        )
        return updated

    # ========================================================================
    # Snapshots
    # ========================================================================

    def local_snapshot(self) -> HouseholdSnapshot:
        """Read members, transactions and splits from the local database."""
        return HouseholdSnapshot(
            members=self.db.get_members(),
            transactions=self.db.get_transactions(),
            splits=self.db.get_all_splits(),
        )

    def fetch_backend_snapshot(self) -> tuple[HouseholdSnapshot, list[MemberBalance]]:
        """
        Fetch the household history and authoritative balances from the backend.

        Returns:
            Tuple of (snapshot, backend balances)
        """
        self.settings.require_backend()
        base_url = self.settings.backend_url or ""
        api_key = self.settings.backend_api_key or ""
        household_id = self.settings.household_id or ""

        with BackendClient(base_url, api_key) as client:
            snapshot = HouseholdSnapshot(
                members=client.get_members(household_id),
                transactions=client.get_transactions(household_id),
                splits=client.get_splits(household_id),
            )
            backend_balances = client.get_member_balances(household_id)

        logger.info(
            f"Fetched {len(snapshot.members)} members and "
            f"{len(snapshot.transactions)} transactions from the backend"
        )
        return snapshot, backend_balances

    # ========================================================================
    # Balances & settlements
    # ========================================================================

    def compute_balances(
        self, snapshot: HouseholdSnapshot | None = None
    ) -> list[MemberBalance]:
        """Compute member balances (from the local database by default)."""
        snapshot = snapshot or self.local_snapshot()
        return aggregate_balances(
            snapshot.transactions,
            snapshot.splits,
            members=snapshot.members,
            policy=self.settings.reimbursement_policy,
        )

    def suggest_settlements(
        self, snapshot: HouseholdSnapshot | None = None
    ) -> list[SettlementSuggestion]:
        """Suggest transfers that settle everyone up."""
        snapshot = snapshot or self.local_snapshot()
        balances = self.compute_balances(snapshot)
        suggestions = plan_settlements(balances, members=snapshot.members)
        logger.info(f"Suggested {len(suggestions)} settlement(s)")
        return suggestions

    def health_check(
        self, snapshot: HouseholdSnapshot | None = None
    ) -> tuple[BalanceHealthCheck, list[ProblematicTransaction]]:
        """Check that balances sum to zero and find expenses that don't add up."""
        snapshot = snapshot or self.local_snapshot()
        health = check_balance_health(self.compute_balances(snapshot))
        problems = find_problematic_transactions(snapshot.transactions, snapshot.splits)
        return health, problems

    def cross_check_with_backend(
        self,
    ) -> tuple[list[MemberBalance], list[BalanceDiscrepancy]]:
        """
        Compare the local projection of the backend's history with its balances.

        Returns:
            Tuple of (locally computed balances, discrepancies)
        """
        snapshot, backend_balances = self.fetch_backend_snapshot()
        local = self.compute_balances(snapshot)
        return local, cross_check_balances(local, backend_balances)

    def period_totals(
        self,
        start: date | None = None,
        end: date | None = None,
        members: list[str] | None = None,
    ) -> PeriodTotals:
        """
        Total effective expenses and income between two dates (inclusive).

        Args:
            start: First day, or None for no lower bound
            end: Last day, or None for no upper bound
            members: Member ids or names; when given only their portion of
                each expense and the income they received is counted
        """
        transactions = [
            t
            for t in self.db.get_transactions()
            if (start is None or t.date >= start) and (end is None or t.date <= end)
        ]
        if not members:
            return calculate_period_totals(transactions)

        member_ids = [self.resolve_member(ref).id for ref in members]
        return calculate_period_totals(
            transactions, self.db.get_all_splits(), member_ids
        )

    # ========================================================================
    # Recording transactions
    # ========================================================================

    def _participants(self, participant_refs: list[str] | None) -> list[str]:
        """Resolve explicit participants, or default to everyone who can take part."""
        if participant_refs:
            return [self.resolve_member(ref).id for ref in participant_refs]

        members = self.db.get_members()
        balances = self.compute_balances()
        participants = participants_for_new_allocation(members, balances)
        if not participants:
            raise HouseholdSplitError("The household has no active members")
        return participants

    def record_expense(
        self,
        amount: Decimal,
        description: str,
        split_mode: SplitMode,
        paid_by_mode: PaidByMode,
        participants: list[str] | None = None,
        on: date | None = None,
        category_id: str | None = None,
    ) -> tuple[Transaction, list[MemberSplit]]:
        """
        Record an expense with its split rows.

        Args:
            amount: Expense amount
            description: What it was for
            split_mode: Who owes what
            paid_by_mode: Who paid what
            participants: Member ids or names to split across (defaults to
                active members plus inactive members with open balances)
            on: Transaction date (defaults to today)
            category_id: Optional category

        Returns:
            Tuple of (transaction, split rows)

        Raises:
            AmountMismatchError: If a custom side doesn't add up
            InvalidArgumentError: If the modes don't fit the participants
        """
        transaction_id = new_id()
        participant_ids = self._participants(participants)
        split_mode = normalize_split_mode(split_mode)

        rows = build_split(
            amount,
            participant_ids,
            split_mode,
            paid_by_mode,
            transaction_id=transaction_id,
        )
        validate_for_submission(rows, amount, split_mode, paid_by_mode)

        transaction = Transaction(
            id=transaction_id,
            transaction_type="expense",
            amount=amount,
            date=on or date.today(),
            description=description,
            payer_id=_single_payer(paid_by_mode),
            category_id=category_id,
            split_type=persisted_split_type(split_mode),
            paid_by_type=persisted_paid_by_type(paid_by_mode),
        )
        self.db.save_transaction(transaction, rows)
        logger.info(f"Recorded expense {transaction.id}: {description} ${amount}")
        return transaction, rows

    def load_for_editing(
        self, transaction_id: str
    ) -> tuple[Transaction, list[MemberSplit], RecognizedPattern]:
        """
        Load a transaction with its rows and the split modes they represent.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
        """
        transaction = self.get_transaction(transaction_id)
        rows = self.db.get_splits(transaction_id)
        pattern = recognize_split_pattern(rows, transaction.amount)
        return transaction, rows, pattern

    def update_expense(
        self,
        transaction_id: str,
        amount: Decimal | None = None,
        description: str | None = None,
        split_mode: SplitMode | None = None,
        paid_by_mode: PaidByMode | None = None,
    ) -> tuple[Transaction, list[MemberSplit]]:
        """
        Change an expense and recompute its rows.

        Modes that aren't given are carried over: stored equal and shared
        types stay that way, anything else is recognized from the stored rows
        (or read from the stored type when there are no rows). Changing only
        the amount rescales an equal split equally and a custom split by its
        percentages.

        Members named by a new mode join the stored participants, so an edit
        can bring someone new into the split.
        """
        transaction, rows, pattern = self.load_for_editing(transaction_id)
        if transaction.transaction_type != "expense":
            raise HouseholdSplitError(f"Transaction {transaction_id} is not an expense")

        new_amount = amount if amount is not None else transaction.amount
        amount_changed = amount is not None
        split_mode = normalize_split_mode(
            split_mode or _carried_split_mode(transaction, pattern, amount_changed)
        )
        paid_by_mode = paid_by_mode or _carried_paid_by_mode(
            transaction, pattern, amount_changed
        )

        participant_ids = [row.member_id for row in rows] or self._participants(None)
        participant_ids = list(
            dict.fromkeys(
                participant_ids
                + _mode_member_ids(split_mode)
                + _mode_member_ids(paid_by_mode)
            )
        )
        new_rows = build_split(
            new_amount,
            participant_ids,
            split_mode,
            paid_by_mode,
            prior_rows=rows,
            transaction_id=transaction.id,
        )
        validate_for_submission(new_rows, new_amount, split_mode, paid_by_mode)

        updated = transaction.model_copy(
            update={
                "amount": new_amount,
                "description": (
                    transaction.description if description is None else description
                ),
                "payer_id": _single_payer(paid_by_mode),
                "split_type": persisted_split_type(split_mode),
                "paid_by_type": persisted_paid_by_type(paid_by_mode),
            }
        )
        self.db.save_transaction(updated, new_rows)
        logger.info(f"Updated expense {transaction.id}")
        return updated, new_rows

    def record_income(
        self,
        amount: Decimal,
        description: str,
        received_by: str,
        on: date | None = None,
    ) -> Transaction:
        """Record income received by a member. Doesn't affect balances."""
        member = self.resolve_member(received_by)
        transaction = Transaction(
            id=new_id(),
            transaction_type="income",
            amount=amount,
            date=on or date.today(),
            description=description,
            payer_id=member.id,
        )
        self.db.save_transaction(transaction)
        logger.info(
            f"Recorded income {transaction.id}: ${amount} to {member.display_name}"
        )
        return transaction

    def record_settlement(
        self, amount: Decimal, from_member: str, to_member: str, on: date | None = None
    ) -> Transaction:
        """Record a direct payment from one member to another."""
        payer = self.resolve_member(from_member)
        payee = self.resolve_member(to_member)
        if payer.id == payee.id:
            raise HouseholdSplitError("A member can't settle up with themselves")

        transaction = Transaction(
            id=new_id(),
            transaction_type="settlement",
            amount=amount,
            date=on or date.today(),
            description=f"{payer.display_name} paid {payee.display_name}",
            payer_id=payer.id,
            payee_id=payee.id,
        )
        self.db.save_transaction(transaction)
        logger.info(
            f"Recorded settlement {transaction.id}: {payer.display_name} -> "
            f"{payee.display_name} ${amount}"
        )
        return transaction

    def record_reimbursement(
        self,
        amount: Decimal,
        description: str,
        received_by: str,
        expense_id: str | None = None,
        on: date | None = None,
        transaction_id: str | None = None,
    ) -> Transaction:
        """
        Record (or re-save) a reimbursement, optionally linked to an expense.

        A linked reimbursement can't exceed what remains on the expense. When
        `transaction_id` refers to an existing reimbursement being edited, its
        own previous amount doesn't count against the remaining amount.

        Raises:
            ExceedsRemainingError: If the amount is more than what remains
            TransactionNotFoundError: If the linked expense or the edited
                reimbursement doesn't exist
            HouseholdSplitError: If `transaction_id` isn't a reimbursement
        """
        member = self.resolve_member(received_by)

        if transaction_id:
            if transaction_id == expense_id:
                raise HouseholdSplitError("A reimbursement can't reimburse itself")
            existing = self.get_transaction(transaction_id)
            if existing.transaction_type != "reimbursement":
                raise HouseholdSplitError(
                    f"Transaction {transaction_id} is a "
                    f"{existing.transaction_type}, not a reimbursement"
                )

        if expense_id:
            expense = self.get_transaction(expense_id)
            if expense.transaction_type != "expense":
                raise HouseholdSplitError(
                    f"Transaction {expense_id} is a {expense.transaction_type}, "
                    f"only expenses can be reimbursed"
                )
            remaining = remaining_reimbursable(
                expense,
                self.db.get_transactions(),
                exclude_transaction_id=transaction_id,
            )
            validate_reimbursement(amount, remaining)

        transaction = Transaction(
            id=transaction_id or new_id(),
            transaction_type="reimbursement",
            amount=amount,
            date=on or date.today(),
            description=description,
            payer_id=member.id,
            linked_expense_id=expense_id,
        )
        self.db.save_transaction(transaction)
        logger.info(
            f"Recorded reimbursement {transaction.id}: ${amount} to "
            f"{member.display_name}"
            + (f" against expense {expense_id}" if expense_id else "")
        )
        return transaction

    def remaining_reimbursable(self, expense_id: str) -> Decimal:
        """Get how much of an expense can still be reimbursed."""
        expense = self.get_transaction(expense_id)
        return remaining_reimbursable(expense, self.db.get_transactions())

    def get_transaction(self, transaction_id: str) -> Transaction:
        """Get a transaction, raising if it doesn't exist."""
        transaction = self.db.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"No transaction with id {transaction_id}")
        return transaction

    def delete_transaction(self, transaction_id: str):
        """Delete a transaction. Expenses with reimbursements can't be deleted."""
        transaction = self.get_transaction(transaction_id)
        linked = [
            t.id
            for t in self.db.get_transactions()
            if t.linked_expense_id == transaction.id
        ]
        if linked:
            raise HouseholdSplitError(
                f"Expense {transaction_id} has {len(linked)} linked "
                f"reimbursement(s); delete those first"
            )
        self.db.delete_transaction(transaction_id)
        logger.info(f"Deleted transaction {transaction_id}")


def _carried_split_mode(
    transaction: Transaction, pattern: RecognizedPattern, amount_changed: bool
) -> SplitMode:
    """The split mode an edit keeps when it isn't given a new one."""
    if transaction.split_type == "equal":
        return EqualSplit()
    return _prior_mode(pattern.split_mode, amount_changed) or split_mode_from_persisted(
        transaction.split_type
    )


def _carried_paid_by_mode(
    transaction: Transaction, pattern: RecognizedPattern, amount_changed: bool
) -> PaidByMode:
    """The paid-by mode an edit keeps when it isn't given a new one."""
    if transaction.paid_by_type == "shared":
        return SharedPayment()
    return _prior_mode(pattern.paid_by_mode, amount_changed) or (
        paid_by_mode_from_persisted(transaction.paid_by_type, transaction.payer_id)
    )


def _prior_mode(mode, amount_changed: bool):
    """
    Pick the recognized mode to carry into an edit.

    A recognized custom split holds the stored amounts verbatim. If the amount
    is changing those no longer fit, so drop them and let the prior rows'
    percentages rescale instead.
    """
    if mode is None:
        return None
    if amount_changed and mode.kind == "custom":
        return mode.model_copy(update={"amounts": None})
    return mode


def _mode_member_ids(mode: SplitMode | PaidByMode) -> list[str]:
    """Member ids a split or paid-by mode names explicitly."""
    if isinstance(mode, (MemberOnlySplit, SinglePayment)):
        return [mode.member_id]
    if isinstance(mode, (EqualSubsetSplit, EqualSubsetPayment)):
        return list(mode.member_ids)
    if isinstance(mode, (CustomSplit, LegacyPayerOnlySplit, CustomPayment)):
        return list(mode.amounts or mode.percentages or {})
    return []


def _single_payer(paid_by_mode: PaidByMode) -> str | None:
    """The payer to store on the transaction, when exactly one member paid."""
    if isinstance(paid_by_mode, SinglePayment):
        return paid_by_mode.member_id
    return None
