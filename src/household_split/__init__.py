"""household-split - Split shared household expenses and settle up."""

__version__ = "0.1.0"

from .allocator import allocate_equal_shares, allocate_proportional
from .balances import aggregate_balances, check_balance_health
from .config import Settings, load_settings
from .db import Database
from .models import (
    CustomPayment,
    CustomSplit,
    EqualSplit,
    EqualSubsetPayment,
    EqualSubsetSplit,
    Member,
    MemberBalance,
    MemberOnlySplit,
    MemberSplit,
    RecognizedPattern,
    SettlementSuggestion,
    SharedPayment,
    SinglePayment,
    Transaction,
)
from .recognizer import recognize_split_pattern
from .reimbursements import remaining_reimbursable, validate_reimbursement
from .service import LedgerService
from .settlements import plan_settlements
from .splits import build_split, validate_split

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "LedgerService",
    "CustomPayment",
    "CustomSplit",
    "EqualSplit",
    "EqualSubsetPayment",
    "EqualSubsetSplit",
    "Member",
    "MemberBalance",
    "MemberOnlySplit",
    "MemberSplit",
    "RecognizedPattern",
    "SettlementSuggestion",
    "SharedPayment",
    "SinglePayment",
    "Transaction",
    "allocate_equal_shares",
    "allocate_proportional",
    "aggregate_balances",
    "check_balance_health",
    "build_split",
    "validate_split",
    "recognize_split_pattern",
    "remaining_reimbursable",
    "validate_reimbursement",
    "plan_settlements",
]
