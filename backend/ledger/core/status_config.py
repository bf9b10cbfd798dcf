"""Status Configuration and Transition Rules

This module defines valid status values and allowed transitions for every
ledger lifecycle: accounts, journal entries, fiscal periods, bank
reconciliations, bank transactions, fixed assets, depreciation runs and
maintenance records. Services call validate_transition() before mutating a
status column.
"""
from enum import Enum
from typing import Dict, List, Set

from ledger.exceptions import InvalidStateError


# =============================================================================
# Chart of Accounts
# =============================================================================

class AccountType(str, Enum):
    """Account type derived from the code range"""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    COGS = "cogs"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Side on which an account naturally increases"""
    DEBIT = "debit"
    CREDIT = "credit"


class AccountCategory(str, Enum):
    """Sub-classification inside each type band"""
    CURRENT_ASSET = "current_asset"
    FIXED_ASSET = "fixed_asset"
    OTHER_NON_CURRENT_ASSET = "other_non_current_asset"
    CURRENT_LIABILITY = "current_liability"
    LONG_TERM_LIABILITY = "long_term_liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    OTHER_INCOME = "other_income"
    COGS = "cogs"
    OPERATING_EXPENSE = "operating_expense"
    OTHER_INCOME_EXPENSE = "other_income_expense"
    TAX = "tax"


class StatementType(str, Enum):
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


ACCOUNT_TRANSITIONS: Dict[str, Set[str]] = {
    AccountStatus.ACTIVE: {AccountStatus.INACTIVE},
    AccountStatus.INACTIVE: {AccountStatus.ACTIVE, AccountStatus.ARCHIVED},
    AccountStatus.ARCHIVED: set(),  # Terminal
}


# =============================================================================
# Journal Entries
# =============================================================================

class EntryStatus(str, Enum):
    """Journal entry lifecycle"""
    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


class EntryType(str, Enum):
    MANUAL = "manual"
    SYSTEM = "system"
    RECURRING = "recurring"
    ADJUSTING = "adjusting"
    CLOSING = "closing"


class LineDirection(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


ENTRY_TRANSITIONS: Dict[str, Set[str]] = {
    EntryStatus.DRAFT: {EntryStatus.POSTED},
    EntryStatus.POSTED: {EntryStatus.VOIDED},
    EntryStatus.VOIDED: set(),  # Terminal - a reversal is a new entry
}


# =============================================================================
# Fiscal Periods
# =============================================================================

class PeriodStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"


PERIOD_TRANSITIONS: Dict[str, Set[str]] = {
    PeriodStatus.OPEN: {PeriodStatus.CLOSED},
    PeriodStatus.CLOSED: {PeriodStatus.OPEN, PeriodStatus.LOCKED},
    PeriodStatus.LOCKED: set(),  # Administrative unlock is not modeled
}


# =============================================================================
# Banking
# =============================================================================

class BankAccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CLOSED = "closed"


BANK_ACCOUNT_TRANSITIONS: Dict[str, Set[str]] = {
    BankAccountStatus.ACTIVE: {BankAccountStatus.INACTIVE, BankAccountStatus.CLOSED},
    BankAccountStatus.INACTIVE: {BankAccountStatus.ACTIVE, BankAccountStatus.CLOSED},
    BankAccountStatus.CLOSED: set(),
}


class MatchStatus(str, Enum):
    """Bank transaction match state"""
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    EXCLUDED = "excluded"


MATCH_TRANSITIONS: Dict[str, Set[str]] = {
    MatchStatus.UNMATCHED: {MatchStatus.MATCHED, MatchStatus.EXCLUDED},
    MatchStatus.MATCHED: {MatchStatus.UNMATCHED},
    MatchStatus.EXCLUDED: {MatchStatus.UNMATCHED},
}


class ReconciliationStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"


RECONCILIATION_TRANSITIONS: Dict[str, Set[str]] = {
    ReconciliationStatus.DRAFT: {ReconciliationStatus.IN_PROGRESS},
    ReconciliationStatus.IN_PROGRESS: {ReconciliationStatus.COMPLETED},
    ReconciliationStatus.COMPLETED: {ReconciliationStatus.APPROVED},
    ReconciliationStatus.APPROVED: set(),  # Terminal
}


class ReconcilingItemType(str, Enum):
    """
    Reconciling item types.

    Bank side: outstanding_check (-), deposit_in_transit (+)
    Book side: bank_fee (-), bank_interest (+), nsf_check (-), adjustment (signed)
    """
    OUTSTANDING_CHECK = "outstanding_check"
    DEPOSIT_IN_TRANSIT = "deposit_in_transit"
    BANK_FEE = "bank_fee"
    BANK_INTEREST = "bank_interest"
    NSF_CHECK = "nsf_check"
    ADJUSTMENT = "adjustment"


BANK_SIDE_ITEM_TYPES: Set[str] = {
    ReconcilingItemType.OUTSTANDING_CHECK,
    ReconcilingItemType.DEPOSIT_IN_TRANSIT,
}


class ReconcilingItemStatus(str, Enum):
    PENDING = "pending"
    CLEARED = "cleared"
    VOIDED = "voided"


# =============================================================================
# Fixed Assets
# =============================================================================

class AssetStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    FULLY_DEPRECIATED = "fully_depreciated"
    DISPOSED = "disposed"
    WRITTEN_OFF = "written_off"


ASSET_TRANSITIONS: Dict[str, Set[str]] = {
    AssetStatus.DRAFT: {AssetStatus.ACTIVE},
    AssetStatus.ACTIVE: {
        AssetStatus.FULLY_DEPRECIATED,
        AssetStatus.DISPOSED,
        AssetStatus.WRITTEN_OFF,
    },
    AssetStatus.FULLY_DEPRECIATED: {
        AssetStatus.DISPOSED,
        AssetStatus.WRITTEN_OFF,
    },
    AssetStatus.DISPOSED: set(),  # Terminal
    AssetStatus.WRITTEN_OFF: set(),  # Terminal
}


class DepreciationMethod(str, Enum):
    STRAIGHT_LINE = "straight_line"
    DECLINING_BALANCE = "declining_balance"


class AcquisitionMethod(str, Enum):
    PURCHASE = "purchase"
    LEASE = "lease"
    DONATION = "donation"
    TRANSFER = "transfer"
    CONSTRUCTION = "construction"


class DisposalMethod(str, Enum):
    SALE = "sale"
    SCRAP = "scrap"
    DONATION = "donation"
    TRADE_IN = "trade_in"
    DESTRUCTION = "destruction"


class MovementType(str, Enum):
    ACQUISITION = "acquisition"
    DISPOSAL = "disposal"
    WRITE_OFF = "write_off"
    TRANSFER = "transfer"


class DepreciationRunStatus(str, Enum):
    CALCULATED = "calculated"
    POSTED = "posted"
    REVERSED = "reversed"


DEPRECIATION_RUN_TRANSITIONS: Dict[str, Set[str]] = {
    DepreciationRunStatus.CALCULATED: {DepreciationRunStatus.POSTED},
    DepreciationRunStatus.POSTED: {DepreciationRunStatus.REVERSED},
    DepreciationRunStatus.REVERSED: set(),
}


class MaintenanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


MAINTENANCE_TRANSITIONS: Dict[str, Set[str]] = {
    MaintenanceStatus.SCHEDULED: {
        MaintenanceStatus.IN_PROGRESS,
        MaintenanceStatus.COMPLETED,
        MaintenanceStatus.CANCELLED,
    },
    MaintenanceStatus.IN_PROGRESS: {
        MaintenanceStatus.COMPLETED,
        MaintenanceStatus.CANCELLED,
    },
    MaintenanceStatus.COMPLETED: set(),
    MaintenanceStatus.CANCELLED: set(),
}


# =============================================================================
# Processed Events
# =============================================================================

class ProcessedEventStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================================
# Transition Helpers
# =============================================================================

def get_allowed_transitions(transitions: Dict[str, Set[str]], current_status: str) -> List[str]:
    """Get sorted list of allowed next statuses"""
    return sorted(s.value if isinstance(s, Enum) else s for s in transitions.get(current_status, set()))


def is_valid_transition(transitions: Dict[str, Set[str]], current_status: str, new_status: str) -> bool:
    """Check if a status transition is allowed by the given table"""
    return new_status in transitions.get(current_status, set())


def validate_transition(
    entity: str,
    transitions: Dict[str, Set[str]],
    current_status: str,
    new_status: str,
) -> None:
    """
    Validate a status transition, raising InvalidStateError if not allowed.

    Args:
        entity: Human-readable entity label, e.g. "Journal entry JE-202601-0001"
        transitions: One of the *_TRANSITIONS tables above
        current_status: Stored status value
        new_status: Requested status value
    """
    if not is_valid_transition(transitions, current_status, new_status):
        allowed = get_allowed_transitions(transitions, current_status)
        current = current_status.value if isinstance(current_status, Enum) else current_status
        requested = new_status.value if isinstance(new_status, Enum) else new_status
        raise InvalidStateError(
            f"{entity} cannot transition from '{current}' to '{requested}'",
            current_state=current,
            allowed_states=allowed,
        )
