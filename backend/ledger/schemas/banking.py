"""
Banking Pydantic Schemas

Bank accounts, statement imports, reconciliations and auto-match results.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date
from decimal import Decimal


# ============================================================================
# Bank Account / Transaction Schemas
# ============================================================================

class BankAccountCreate(BaseModel):
    account_id: int = Field(..., description="GL cash account mirrored by this bank account")
    bank_name: str = Field(..., max_length=100)
    account_number: str = Field(..., max_length=50)
    account_name: Optional[str] = Field(None, max_length=100)


class BankTransactionImport(BaseModel):
    """One statement line to import"""
    transaction_date: date
    description: str = Field(..., max_length=255)
    amount: Decimal = Field(..., description="Signed: positive deposit, negative withdrawal")
    reference: Optional[str] = Field(None, max_length=100)


class ImportResult(BaseModel):
    imported: int = 0
    duplicates: int = 0
    transaction_ids: List[int] = Field(default_factory=list)


# ============================================================================
# Reconciliation Schemas
# ============================================================================

class ReconciliationCreate(BaseModel):
    bank_account_id: int
    fiscal_year: int
    fiscal_month: int = Field(..., ge=1, le=12)
    statement_date: Optional[date] = None
    statement_ending_balance: Decimal
    book_ending_balance: Decimal
    notes: Optional[str] = None


ReconcilingItemKind = Literal[
    "outstanding_check",
    "deposit_in_transit",
    "bank_fee",
    "bank_interest",
    "nsf_check",
    "adjustment",
]


class ReconcilingItemCreate(BaseModel):
    item_type: ReconcilingItemKind
    description: str = Field(..., max_length=255)
    amount: Decimal
    transaction_date: date
    reference: Optional[str] = Field(None, max_length=100)
    requires_journal_entry: Optional[bool] = Field(
        None, description="Defaults to True for book-side items"
    )


class AdjustedBalances(BaseModel):
    """Result of calculating adjusted bank and book balances"""
    statement_ending_balance: Decimal
    book_ending_balance: Decimal
    adjusted_bank_balance: Decimal
    adjusted_book_balance: Decimal
    difference: Decimal
    is_balanced: bool


class ReconciliationValidation(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class AdjustingEntryAccounts(BaseModel):
    """Offset accounts for generated adjusting entries"""
    bank_fee_expense_account_id: int
    interest_income_account_id: int
    nsf_receivable_account_id: Optional[int] = None


# ============================================================================
# Matching Schemas
# ============================================================================

class MatchCandidate(BaseModel):
    """Journal line offered to the auto-matcher"""
    journal_line_id: int
    entry_date: date
    direction: Literal["debit", "credit"]
    amount: Decimal
    entry_number: Optional[str] = None
    reference: Optional[str] = None


class ProposedMatch(BaseModel):
    bank_transaction_id: int
    journal_line_id: int
    amount_difference: Decimal
    days_apart: int


class AutoMatchResult(BaseModel):
    """Proposed matches; nothing is persisted until apply_matches()"""
    matches: List[ProposedMatch] = Field(default_factory=list)
    matched: int = 0
    unmatched: int = 0
    skipped: int = 0
