"""
Accounting Pydantic Schemas

Command and result schemas for accounts, journal entries, fiscal periods and
balances. Business rules (balance, line counts, account postability) are
enforced by the services, not here.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime, date
from decimal import Decimal


# ============================================================================
# Account Schemas (Chart of Accounts)
# ============================================================================

class AccountClassification(BaseModel):
    """Type, normal side and category derived from an account code"""
    account_type: str
    normal_balance: str
    category: str
    statement_type: str


class AccountCreate(BaseModel):
    """Create a new account"""
    code: str = Field(..., max_length=4, description="4-digit account code (e.g., 1101, 4000)")
    name: str = Field(..., max_length=100, description="Account name")
    is_detail: bool = Field(default=True, description="Header accounts only aggregate children")
    is_system: bool = Field(default=False, description="System accounts cannot be deleted or re-coded")
    parent_id: Optional[int] = Field(None, description="Parent header account ID")
    description: Optional[str] = None


class AccountUpdate(BaseModel):
    """Update an existing account"""
    code: Optional[str] = Field(None, max_length=4)
    name: Optional[str] = Field(None, max_length=100)
    is_detail: Optional[bool] = None
    parent_id: Optional[int] = None
    description: Optional[str] = None


class AccountResponse(BaseModel):
    """Account response"""
    id: int
    code: str
    name: str
    account_type: str
    normal_balance: str
    category: str
    is_detail: bool
    is_system: bool
    status: str
    parent_id: Optional[int]

    model_config = {"from_attributes": True}


# ============================================================================
# Journal Entry Schemas
# ============================================================================

class JournalLineInput(BaseModel):
    """One debit or credit line"""
    account_id: int = Field(..., description="Detail account ID")
    direction: Literal["debit", "credit"]
    amount: Decimal = Field(..., description="Positive amount")
    memo: Optional[str] = Field(None, max_length=255)


class JournalEntryCreate(BaseModel):
    """Create a journal entry (draft unless post_immediately)"""
    entry_date: date
    description: str = Field(..., max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    entry_type: Literal["manual", "system", "recurring", "adjusting", "closing"] = "manual"
    source_service: Optional[str] = Field(None, max_length=50)
    source_reference: Optional[str] = Field(None, max_length=100)
    lines: List[JournalLineInput] = Field(default_factory=list)
    post_immediately: bool = False


class JournalEntryUpdate(BaseModel):
    """Replace editable fields of a draft entry"""
    entry_date: Optional[date] = None
    description: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    lines: Optional[List[JournalLineInput]] = None


class JournalLineResponse(BaseModel):
    id: int
    account_id: int
    direction: str
    amount: Decimal
    memo: Optional[str]
    line_order: int

    model_config = {"from_attributes": True}


class JournalEntryResponse(BaseModel):
    """Journal entry with lines"""
    id: int
    entry_number: str
    entry_date: date
    description: str
    reference: Optional[str]
    entry_type: str
    status: str
    fiscal_year: int
    fiscal_month: int
    source_service: Optional[str]
    source_reference: Optional[str]
    created_by: Optional[str]
    posted_by: Optional[str]
    posted_at: Optional[datetime]
    voided_by: Optional[str]
    voided_at: Optional[datetime]
    void_reason: Optional[str]
    total_debits: Decimal
    total_credits: Decimal
    lines: List[JournalLineResponse]

    model_config = {"from_attributes": True}


# ============================================================================
# Fiscal Period Schemas
# ============================================================================

class FiscalPeriodResponse(BaseModel):
    """Fiscal period response"""
    id: int
    year: int
    month: int
    start_date: date
    end_date: date
    status: str
    closed_by: Optional[str]
    closed_at: Optional[datetime]
    reopened_by: Optional[str]
    reopen_reason: Optional[str]
    version: int

    model_config = {"from_attributes": True}


class CloseChecklist(BaseModel):
    """Pre-close checks for a fiscal period"""
    period_id: int
    previous_period_closed: bool
    draft_entry_count: int
    trial_balance_balanced: bool
    blockers: List[str] = Field(default_factory=list)

    @property
    def can_close(self) -> bool:
        return not self.blockers


# ============================================================================
# Balance Schemas
# ============================================================================

class PeriodBalance(BaseModel):
    """One account's balance for a fiscal period"""
    account_id: int
    account_code: str
    account_name: str
    normal_balance: str
    opening_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal
    closing_balance: Decimal
    source: Literal["snapshot", "live"]


class TrialBalanceLine(BaseModel):
    account_id: int
    account_code: str
    account_name: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")


class TrialBalance(BaseModel):
    """Trial balance with balanced flag and absolute difference"""
    fiscal_year: int
    fiscal_month: int
    lines: List[TrialBalanceLine]
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    is_balanced: bool
