"""
Accounting Models (General Ledger)

Double-entry bookkeeping: chart of accounts, fiscal periods, journal entries
with their lines, and per-period account balance snapshots.
"""
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text, Boolean,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ledger.core.status_config import EntryStatus, LineDirection, NormalBalance
from ledger.db.base import Base


class Account(Base):
    """Chart of accounts entry, classified by its 4-digit code"""
    __tablename__ = "accounts"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Account Identification
    code = Column(String(4), unique=True, nullable=False, index=True)  # "1101", "4000"
    name = Column(String(100), nullable=False)

    # Classification (derived from code range)
    # account_type: asset, liability, equity, revenue, cogs, expense
    account_type = Column(String(20), nullable=False, index=True)
    normal_balance = Column(String(10), nullable=False)  # debit | credit
    category = Column(String(40), nullable=False)

    # Header accounts aggregate children; only detail accounts take postings
    is_detail = Column(Boolean, nullable=False, default=True)

    # System accounts can't be deleted, deactivated or re-coded
    is_system = Column(Boolean, nullable=False, default=False)

    # Values: active, inactive, archived
    status = Column(String(20), nullable=False, default="active", index=True)

    # Hierarchical structure for sub-accounts
    parent_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)

    description = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    parent = relationship("Account", remote_side=[id], backref="children")
    journal_lines = relationship("JournalLine", back_populates="account")

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    def __repr__(self):
        return f"<Account {self.code}: {self.name}>"


class FiscalPeriod(Base):
    """Monthly fiscal period with open/closed/locked lifecycle"""
    __tablename__ = "fiscal_periods"
    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_fiscal_period_year_month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_fiscal_period_month"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Period Identification
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False)  # 1-12

    # Date Range
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Values: open, closed, locked
    status = Column(String(20), nullable=False, default="open", index=True)

    # Closing audit trail
    closed_by = Column(String(100), nullable=True)
    closed_at = Column(DateTime, nullable=True)

    # Reopen audit trail
    reopened_by = Column(String(100), nullable=True)
    reopened_at = Column(DateTime, nullable=True)
    reopen_reason = Column(Text, nullable=True)

    # Lock audit trail
    locked_by = Column(String(100), nullable=True)
    locked_at = Column(DateTime, nullable=True)

    # Optimistic lock: bumped on every transition
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    def __repr__(self):
        return f"<FiscalPeriod {self.label} ({self.status})>"


class JournalEntry(Base):
    """Journal entry header with audit trail"""
    __tablename__ = "journal_entries"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Entry Identification
    entry_number = Column(String(20), unique=True, nullable=False, index=True)  # "JE-202601-0001"
    entry_date = Column(Date, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Values: manual, system, recurring, adjusting, closing
    entry_type = Column(String(20), nullable=False, default="manual")

    # Status workflow
    # draft: Can be edited or deleted, not included in balances
    # posted: Locked, included in balances
    # voided: Cancelled with reason, excluded from balances
    status = Column(String(20), nullable=False, default="draft", index=True)

    # Fiscal period the entry number is scoped to (derived from entry_date)
    fiscal_year = Column(Integer, nullable=False, index=True)
    fiscal_month = Column(Integer, nullable=False, index=True)

    # Source tracking (for entries generated by other subsystems)
    # source_service: order-service, depreciation, reconciliation, ...
    source_service = Column(String(50), nullable=True, index=True)
    source_reference = Column(String(100), nullable=True, index=True)

    # Audit trail - Creation
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Audit trail - Posting
    posted_by = Column(String(100), nullable=True)
    posted_at = Column(DateTime, nullable=True)

    # Audit trail - Voiding
    voided_by = Column(String(100), nullable=True)
    voided_at = Column(DateTime, nullable=True)
    void_reason = Column(Text, nullable=True)

    # Relationships
    lines = relationship(
        "JournalLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_order",
    )

    @property
    def total_debits(self) -> Decimal:
        """Sum of all debit-direction line amounts"""
        return sum(
            (line.amount for line in self.lines if line.direction == LineDirection.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        """Sum of all credit-direction line amounts"""
        return sum(
            (line.amount for line in self.lines if line.direction == LineDirection.CREDIT),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        """Check if total debits equal total credits"""
        return self.total_debits == self.total_credits

    @property
    def is_editable(self) -> bool:
        """Check if entry can be edited (only drafts)"""
        return self.status == EntryStatus.DRAFT

    def __repr__(self):
        return f"<JournalEntry {self.entry_number} - {self.status}>"


class JournalLine(Base):
    """Individual debit or credit line within a journal entry"""
    __tablename__ = "journal_lines"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_journal_line_amount_positive"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Foreign Keys
    journal_entry_id = Column(
        Integer,
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id = Column(
        Integer,
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    # debit | credit, amount always positive
    direction = Column(String(10), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)

    # Line details
    memo = Column(String(255), nullable=True)
    line_order = Column(Integer, nullable=False, default=0)

    # Relationships
    journal_entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("Account", back_populates="journal_lines")

    def __repr__(self):
        return f"<JournalLine {self.direction} {self.amount} acct={self.account_id}>"


class AccountBalance(Base):
    """Per-period balance snapshot, written when a period closes or is recalculated"""
    __tablename__ = "account_balances"
    __table_args__ = (
        UniqueConstraint("account_id", "fiscal_year", "fiscal_month", name="uq_account_balance_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    fiscal_year = Column(Integer, nullable=False, index=True)
    fiscal_month = Column(Integer, nullable=False)

    opening_balance = Column(Numeric(18, 2), nullable=False, default=0)
    debit_total = Column(Numeric(18, 2), nullable=False, default=0)
    credit_total = Column(Numeric(18, 2), nullable=False, default=0)
    closing_balance = Column(Numeric(18, 2), nullable=False, default=0)

    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    account = relationship("Account")

    def __repr__(self):
        return f"<AccountBalance acct={self.account_id} {self.fiscal_year}-{self.fiscal_month:02d}: {self.closing_balance}>"
