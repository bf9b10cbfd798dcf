"""
Banking Models

Bank accounts linked to GL cash accounts, imported statement transactions,
monthly reconciliations and their reconciling items.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text, Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ledger.db.base import Base


class BankAccount(Base):
    """Bank account mapped to a GL cash account"""
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)

    # GL cash account that mirrors this bank account in the books
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    bank_name = Column(String(100), nullable=False)
    account_number = Column(String(50), nullable=False, unique=True)
    account_name = Column(String(100), nullable=True)

    # Values: active, inactive, closed
    status = Column(String(20), nullable=False, default="active")

    # Updated on reconciliation approval
    last_reconciled_date = Column(Date, nullable=True)
    last_reconciled_balance = Column(Numeric(18, 2), nullable=True)

    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    account = relationship("Account")
    transactions = relationship("BankTransaction", back_populates="bank_account")

    def __repr__(self):
        return f"<BankAccount {self.bank_name} {self.account_number} ({self.status})>"


class BankTransaction(Base):
    """Single line from an imported bank statement"""
    __tablename__ = "bank_transactions"
    __table_args__ = (
        UniqueConstraint("bank_account_id", "fingerprint", name="uq_bank_transaction_fingerprint"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False, index=True)

    transaction_date = Column(Date, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    reference = Column(String(100), nullable=True)

    # Signed: positive = deposit, negative = withdrawal
    amount = Column(Numeric(18, 2), nullable=False)

    # Hash of bank account, date, amount and reference for duplicate detection
    fingerprint = Column(String(64), nullable=False)

    # Values: unmatched, matched, excluded
    match_status = Column(String(20), nullable=False, default="unmatched", index=True)
    matched_journal_line_id = Column(Integer, ForeignKey("journal_lines.id"), nullable=True)
    matched_by = Column(String(100), nullable=True)
    matched_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    bank_account = relationship("BankAccount", back_populates="transactions")
    matched_journal_line = relationship("JournalLine")

    def __repr__(self):
        return f"<BankTransaction {self.transaction_date} {self.amount} ({self.match_status})>"


class BankReconciliation(Base):
    """Monthly reconciliation of one bank account"""
    __tablename__ = "bank_reconciliations"
    __table_args__ = (
        UniqueConstraint(
            "bank_account_id", "fiscal_year", "fiscal_month",
            name="uq_bank_reconciliation_period",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False, index=True)
    fiscal_year = Column(Integer, nullable=False)
    fiscal_month = Column(Integer, nullable=False)

    statement_date = Column(Date, nullable=False)
    statement_ending_balance = Column(Numeric(18, 2), nullable=False)
    book_ending_balance = Column(Numeric(18, 2), nullable=False)

    # Null until calculate_adjusted_balances runs
    adjusted_bank_balance = Column(Numeric(18, 2), nullable=True)
    adjusted_book_balance = Column(Numeric(18, 2), nullable=True)

    # Values: draft, in_progress, completed, approved
    status = Column(String(20), nullable=False, default="draft", index=True)

    started_by = Column(String(100), nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_by = Column(String(100), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    bank_account = relationship("BankAccount")
    items = relationship(
        "ReconcilingItem",
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        order_by="ReconcilingItem.id",
    )

    def __repr__(self):
        return (
            f"<BankReconciliation bank={self.bank_account_id} "
            f"{self.fiscal_year}-{self.fiscal_month:02d} ({self.status})>"
        )


class ReconcilingItem(Base):
    """Difference between bank and book records not yet reflected in both"""
    __tablename__ = "reconciling_items"

    id = Column(Integer, primary_key=True, index=True)
    reconciliation_id = Column(
        Integer,
        ForeignKey("bank_reconciliations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Values: outstanding_check, deposit_in_transit, bank_fee, bank_interest, nsf_check, adjustment
    item_type = Column(String(30), nullable=False)
    description = Column(String(255), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)  # Signed only for adjustment
    transaction_date = Column(Date, nullable=False)
    reference = Column(String(100), nullable=True)

    # Book-side items usually need an adjusting entry
    requires_journal_entry = Column(Boolean, nullable=False, default=False)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)

    # Values: pending, cleared, voided
    status = Column(String(20), nullable=False, default="pending")

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    reconciliation = relationship("BankReconciliation", back_populates="items")
    journal_entry = relationship("JournalEntry")

    def __repr__(self):
        return f"<ReconcilingItem {self.item_type} {self.amount} ({self.status})>"
