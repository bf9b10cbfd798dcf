"""
Test data factories for the ledger core.

Provides functions to create test entities with sensible defaults.

Usage:
    from tests.factories import create_test_account, create_posted_entry

    def test_something(db_session):
        cash = create_test_account(db_session, code="1101")
        sales = create_test_account(db_session, code="4101")
        create_posted_entry(db_session, [(cash, "debit", 100), (sales, "credit", 100)])
"""
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable IDs."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# ACCOUNT FACTORIES
# =============================================================================

STANDARD_ACCOUNTS = [
    ("1101", "Cash on Hand"),
    ("1102", "Operating Bank Account"),
    ("1201", "Accounts Receivable"),
    ("1205", "NSF Receivable"),
    ("1401", "Equipment"),
    ("1451", "Accumulated Depreciation - Equipment"),
    ("2101", "Accounts Payable"),
    ("2201", "Sales Tax Payable"),
    ("3101", "Owner Capital"),
    ("4101", "Sales Revenue"),
    ("4201", "Sales Discounts"),
    ("4301", "Interest Income"),
    ("6101", "Bank Fees"),
    ("6201", "Depreciation Expense"),
    ("7101", "Gain/Loss on Asset Disposal"),
]


def create_test_account(
    db: Session,
    code: Optional[str] = None,
    name: Optional[str] = None,
    **overrides
) -> "Account":
    """
    Create an account through the registry so classification is applied.

    Args:
        db: Database session
        code: 4-digit code (auto-generated in the 6xxx expense band if omitted)
        name: Account name (auto-generated if omitted)
        **overrides: is_detail, is_system, parent_id, description
    """
    from ledger.schemas.accounting import AccountCreate
    from ledger.services.account_registry import AccountRegistry

    seq = _next("account")
    account = AccountRegistry(db).create_account(
        AccountCreate(
            code=code or f"{6500 + seq}",
            name=name or f"Test Account {seq}",
            **overrides
        )
    )
    return account


def create_standard_chart(db: Session) -> Dict[str, "Account"]:
    """Create STANDARD_ACCOUNTS and return them keyed by code."""
    return {code: create_test_account(db, code=code, name=name) for code, name in STANDARD_ACCOUNTS}


# =============================================================================
# PERIOD FACTORIES
# =============================================================================

def create_test_period(
    db: Session,
    year: int = 2026,
    month: int = 1,
    status: str = "open",
) -> "FiscalPeriod":
    """Create a fiscal period, optionally forcing its status without the close checks."""
    from ledger.services.fiscal_period_manager import FiscalPeriodManager

    period = FiscalPeriodManager(db).create_period(year, month)
    if status != "open":
        period.status = status
        db.flush()
    return period


# =============================================================================
# JOURNAL FACTORIES
# =============================================================================

LineSpec = Tuple["Account", str, object]


def build_entry(
    lines: Sequence[LineSpec],
    entry_date: date = date(2026, 1, 15),
    description: Optional[str] = None,
    **overrides
) -> "JournalEntryCreate":
    """Build a JournalEntryCreate from (account, direction, amount) tuples."""
    from ledger.schemas.accounting import JournalEntryCreate, JournalLineInput

    seq = _next("entry")
    return JournalEntryCreate(
        entry_date=entry_date,
        description=description or f"Test entry {seq}",
        lines=[
            JournalLineInput(account_id=account.id, direction=direction, amount=Decimal(str(amount)))
            for account, direction, amount in lines
        ],
        **overrides
    )


def create_draft_entry(db: Session, lines: Sequence[LineSpec], **kwargs) -> "JournalEntry":
    from ledger.services.journal_ledger import JournalLedger

    return JournalLedger(db).create_entry(build_entry(lines, **kwargs), created_by="tester")


def create_posted_entry(db: Session, lines: Sequence[LineSpec], **kwargs) -> "JournalEntry":
    from ledger.services.journal_ledger import JournalLedger

    return JournalLedger(db).create_entry(
        build_entry(lines, post_immediately=True, **kwargs), created_by="tester"
    )


# =============================================================================
# BANKING FACTORIES
# =============================================================================

def create_test_bank_account(db: Session, gl_account: "Account", **overrides) -> "BankAccount":
    from ledger.schemas.banking import BankAccountCreate
    from ledger.services.reconciliation_engine import ReconciliationEngine

    seq = _next("bank_account")
    return ReconciliationEngine(db).create_bank_account(
        BankAccountCreate(
            account_id=gl_account.id,
            bank_name=overrides.pop("bank_name", "First Test Bank"),
            account_number=overrides.pop("account_number", f"ACCT-{seq:06d}"),
            **overrides
        )
    )


def import_bank_rows(db: Session, bank_account: "BankAccount", rows: List[Tuple[date, object, Optional[str]]]):
    """Import (date, signed amount, reference) rows and return the created transactions."""
    from ledger.models.banking import BankTransaction
    from ledger.schemas.banking import BankTransactionImport
    from ledger.services.reconciliation_engine import ReconciliationEngine

    result = ReconciliationEngine(db).import_transactions(
        bank_account.id,
        [
            BankTransactionImport(
                transaction_date=tx_date,
                description=f"Statement line {_next('bank_row')}",
                amount=Decimal(str(amount)),
                reference=reference,
            )
            for tx_date, amount, reference in rows
        ],
    )
    return [db.get(BankTransaction, tx_id) for tx_id in result.transaction_ids]


def create_test_reconciliation(
    db: Session,
    bank_account: "BankAccount",
    statement_balance="1000.00",
    book_balance="1000.00",
    year: int = 2026,
    month: int = 1,
    start: bool = True,
) -> "BankReconciliation":
    from ledger.schemas.banking import ReconciliationCreate
    from ledger.services.reconciliation_engine import ReconciliationEngine

    engine = ReconciliationEngine(db)
    recon = engine.create_reconciliation(
        ReconciliationCreate(
            bank_account_id=bank_account.id,
            fiscal_year=year,
            fiscal_month=month,
            statement_ending_balance=Decimal(str(statement_balance)),
            book_ending_balance=Decimal(str(book_balance)),
        ),
        created_by="tester",
    )
    if start:
        engine.start(recon.id, started_by="tester")
    return recon


# =============================================================================
# FIXED ASSET FACTORIES
# =============================================================================

def create_test_category(db: Session, chart: Dict[str, "Account"], **overrides) -> "AssetCategory":
    from ledger.schemas.assets import AssetCategoryCreate
    from ledger.services.depreciation_engine import DepreciationEngine

    seq = _next("category")
    return DepreciationEngine(db).create_category(
        AssetCategoryCreate(
            code=overrides.pop("code", f"CAT{seq}"),
            name=overrides.pop("name", f"Equipment {seq}"),
            default_useful_life_months=overrides.pop("default_useful_life_months", 60),
            asset_account_id=chart["1401"].id,
            accumulated_depreciation_account_id=chart["1451"].id,
            depreciation_expense_account_id=chart["6201"].id,
            gain_loss_account_id=overrides.pop("gain_loss_account_id", chart["7101"].id),
            **overrides
        )
    )


def create_test_asset(
    db: Session,
    category: "AssetCategory",
    cost="12000.00",
    activate: bool = True,
    **overrides
) -> "FixedAsset":
    from ledger.schemas.assets import FixedAssetCreate
    from ledger.services.depreciation_engine import DepreciationEngine

    seq = _next("asset")
    engine = DepreciationEngine(db)
    asset = engine.register_asset(
        FixedAssetCreate(
            name=overrides.pop("name", f"Test Asset {seq}"),
            category_id=category.id,
            acquisition_date=overrides.pop("acquisition_date", date(2025, 12, 1)),
            acquisition_cost=Decimal(str(cost)),
            **overrides
        ),
        created_by="tester",
    )
    if activate:
        engine.activate_asset(asset.id, expected_version=asset.version, performed_by="tester")
    return asset
